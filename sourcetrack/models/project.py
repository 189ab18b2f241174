"""Projects and their products."""

from datetime import datetime, timezone

from sourcetrack.models import db
from sourcetrack.models.base import CompanyModel


class Project(CompanyModel):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    responsible_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    factory_id = db.Column(db.Integer, db.ForeignKey("factories.id", ondelete="SET NULL"))
    product_type_id = db.Column(db.Integer, db.ForeignKey("product_types.id", ondelete="SET NULL"))
    deadline = db.Column(db.Date)
    cover_image_id = db.Column(db.Integer)  # StageFile id; resolved softly
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    responsible_user = db.relationship("User", foreign_keys=[responsible_user_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    factory = db.relationship("Factory")
    product_type = db.relationship("ProductType")
    stages = db.relationship(
        "Stage",
        back_populates="project",
        order_by="Stage.position",
        cascade="all, delete-orphan",
    )
    products = db.relationship(
        "Product",
        back_populates="project",
        order_by="Product.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "description": self.description,
            "responsibleUserId": self.responsible_user_id,
            "factoryId": self.factory_id,
            "productTypeId": self.product_type_id,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "coverImageId": self.cover_image_id,
            "createdById": self.created_by_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    article = db.Column(db.String(100))
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project", back_populates="products")

    def to_dict(self):
        return {
            "id": self.id,
            "projectId": self.project_id,
            "article": self.article,
            "name": self.name,
            "barcode": self.barcode,
        }
