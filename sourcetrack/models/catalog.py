"""Catalog references a project can point at: factories and product types."""

from datetime import datetime, timezone

from sourcetrack.models import db
from sourcetrack.models.base import CompanyModel


class Factory(CompanyModel):
    __tablename__ = "factories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.Text)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class ProductType(CompanyModel):
    __tablename__ = "product_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    name_ru = db.Column(db.String(200))
    name_zh = db.Column(db.String(200))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "nameRu": self.name_ru,
            "nameZh": self.name_zh,
            "description": self.description,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
