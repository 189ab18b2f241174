"""
CompanyModel: Abstract base class for company-scoped models.

Every model that belongs to a single tenant inherits from CompanyModel
instead of db.Model directly. This adds:
  - company_id FK column with index
  - query_for_company(company_id) classmethod
"""

from sourcetrack.models import db


class CompanyModel(db.Model):
    """Abstract base for company-scoped tables."""
    __abstract__ = True

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_company(cls, company_id):
        """Return a query filtered by company_id."""
        return cls.query.filter_by(company_id=company_id)

    @classmethod
    def get_for_company(cls, pk, company_id):
        """Return the row with ``pk`` only when it belongs to ``company_id``."""
        obj = db.session.get(cls, pk)
        if obj is None or obj.company_id != company_id:
            return None
        return obj
