"""
Stage templates: the company-scoped catalog a project pipeline is built from.

A template's ``kind`` is resolved once, when the template is defined or
renamed, and copied onto every Stage materialized from it. File-type and
access rules dispatch on that tag.
"""

from datetime import datetime, timezone

from sourcetrack.models import db
from sourcetrack.models.base import CompanyModel


STAGE_KINDS = {"generic", "render", "model_3d", "factory_proposal", "quotation"}

# Canonical template names that carry special file behaviour.
KIND_BY_NAME = {
    "Render": "render",
    "3D Model": "model_3d",
    "Factory Proposal": "factory_proposal",
    "Quotation": "quotation",
}

# Kinds whose uploads must name an allow-list of viewers.
ACCESS_CONTROLLED_KINDS = {"factory_proposal", "quotation"}

CUSTOM_FIELD_TYPES = {"text", "textarea", "number"}


def resolve_kind(name, explicit=None):
    """Return the StageKind for a template named ``name``.

    An explicit kind wins; otherwise canonical names map to their kind and
    everything else is ``generic``.
    """
    if explicit:
        return explicit
    return KIND_BY_NAME.get((name or "").strip(), "generic")


class StageTemplate(CompanyModel):
    """Reusable stage definition; ``is_active=False`` hides it from new projects."""

    __tablename__ = "stage_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    name_ru = db.Column(db.String(255))
    name_zh = db.Column(db.String(255))
    description = db.Column(db.Text)
    position = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(30), nullable=False, default="generic")
    has_checklist = db.Column(db.Boolean, nullable=False, default=False)
    checklist_items = db.Column(db.JSON)            # ordered list of keys
    has_conditional_substages = db.Column(db.Boolean, nullable=False, default=False)
    conditional_substages = db.Column(db.JSON)      # ordered list of keys
    custom_fields = db.Column(db.JSON)              # [{key, label, labelRu, labelZh, type, position}]
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index("ix_stage_templates_company_position", "company_id", "position"),
    )

    @property
    def checklist_keys(self):
        return list(self.checklist_items or []) if self.has_checklist else []

    @property
    def substage_keys(self):
        return list(self.conditional_substages or []) if self.has_conditional_substages else []

    @property
    def custom_field_types(self):
        """Map of declared custom-field key -> field type."""
        return {f["key"]: f.get("type", "text") for f in (self.custom_fields or [])}

    def to_dict(self):
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "nameRu": self.name_ru,
            "nameZh": self.name_zh,
            "description": self.description,
            "position": self.position,
            "kind": self.kind,
            "hasChecklist": self.has_checklist,
            "checklistItems": self.checklist_items,
            "hasConditionalSubstages": self.has_conditional_substages,
            "conditionalSubstages": self.conditional_substages,
            "customFields": self.custom_fields,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
