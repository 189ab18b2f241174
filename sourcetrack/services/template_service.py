"""
Template Registry service layer.

Owns every ORM query and mutation for StageTemplate. Positions are unique
among a company's active templates; create/update reject collisions with
ConflictError so the pipeline order is never ambiguous.
"""

import logging

from sourcetrack.core.exceptions import ConflictError, NotFoundError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.template import (
    CUSTOM_FIELD_TYPES,
    STAGE_KINDS,
    StageTemplate,
    resolve_kind,
)

logger = logging.getLogger(__name__)


# Seeded into every new company with an empty registry.
DEFAULT_STAGE_TEMPLATES = [
    {"name": "Render", "name_ru": "Рендер", "name_zh": "渲染图", "position": 1},
    {"name": "3D Model", "name_ru": "3D-модель", "name_zh": "3D模型", "position": 2},
    {"name": "3D Print", "name_ru": "Печать 3D-модели", "name_zh": "3D打印", "position": 3},
    {
        "name": "Technical Description",
        "name_ru": "Техническое описание",
        "name_zh": "技术说明",
        "position": 4,
        "description": "Функционал, комплектация, состав",
    },
    {"name": "Factory Proposal", "name_ru": "Предложение от завода", "name_zh": "工厂报价", "position": 5},
    {"name": "Tooling", "name_ru": "Оснастка", "name_zh": "模具", "position": 6},
    {"name": "Sample", "name_ru": "Образец", "name_zh": "样品", "position": 7},
    {"name": "Order Placement", "name_ru": "Размещение заказа", "name_zh": "下单", "position": 8},
    {
        "name": "Documentation Checklist",
        "name_ru": "Получение документации",
        "name_zh": "文档清单",
        "position": 9,
        "checklist_items": ["explosionDiagram", "productDrawing", "boxDrawing"],
    },
    {
        "name": "Packaging Checklist",
        "name_ru": "Подготовка упаковки",
        "name_zh": "包装清单",
        "position": 10,
        "checklist_items": ["box", "instruction", "externalSticker", "internalSticker"],
    },
    {
        "name": "Certification",
        "name_ru": "Сертификация",
        "name_zh": "认证",
        "position": 11,
        "conditional_substages": ["application", "sampleShipping", "certificateReceived"],
    },
    {
        "name": "First Shipment",
        "name_ru": "Отправка первой партии",
        "name_zh": "首批发货",
        "position": 12,
        "checklist_items": ["boxPhoto", "hsCode", "catalogPage"],
    },
    {
        "name": "Distribution Preparation",
        "name_ru": "Подготовка к рассылке",
        "name_zh": "分销准备",
        "position": 13,
        "checklist_items": [
            "video", "render", "price",
            "websiteDescription", "videoDescription", "mailingText",
        ],
    },
]


# ──────────────────────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────────────────────

def list_active(company_id: int) -> list[StageTemplate]:
    """Active templates for a company, ordered by position."""
    return (
        StageTemplate.query_for_company(company_id)
        .filter_by(is_active=True)
        .order_by(StageTemplate.position, StageTemplate.id)
        .all()
    )


def get_template(template_id: int, company_id: int) -> StageTemplate:
    template = StageTemplate.get_for_company(template_id, company_id)
    if template is None:
        raise NotFoundError("StageTemplate", template_id, company_id)
    return template


# ──────────────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────────────

def _validate_key_list(value, field):
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(k, str) and k.strip() for k in value):
        raise ValidationError("Invalid data", details={field: "Expected a list of non-empty strings"})
    keys = [k.strip() for k in value]
    if len(set(keys)) != len(keys):
        raise ValidationError("Invalid data", details={field: "Keys must be unique"})
    return keys


def _validate_custom_fields(value):
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError("Invalid data", details={"customFields": "Expected a list"})
    cleaned, seen = [], set()
    for idx, raw in enumerate(value):
        if not isinstance(raw, dict):
            raise ValidationError("Invalid data", details={f"customFields.{idx}": "Expected an object"})
        key, label = raw.get("key"), raw.get("label")
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Invalid data", details={f"customFields.{idx}.key": "Required"})
        if not isinstance(label, str):
            raise ValidationError("Invalid data", details={f"customFields.{idx}.label": "Required"})
        if raw.get("type") not in CUSTOM_FIELD_TYPES:
            raise ValidationError(
                "Invalid data",
                details={f"customFields.{idx}.type": f"Must be one of: {', '.join(sorted(CUSTOM_FIELD_TYPES))}"},
            )
        position = raw.get("position")
        if isinstance(position, bool) or not isinstance(position, (int, float)):
            raise ValidationError("Invalid data", details={f"customFields.{idx}.position": "Expected a number"})
        if key in seen:
            raise ValidationError("Invalid data", details={"customFields": f"Duplicate key '{key}'"})
        seen.add(key)
        field = {"key": key.strip(), "label": label, "type": raw["type"], "position": position}
        for extra in ("labelRu", "labelZh"):
            if raw.get(extra) is not None:
                field[extra] = raw[extra]
        cleaned.append(field)
    return cleaned


def _validate_position(value):
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("Invalid data", details={"position": "Expected a positive integer"})
    return value


def _optional_text(data, key):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError("Invalid data", details={key: "Expected a string"})
    return value or None


def _ensure_position_free(company_id, position, exclude_id=None):
    q = StageTemplate.query_for_company(company_id).filter_by(is_active=True, position=position)
    if exclude_id is not None:
        q = q.filter(StageTemplate.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("StageTemplate", "position", position)


def _next_position(company_id):
    active = list_active(company_id)
    candidate = len(active) + 1
    if any(t.position == candidate for t in active):
        candidate = max(t.position for t in active) + 1
    return candidate


# ──────────────────────────────────────────────────────────────────────────────
# Mutations
# ──────────────────────────────────────────────────────────────────────────────

def create_template(company_id: int, data: dict) -> StageTemplate:
    """Persist a new template; position defaults to count(active)+1."""
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Invalid data", details={"name": "Name is required"})

    kind = data.get("kind")
    if kind is not None and kind not in STAGE_KINDS:
        raise ValidationError("Invalid data", details={"kind": f"Must be one of: {', '.join(sorted(STAGE_KINDS))}"})

    checklist_items = _validate_key_list(data.get("checklistItems"), "checklistItems")
    substages = _validate_key_list(data.get("conditionalSubstages"), "conditionalSubstages")
    custom_fields = _validate_custom_fields(data.get("customFields"))

    if data.get("position") is not None:
        position = _validate_position(data["position"])
        _ensure_position_free(company_id, position)
    else:
        position = _next_position(company_id)

    template = StageTemplate(
        company_id=company_id,
        name=name.strip(),
        name_ru=_optional_text(data, "nameRu"),
        name_zh=_optional_text(data, "nameZh"),
        description=_optional_text(data, "description"),
        position=position,
        kind=resolve_kind(name, kind),
        has_checklist=bool(data.get("hasChecklist", bool(checklist_items))),
        checklist_items=checklist_items,
        has_conditional_substages=bool(data.get("hasConditionalSubstages", bool(substages))),
        conditional_substages=substages,
        custom_fields=custom_fields,
        is_active=bool(data.get("isActive", True)),
    )
    db.session.add(template)
    db.session.commit()
    logger.info("StageTemplate created id=%s company=%s kind=%s", template.id, company_id, template.kind)
    return template


def update_template(template_id: int, company_id: int, data: dict) -> StageTemplate:
    """Apply a partial update; keys absent from ``data`` are left untouched."""
    template = get_template(template_id, company_id)

    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Invalid data", details={"name": "Name is required"})
        template.name = name.strip()
        if "kind" not in data:
            template.kind = resolve_kind(template.name)
    if "kind" in data:
        kind = data["kind"]
        if kind is not None and kind not in STAGE_KINDS:
            raise ValidationError("Invalid data", details={"kind": f"Must be one of: {', '.join(sorted(STAGE_KINDS))}"})
        template.kind = resolve_kind(template.name, kind)
    for key, attr in (("nameRu", "name_ru"), ("nameZh", "name_zh"), ("description", "description")):
        if key in data:
            setattr(template, attr, _optional_text(data, key))
    if "hasChecklist" in data:
        template.has_checklist = bool(data["hasChecklist"])
    if "checklistItems" in data:
        template.checklist_items = _validate_key_list(data["checklistItems"], "checklistItems") or None
    if "hasConditionalSubstages" in data:
        template.has_conditional_substages = bool(data["hasConditionalSubstages"])
    if "conditionalSubstages" in data:
        template.conditional_substages = (
            _validate_key_list(data["conditionalSubstages"], "conditionalSubstages") or None
        )
    if "customFields" in data:
        template.custom_fields = _validate_custom_fields(data["customFields"]) or None
    if "isActive" in data:
        template.is_active = bool(data["isActive"])
    if "position" in data:
        template.position = _validate_position(data["position"])
    if template.is_active and ("position" in data or "isActive" in data):
        _ensure_position_free(company_id, template.position, exclude_id=template.id)

    db.session.commit()
    logger.info("StageTemplate updated id=%s", template.id)
    return template


def deactivate_template(template_id: int, company_id: int) -> None:
    """Soft-delete: hide from future projects, keep existing stage references."""
    template = get_template(template_id, company_id)
    template.is_active = False
    db.session.commit()
    logger.info("StageTemplate deactivated id=%s", template.id)


def seed_default_templates(company_id: int) -> int:
    """Seed the default catalog when the company has no templates at all.

    Idempotent: returns 0 without writing when any template (active or
    not) already exists. Does not commit; the caller owns the transaction.
    """
    if StageTemplate.query_for_company(company_id).first() is not None:
        return 0
    for spec in DEFAULT_STAGE_TEMPLATES:
        checklist = spec.get("checklist_items")
        substages = spec.get("conditional_substages")
        db.session.add(StageTemplate(
            company_id=company_id,
            name=spec["name"],
            name_ru=spec["name_ru"],
            name_zh=spec["name_zh"],
            description=spec.get("description"),
            position=spec["position"],
            kind=resolve_kind(spec["name"]),
            has_checklist=bool(checklist),
            checklist_items=list(checklist) if checklist else None,
            has_conditional_substages=bool(substages),
            conditional_substages=list(substages) if substages else None,
            is_active=True,
        ))
    db.session.flush()
    logger.info("Seeded %d default stage templates company=%s", len(DEFAULT_STAGE_TEMPLATES), company_id)
    return len(DEFAULT_STAGE_TEMPLATES)
