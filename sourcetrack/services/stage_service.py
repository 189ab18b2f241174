"""
Stage Instance Store service layer.

Materializes templates into per-project stages and owns every stage
mutation. Payload blocks are validated against the owning template's
schema before anything is written; status and deadline changes append
exactly one History Ledger row, flushed ahead of the stage update and
committed with it.
"""

import logging
import numbers

from sourcetrack.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.project import Project
from sourcetrack.models.stage import STAGE_STATUSES, Stage
from sourcetrack.models.template import StageTemplate
from sourcetrack.services import history_service, template_service
from sourcetrack.utils.helpers import commit_or_raise, parse_date_input

logger = logging.getLogger(__name__)

DISTRIBUTION_TEXT_FIELDS = ("websiteDescription", "videoDescription", "mailingText")


# ──────────────────────────────────────────────────────────────────────────────
# Lookup
# ──────────────────────────────────────────────────────────────────────────────

def get_stage(stage_id: int, company_id: int) -> Stage:
    """Fetch a stage whose project belongs to ``company_id``."""
    stage = db.session.get(Stage, stage_id)
    if stage is None or stage.project.company_id != company_id:
        raise NotFoundError("Stage", stage_id, company_id)
    return stage


def get_project(project_id: int, company_id: int) -> Project:
    project = Project.get_for_company(project_id, company_id)
    if project is None:
        raise NotFoundError("Project", project_id, company_id)
    return project


# ──────────────────────────────────────────────────────────────────────────────
# Materialization
# ──────────────────────────────────────────────────────────────────────────────

def _initial_flags(enabled, keys):
    if not enabled:
        return None
    return {key: False for key in keys}


def build_stage(project_id, template: StageTemplate, position: int) -> Stage:
    """A fresh ``waiting`` stage whose data maps mirror the template schema."""
    return Stage(
        project_id=project_id,
        template_id=template.id,
        name=template.name,
        kind=template.kind,
        position=position,
        status="waiting",
        checklist_data=_initial_flags(template.has_checklist, template.checklist_keys),
        conditional_enabled=True,
        conditional_substages_data=_initial_flags(
            template.has_conditional_substages, template.substage_keys
        ),
    )


def dedupe_by_position(templates):
    """Keep the first template seen per position.

    Positions are unique for active templates created through the
    registry; rows predating that rule can still collide.
    """
    seen, unique = set(), []
    for template in templates:
        if template.position in seen:
            logger.warning(
                "Skipping template id=%s: position %s already taken", template.id, template.position
            )
            continue
        seen.add(template.position)
        unique.append(template)
    return unique


def materialize_for_project(project: Project, templates) -> list[Stage]:
    """Create one stage per template at the template's own position.

    Does not commit; the caller owns the transaction.
    """
    stages = [build_stage(project.id, t, t.position) for t in dedupe_by_position(templates)]
    db.session.add_all(stages)
    db.session.flush()
    logger.info("Materialized %d stages project=%s", len(stages), project.id)
    return stages


def generate_stages(project_id: int, company_id: int) -> Project:
    """Backfill stages from the active registry; refuses when any exist."""
    project = get_project(project_id, company_id)
    if Stage.query.filter_by(project_id=project.id).first() is not None:
        raise ValidationError("Project already has stages")
    materialize_for_project(project, template_service.list_active(company_id))
    commit_or_raise("Stage")
    db.session.refresh(project)
    return project


def add_stages(project_id: int, company_id: int, template_ids) -> list[Stage]:
    """Append stages for templates not yet represented in the project.

    New stages start at ``max(existing positions) + 1`` and follow the
    request order. Unknown template ids are skipped. Fails with no effect
    only when every requested id is already present.
    """
    if not isinstance(template_ids, list) or not all(
        isinstance(t, int) and not isinstance(t, bool) for t in template_ids
    ):
        raise ValidationError("Invalid data", details={"templateIds": "Expected a list of template ids"})
    if not template_ids:
        raise ValidationError("No templates specified")

    project = get_project(project_id, company_id)
    existing = Stage.query.filter_by(project_id=project.id).all()
    present = {s.template_id for s in existing if s.template_id is not None}

    new_ids = []
    for tid in template_ids:
        if tid not in present and tid not in new_ids:
            new_ids.append(tid)
    if not new_ids:
        raise ValidationError("All specified stages already exist in the project")

    by_id = {
        t.id: t
        for t in StageTemplate.query_for_company(company_id).filter(StageTemplate.id.in_(new_ids)).all()
    }
    position = max((s.position for s in existing), default=0) + 1
    created = []
    for tid in new_ids:
        template = by_id.get(tid)
        if template is None:
            logger.warning("add_stages: unknown template id=%s project=%s", tid, project.id)
            continue
        created.append(build_stage(project.id, template, position))
        position += 1

    db.session.add_all(created)
    commit_or_raise("Stage")
    logger.info("Added %d stages project=%s", len(created), project.id)
    return created


# ──────────────────────────────────────────────────────────────────────────────
# Payload validation
# ──────────────────────────────────────────────────────────────────────────────

def _require_map(value, field):
    if not isinstance(value, dict):
        raise ValidationError("Invalid data", details={field: "Expected an object or null"})
    return value


def _check_keys(keys, allowed, field, template, stored=None):
    """Keys must be declared by the template or already held by the stage."""
    if template is None:
        return
    unknown = sorted(set(keys) - set(allowed) - set(stored or ()))
    if unknown:
        raise ValidationError(
            "Invalid data",
            details={field: f"Unknown keys for this stage: {', '.join(unknown)}"},
        )


def _validate_flag_map(value, field, allowed, template, stored=None):
    if value is None:
        return None
    _require_map(value, field)
    _check_keys(value.keys(), allowed, field, template, stored)
    for key, flag in value.items():
        if not isinstance(flag, bool):
            raise ValidationError("Invalid data", details={f"{field}.{key}": "Expected a boolean"})
    return dict(value)


def _validate_text_map(value, field, allowed, template, stored=None):
    if value is None:
        return None
    _require_map(value, field)
    _check_keys(value.keys(), allowed, field, template, stored)
    for key, text in value.items():
        if not isinstance(text, str):
            raise ValidationError("Invalid data", details={f"{field}.{key}": "Expected a string"})
    return dict(value)


def _validate_custom_fields_data(value, template, stored=None):
    data = _validate_text_map(
        value, "customFieldsData",
        template.custom_field_types.keys() if template else (), template, stored,
    )
    if data and template is not None:
        types = template.custom_field_types
        for key, text in data.items():
            if types.get(key) == "number" and text.strip():
                try:
                    float(text)
                except ValueError:
                    raise ValidationError(
                        "Invalid data", details={f"customFieldsData.{key}": "Expected a number"}
                    ) from None
    return data


def _product_keys(stage, stored=None):
    return {str(p.id) for p in stage.project.products} | set(stored or ())


def _validate_distribution(value, stage):
    if value is None:
        return None
    _require_map(value, "distributionData")
    allowed = {"productPrices", *DISTRIBUTION_TEXT_FIELDS}
    unknown = sorted(set(value) - allowed)
    if unknown:
        raise ValidationError(
            "Invalid data", details={"distributionData": f"Unknown keys: {', '.join(unknown)}"}
        )
    for key in DISTRIBUTION_TEXT_FIELDS:
        if key in value and not isinstance(value[key], str):
            raise ValidationError("Invalid data", details={f"distributionData.{key}": "Expected a string"})
    prices = value.get("productPrices")
    if prices is not None:
        _require_map(prices, "distributionData.productPrices")
        stored = (stage.distribution_data or {}).get("productPrices")
        products = _product_keys(stage, stored if isinstance(stored, dict) else None)
        for key, price in prices.items():
            if key not in products:
                raise ValidationError(
                    "Invalid data",
                    details={f"distributionData.productPrices.{key}": "Not a product of this project"},
                )
            if isinstance(price, bool) or not isinstance(price, numbers.Real):
                raise ValidationError(
                    "Invalid data", details={f"distributionData.productPrices.{key}": "Expected a number"}
                )
    return dict(value)


def _validate_quantities(value, stage):
    if value is None:
        return None
    _require_map(value, "productQuantitiesData")
    products = _product_keys(stage, stage.product_quantities_data)
    for key, qty in value.items():
        if key not in products:
            raise ValidationError(
                "Invalid data", details={f"productQuantitiesData.{key}": "Not a product of this project"}
            )
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            raise ValidationError(
                "Invalid data",
                details={f"productQuantitiesData.{key}": "Expected a non-negative integer"},
            )
    return dict(value)


def _validate_status(value):
    if value not in STAGE_STATUSES:
        raise ValidationError(
            "Invalid data",
            details={"status": f"Must be one of: {', '.join(sorted(STAGE_STATUSES))}"},
        )
    return value


_PATCH_FIELDS = {
    "status", "startDate", "deadline", "reason", "checklistData", "checklistInputData",
    "conditionalEnabled", "conditionalSubstagesData", "customFieldsData",
    "distributionData", "productQuantitiesData",
}


def validate_patch(stage: Stage, data: dict) -> dict:
    """Validate a PATCH body; returns column name -> new value.

    Nothing on ``stage`` is modified here.
    """
    unknown = sorted(set(data) - _PATCH_FIELDS)
    if unknown:
        raise ValidationError("Invalid data", details={k: "Unknown field" for k in unknown})

    template = stage.template
    checklist_keys = template.checklist_keys if template else ()
    changes = {}

    if "status" in data:
        changes["status"] = _validate_status(data["status"])
    if "startDate" in data:
        changes["start_date"] = parse_date_input(data["startDate"], "startDate")
    if "deadline" in data:
        changes["deadline"] = parse_date_input(data["deadline"], "deadline")
    if "conditionalEnabled" in data:
        if not isinstance(data["conditionalEnabled"], bool):
            raise ValidationError("Invalid data", details={"conditionalEnabled": "Expected a boolean"})
        changes["conditional_enabled"] = data["conditionalEnabled"]
    if "checklistData" in data:
        changes["checklist_data"] = _validate_flag_map(
            data["checklistData"], "checklistData", checklist_keys, template,
            stage.checklist_data,
        )
    if "checklistInputData" in data:
        changes["checklist_input_data"] = _validate_text_map(
            data["checklistInputData"], "checklistInputData", checklist_keys, template,
            stage.checklist_input_data,
        )
    if "conditionalSubstagesData" in data:
        changes["conditional_substages_data"] = _validate_flag_map(
            data["conditionalSubstagesData"], "conditionalSubstagesData",
            template.substage_keys if template else (), template,
            stage.conditional_substages_data,
        )
    if "customFieldsData" in data:
        changes["custom_fields_data"] = _validate_custom_fields_data(
            data["customFieldsData"], template, stage.custom_fields_data
        )
    if "distributionData" in data:
        changes["distribution_data"] = _validate_distribution(data["distributionData"], stage)
    if "productQuantitiesData" in data:
        changes["product_quantities_data"] = _validate_quantities(data["productQuantitiesData"], stage)
    return changes


# ──────────────────────────────────────────────────────────────────────────────
# Mutations
# ──────────────────────────────────────────────────────────────────────────────

def _reason_text(reason):
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("Invalid data", details={"reason": "Expected a string"})
    return (reason or "").strip()


def _require_reason_for_change(stage, reason):
    if stage.deadline is not None and not reason:
        raise ValidationError(
            "Invalid data", details={"reason": "Reason is required when changing deadline"}
        )


def patch_stage(stage_id: int, company_id: int, data: dict, actor_id: int) -> Stage:
    """Partial update.

    A status that differs from the stored one appends one StatusHistory
    row; a deadline that differs appends one DeadlineHistory row (with the
    same reason rule as ``patch_deadline``). Changing ``conditionalEnabled``
    forces status to ``skip``/``waiting``, overriding any explicit status.
    """
    stage = get_stage(stage_id, company_id)
    changes = validate_patch(stage, data)

    if "conditional_enabled" in changes and changes["conditional_enabled"] != stage.conditional_enabled:
        changes["status"] = "waiting" if changes["conditional_enabled"] else "skip"

    deadline_changed = "deadline" in changes and changes["deadline"] != stage.deadline
    reason = _reason_text(data.get("reason"))
    if deadline_changed:
        _require_reason_for_change(stage, reason)

    new_status = changes.get("status")
    if new_status is not None and new_status != stage.status:
        history_service.record_status_change(stage, new_status, actor_id)
    if deadline_changed:
        history_service.record_deadline_change(stage, changes["deadline"], reason, actor_id)

    for attr, value in changes.items():
        setattr(stage, attr, value)
    commit_or_raise("Stage")
    logger.info("Stage updated id=%s fields=%s", stage.id, sorted(changes))
    return stage


def patch_deadline(stage_id: int, company_id: int, data: dict, actor_id: int) -> Stage:
    """Set or change the deadline; a reason is required only when one already exists."""
    stage = get_stage(stage_id, company_id)
    new_deadline = parse_date_input(data.get("deadline"), "deadline")
    reason = _reason_text(data.get("reason"))
    _require_reason_for_change(stage, reason)

    history_service.record_deadline_change(stage, new_deadline, reason, actor_id)
    stage.deadline = new_deadline
    commit_or_raise("Stage")
    logger.info("Stage deadline updated id=%s", stage.id)
    return stage


def toggle_conditional(stage_id: int, company_id: int, enabled, actor_id: int) -> Stage:
    """Enable/disable a stage; disabled forces ``skip``, enabled forces ``waiting``."""
    if not isinstance(enabled, bool):
        raise ValidationError("Invalid data", details={"enabled": "Expected a boolean"})
    stage = get_stage(stage_id, company_id)
    new_status = "waiting" if enabled else "skip"
    if new_status != stage.status:
        history_service.record_status_change(stage, new_status, actor_id)
    stage.conditional_enabled = enabled
    stage.status = new_status
    commit_or_raise("Stage")
    logger.info("Stage conditional toggled id=%s enabled=%s", stage.id, enabled)
    return stage


def delete_stage(stage_id: int, actor) -> None:
    """Admin, project creator or responsible user only."""
    stage = get_stage(stage_id, actor.company_id)
    project = stage.project
    allowed = (
        actor.is_admin
        or project.created_by_id == actor.id
        or project.responsible_user_id == actor.id
    )
    if not allowed:
        raise PermissionDeniedError(
            "Only project creator, responsible user, or admin can delete stages"
        )
    db.session.delete(stage)
    commit_or_raise("Stage")
    logger.info("Stage deleted id=%s project=%s by=%s", stage_id, project.id, actor.id)


def prune_product_keys(project: Project) -> int:
    """Drop quantities and prices keyed by products ``project`` no longer has.

    Called after the product list is replaced. Does not commit; returns
    the number of stages touched.
    """
    live = {str(p.id) for p in project.products}
    touched = 0
    for stage in project.stages:
        quantities = stage.product_quantities_data
        if quantities and not set(quantities) <= live:
            stage.product_quantities_data = {k: v for k, v in quantities.items() if k in live}
            touched += 1
        distribution = stage.distribution_data
        prices = distribution.get("productPrices") if isinstance(distribution, dict) else None
        if isinstance(prices, dict) and not set(prices) <= live:
            stage.distribution_data = {
                **distribution,
                "productPrices": {k: v for k, v in prices.items() if k in live},
            }
            touched += 1
    return touched
