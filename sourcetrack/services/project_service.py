"""
Project Aggregate service layer.

A project owns its products and an ordered list of stages. Reads are
assembled fresh on every call; any view that carries files for a user
is filtered through ``file_service.filter_for_viewer``.
"""

import logging
from datetime import date

from sourcetrack.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.auth import User
from sourcetrack.models.catalog import Factory, ProductType
from sourcetrack.models.project import Product, Project
from sourcetrack.models.stage import Stage, StageFile, Task
from sourcetrack.services import stage_service, template_service
from sourcetrack.services.file_service import filter_for_viewer
from sourcetrack.utils.helpers import commit_or_raise, parse_date_input

logger = logging.getLogger(__name__)

CLOSED_STAGE_STATUSES = {"completed", "skip"}


# ──────────────────────────────────────────────────────────────────────────────
# Field validation
# ──────────────────────────────────────────────────────────────────────────────

def _optional_id(value, field):
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Invalid data", details={field: "Expected an id or null"})
    return value


def _company_ref(model, value, field, company_id):
    """Nullable FK that must point at a row of ``company_id``."""
    ref_id = _optional_id(value, field)
    if ref_id is not None and model.get_for_company(ref_id, company_id) is None:
        raise ValidationError("Invalid data", details={field: "Not found in this company"})
    return ref_id


def _member_ref(value, field, company_id):
    user_id = _optional_id(value, field)
    if user_id is not None:
        user = db.session.get(User, user_id)
        if user is None or user.company_id != company_id:
            raise ValidationError("Invalid data", details={field: "Not a member of this company"})
    return user_id


def _name(value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Invalid data", details={"name": "Name is required"})
    return value.strip()


def _description(value):
    if value is not None and not isinstance(value, str):
        raise ValidationError("Invalid data", details={"description": "Expected a string"})
    return value or None


def _clean_products(raw):
    """Validated product rows; entries whose name is blank after trim are dropped."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("Invalid data", details={"products": "Expected a list"})
    rows = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError("Invalid data", details={f"products.{idx}": "Expected an object"})
        name = item.get("name")
        if not isinstance(name, str):
            raise ValidationError("Invalid data", details={f"products.{idx}.name": "Required"})
        if not name.strip():
            continue
        for key in ("article", "barcode"):
            if item.get(key) is not None and not isinstance(item[key], str):
                raise ValidationError("Invalid data", details={f"products.{idx}.{key}": "Expected a string"})
        rows.append({
            "article": item.get("article") or None,
            "name": name.strip(),
            "barcode": item.get("barcode") or None,
        })
    return rows


def _id_list(value, field):
    if value is None:
        return []
    if not isinstance(value, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in value
    ):
        raise ValidationError("Invalid data", details={field: "Expected a list of ids"})
    return value


# ──────────────────────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────────────────────

def get_project(project_id: int, company_id: int) -> Project:
    return stage_service.get_project(project_id, company_id)


def _stage_detail(stage: Stage, viewer_id) -> dict:
    d = stage.to_dict()
    d["template"] = stage.template.to_dict() if stage.template else None
    d["files"] = [f.to_dict() for f in filter_for_viewer(stage.files, viewer_id)]
    d["comments"] = [c.to_dict() for c in stage.comments]
    d["tasks"] = [t.to_dict() for t in stage.tasks]
    return d


def get_detail(project_id: int, viewer) -> dict:
    """Project with responsible user, products and fully assembled stages."""
    project = get_project(project_id, viewer.company_id)
    d = project.to_dict()
    d["responsibleUser"] = project.responsible_user.to_brief() if project.responsible_user else None
    d["factory"] = project.factory.to_dict() if project.factory else None
    d["productType"] = project.product_type.to_dict() if project.product_type else None
    d["products"] = [p.to_dict() for p in project.products]
    d["stages"] = [_stage_detail(s, viewer.id) for s in project.stages]
    return d


def resolve_cover_image(project: Project, viewer_id) -> StageFile | None:
    """Explicit cover if visible, else the first visible file of a render stage."""
    if project.cover_image_id is not None:
        cover = db.session.get(StageFile, project.cover_image_id)
        if (
            cover is not None
            and cover.stage.project_id == project.id
            and cover.is_visible_to(viewer_id)
        ):
            return cover
    for stage in project.stages:
        if stage.kind != "render":
            continue
        visible = filter_for_viewer(stage.files, viewer_id)
        if visible:
            return visible[0]
    return None


def list_with_stage_status(viewer) -> list[dict]:
    """Project summaries for list and dashboard views."""
    projects = (
        Project.query_for_company(viewer.company_id)
        .order_by(Project.created_at.desc(), Project.id.desc())
        .all()
    )
    result = []
    for project in projects:
        d = project.to_dict()
        d["stages"] = [{"status": s.status, "templateId": s.template_id} for s in project.stages]
        cover = resolve_cover_image(project, viewer.id)
        d["coverImageUrl"] = cover.file_url if cover else None
        d["responsibleUserName"] = (
            project.responsible_user.display_name if project.responsible_user else None
        )
        result.append(d)
    return result


def list_products(project_id: int, company_id: int) -> list[dict]:
    project = get_project(project_id, company_id)
    return [p.to_dict() for p in project.products]


# ──────────────────────────────────────────────────────────────────────────────
# Mutations
# ──────────────────────────────────────────────────────────────────────────────

def create_project(data: dict, actor) -> Project:
    """Create a project, its initial products and its stages.

    Stages are materialized from the company's active templates minus
    ``excludedTemplateIds``, keeping each template's position.
    """
    company_id = actor.company_id
    project = Project(
        company_id=company_id,
        name=_name(data.get("name")),
        description=_description(data.get("description")),
        responsible_user_id=_member_ref(data.get("responsibleUserId"), "responsibleUserId", company_id),
        factory_id=_company_ref(Factory, data.get("factoryId"), "factoryId", company_id),
        product_type_id=_company_ref(ProductType, data.get("productTypeId"), "productTypeId", company_id),
        deadline=parse_date_input(data.get("deadline"), "deadline"),
        created_by_id=actor.id,
    )
    products = _clean_products(data.get("products"))
    excluded = set(_id_list(data.get("excludedTemplateIds"), "excludedTemplateIds"))

    db.session.add(project)
    db.session.flush()
    db.session.add_all(Product(project_id=project.id, **row) for row in products)

    templates = [t for t in template_service.list_active(company_id) if t.id not in excluded]
    stage_service.materialize_for_project(project, templates)
    commit_or_raise("Project")
    logger.info(
        "Project created id=%s company=%s products=%d stages=%d",
        project.id, company_id, len(products), len(templates),
    )
    return project


def replace_products(project: Project, raw_products) -> None:
    """Delete every product of ``project`` and insert ``raw_products``.

    New rows get new ids, so stage quantities and prices keyed by the old
    ids are pruned in the same transaction. Does not commit.
    """
    rows = _clean_products(raw_products)
    Product.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    db.session.add_all(Product(project_id=project.id, **row) for row in rows)
    db.session.flush()
    db.session.expire(project, ["products"])
    pruned = stage_service.prune_product_keys(project)
    if pruned:
        logger.info("Pruned stale product keys project=%s stages=%d", project.id, pruned)


def update_project(project_id: int, data: dict, actor) -> Project:
    """Full update (PUT): absent optional fields are cleared."""
    company_id = actor.company_id
    project = get_project(project_id, company_id)
    project.name = _name(data.get("name"))
    project.description = _description(data.get("description"))
    project.responsible_user_id = _member_ref(data.get("responsibleUserId"), "responsibleUserId", company_id)
    project.factory_id = _company_ref(Factory, data.get("factoryId"), "factoryId", company_id)
    project.product_type_id = _company_ref(ProductType, data.get("productTypeId"), "productTypeId", company_id)
    project.deadline = parse_date_input(data.get("deadline"), "deadline")
    if "products" in data:
        replace_products(project, data["products"])
    commit_or_raise("Project")
    logger.info("Project updated id=%s", project.id)
    return project


def patch_project(project_id: int, data: dict, actor) -> Project:
    """Partial update; only keys present in ``data`` are written."""
    company_id = actor.company_id
    project = get_project(project_id, company_id)

    if "name" in data:
        project.name = _name(data["name"])
    if "description" in data:
        project.description = _description(data["description"])
    if "responsibleUserId" in data:
        project.responsible_user_id = _member_ref(data["responsibleUserId"], "responsibleUserId", company_id)
    if "factoryId" in data:
        project.factory_id = _company_ref(Factory, data["factoryId"], "factoryId", company_id)
    if "productTypeId" in data:
        project.product_type_id = _company_ref(ProductType, data["productTypeId"], "productTypeId", company_id)
    if "deadline" in data:
        project.deadline = parse_date_input(data["deadline"], "deadline")
    if "coverImageId" in data:
        cover_id = _optional_id(data["coverImageId"], "coverImageId")
        if cover_id is not None:
            cover = db.session.get(StageFile, cover_id)
            if cover is None or cover.stage.project_id != project.id:
                raise ValidationError("Invalid data", details={"coverImageId": "Not a file of this project"})
        project.cover_image_id = cover_id

    commit_or_raise("Project")
    logger.info("Project patched id=%s fields=%s", project.id, sorted(data))
    return project


def delete_project(project_id: int, actor) -> None:
    """Admins delete within their company; superadmins may delete any project."""
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")
    project = db.session.get(Project, project_id)
    if project is None or (actor.role != "superadmin" and project.company_id != actor.company_id):
        raise NotFoundError("Project", project_id, actor.company_id)
    db.session.delete(project)
    commit_or_raise("Project")
    logger.info("Project deleted id=%s by=%s", project_id, actor.id)


# ──────────────────────────────────────────────────────────────────────────────
# Dashboard
# ──────────────────────────────────────────────────────────────────────────────

def dashboard_stats(viewer) -> dict:
    projects = Project.query_for_company(viewer.company_id).all()
    active = completed = 0
    for project in projects:
        statuses = [s.status for s in project.stages]
        if not statuses:
            continue
        if all(s in CLOSED_STAGE_STATUSES for s in statuses):
            completed += 1
        else:
            active += 1

    overdue = (
        Stage.query.join(Project, Stage.project_id == Project.id)
        .filter(
            Project.company_id == viewer.company_id,
            Stage.deadline.isnot(None),
            Stage.deadline < date.today(),
            Stage.status.notin_(CLOSED_STAGE_STATUSES),
        )
        .count()
    )
    open_tasks = Task.query.filter_by(assigned_to_id=viewer.id, completed=False).count()
    return {
        "totalProjects": len(projects),
        "activeProjects": active,
        "completedProjects": completed,
        "overdueStages": overdue,
        "myOpenTasks": open_tasks,
    }
