"""
Access-Scoped File Index service layer.

Files attach to a stage (optionally to one checklist item) and may carry
an allow-list of viewer user ids. The index itself does not know who is
asking during bulk reads: every path that serializes files for a viewer
must go through ``filter_for_viewer``.

Stage-specific rules dispatch on ``Stage.kind``:
  render            image extensions only
  model_3d          STEP/STP/STL only
  factory_proposal  allow-list required; uploader/admin edit access
  quotation         allow-list required; responsible user always included
                    and the only one who may edit access
"""

import logging

from sourcetrack.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.auth import User
from sourcetrack.models.stage import StageFile
from sourcetrack.models.template import ACCESS_CONTROLLED_KINDS
from sourcetrack.services.stage_service import get_stage
from sourcetrack.utils.helpers import commit_or_raise, normalize_object_path

logger = logging.getLogger(__name__)

EXTENSION_RULES = {
    "render": (
        {"jpg", "jpeg", "png", "gif", "webp", "svg", "bmp"},
        "Render stage requires image files (jpg, png, gif, webp, svg)",
    ),
    "model_3d": (
        {"step", "stp", "stl"},
        "3D Model stage requires STEP/STP/STL files",
    ),
}

ACCESS_LIST_REQUIRED = "This stage requires selecting users with access to files"


def filter_for_viewer(files, viewer_id):
    """Files that are company-public or list ``viewer_id``."""
    return [f for f in files if f.is_visible_to(viewer_id)]


def validate_file_type(file_name: str, kind: str) -> None:
    rule = EXTENSION_RULES.get(kind)
    if rule is None:
        return
    extensions, message = rule
    ext = file_name.lower().rsplit(".", 1)[-1] if "." in file_name else ""
    if ext not in extensions:
        raise ValidationError(message)


def _validate_user_ids(value, company_id):
    """Null passes through; a list must name members of ``company_id``."""
    if value is None:
        return None
    if not isinstance(value, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in value
    ):
        raise ValidationError("Invalid data", details={"allowedUserIds": "Expected a list of user ids or null"})
    ids = list(dict.fromkeys(value))
    if ids:
        members = {
            uid for (uid,) in db.session.query(User.id)
            .filter(User.id.in_(ids), User.company_id == company_id).all()
        }
        outsiders = [uid for uid in ids if uid not in members]
        if outsiders:
            raise ValidationError(
                "Invalid data",
                details={"allowedUserIds": f"Not members of this company: {outsiders}"},
            )
    return ids


def _with_user(ids, user_id):
    if user_id is not None and user_id not in ids:
        return ids + [user_id]
    return ids


# ──────────────────────────────────────────────────────────────────────────────
# Operations
# ──────────────────────────────────────────────────────────────────────────────

def record_upload(stage_id: int, data: dict, actor) -> StageFile:
    """Record an uploaded object against a stage."""
    stage = get_stage(stage_id, actor.company_id)

    file_name, file_url = data.get("fileName"), data.get("fileUrl")
    errors = {}
    if not isinstance(file_name, str) or not file_name.strip():
        errors["fileName"] = "File name is required"
    if not isinstance(file_url, str) or not file_url.strip():
        errors["fileUrl"] = "File URL is required"
    file_size = data.get("fileSize")
    if file_size is not None and (isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0):
        errors["fileSize"] = "Expected a non-negative integer"
    file_type = data.get("fileType")
    if file_type is not None and not isinstance(file_type, str):
        errors["fileType"] = "Expected a string"
    key = data.get("checklistItemKey")
    if key is not None:
        if not isinstance(key, str):
            errors["checklistItemKey"] = "Expected a string"
        elif stage.template is not None and key not in stage.template.checklist_keys:
            errors["checklistItemKey"] = f"Unknown checklist item '{key}'"
    if errors:
        raise ValidationError("Invalid data", details=errors)

    validate_file_type(file_name.strip(), stage.kind)

    allowed = _validate_user_ids(data.get("allowedUserIds"), actor.company_id)
    if stage.kind in ACCESS_CONTROLLED_KINDS and not allowed:
        raise ValidationError(ACCESS_LIST_REQUIRED)
    if allowed:
        allowed = _with_user(allowed, actor.id)
        if stage.kind == "quotation":
            allowed = _with_user(allowed, stage.project.responsible_user_id)

    stage_file = StageFile(
        stage_id=stage.id,
        checklist_item_key=key or None,
        file_name=file_name.strip(),
        file_url=normalize_object_path(file_url.strip()),
        file_type=file_type or None,
        file_size=file_size,
        uploaded_by_id=actor.id,
        version=1,
        is_latest=True,
        allowed_user_ids=allowed or None,
    )
    db.session.add(stage_file)
    commit_or_raise("StageFile")
    logger.info("StageFile recorded id=%s stage=%s restricted=%s", stage_file.id, stage.id, bool(allowed))
    return stage_file


def list_for_viewer(stage_id: int, viewer, checklist_item_key=None) -> list[StageFile]:
    """Stage files visible to ``viewer``, optionally for one checklist item."""
    stage = get_stage(stage_id, viewer.company_id)
    q = StageFile.query.filter_by(stage_id=stage.id)
    if checklist_item_key:
        q = q.filter_by(checklist_item_key=checklist_item_key)
    return filter_for_viewer(q.order_by(StageFile.id).all(), viewer.id)


def _get_file(file_id: int, company_id: int) -> StageFile:
    stage_file = db.session.get(StageFile, file_id)
    if stage_file is None or stage_file.stage.project.company_id != company_id:
        raise NotFoundError("StageFile", file_id, company_id)
    return stage_file


def update_access(file_id: int, allowed_user_ids, actor) -> StageFile:
    """Replace a file's allow-list, subject to the stage kind's edit rule."""
    stage_file = _get_file(file_id, actor.company_id)
    stage = stage_file.stage
    responsible_id = stage.project.responsible_user_id

    if stage.kind == "quotation":
        if actor.id != responsible_id:
            raise PermissionDeniedError(
                "Only project responsible user can edit file access for Quotation stage"
            )
    elif stage_file.uploaded_by_id != actor.id and not actor.is_admin:
        raise PermissionDeniedError("Only file uploader or administrators can edit access control")

    allowed = _validate_user_ids(allowed_user_ids, actor.company_id)
    if stage.kind in ACCESS_CONTROLLED_KINDS and not allowed:
        raise ValidationError(ACCESS_LIST_REQUIRED)
    if stage.kind == "quotation" and allowed:
        allowed = _with_user(allowed, responsible_id)

    stage_file.allowed_user_ids = allowed or None
    commit_or_raise("StageFile")
    logger.info("StageFile access updated id=%s by=%s", stage_file.id, actor.id)
    return stage_file


def delete_file(stage_id: int, file_id: int, actor) -> None:
    """Uploader or admin only."""
    stage_file = _get_file(file_id, actor.company_id)
    if stage_file.stage_id != stage_id:
        raise NotFoundError("StageFile", file_id, actor.company_id)
    if stage_file.uploaded_by_id != actor.id and not actor.is_admin:
        raise PermissionDeniedError("Only file uploader or administrators can delete files")
    db.session.delete(stage_file)
    commit_or_raise("StageFile")
    logger.info("StageFile deleted id=%s by=%s", file_id, actor.id)


def check_object_access(object_path: str, viewer) -> StageFile | None:
    """Authorize a download of ``object_path``.

    Returns the matching file record (None for objects not tracked as
    stage files). Raises PermissionDeniedError when the file is restricted
    and ``viewer`` is not on its list.
    """
    stage_file = StageFile.query.filter_by(file_url=object_path).first()
    if stage_file is None:
        return None
    if stage_file.stage.project.company_id != viewer.company_id:
        raise NotFoundError("StageFile", stage_file.id, viewer.company_id)
    if not stage_file.is_visible_to(viewer.id):
        raise PermissionDeniedError("Access denied to this file")
    return stage_file