"""
Stage collaboration: comments with @-mentions and assigned tasks.

Notification emails are sent after the commit and are best-effort.
"""

import logging
import re
from datetime import datetime, timezone

from sourcetrack.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.auth import User
from sourcetrack.models.stage import TASK_STATUSES, Comment, Task
from sourcetrack.services import email_service
from sourcetrack.services.stage_service import get_stage
from sourcetrack.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500
MENTION_RE = re.compile(r"@\[([^\]]+)\]\(([^)]+)\)")


# ═══════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════
def parse_mentions(content: str) -> list[int]:
    """User ids from ``@[Display Name](id)`` markup, in order, without repeats."""
    ids = []
    for _, raw_id in MENTION_RE.findall(content):
        if raw_id.strip().isdigit():
            uid = int(raw_id)
            if uid not in ids:
                ids.append(uid)
    return ids


def add_comment(stage_id: int, content, author) -> Comment:
    stage = get_stage(stage_id, author.company_id)
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Invalid data", details={"content": "Content is required"})
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            "Invalid data",
            details={"content": f"Comment must be {MAX_COMMENT_LENGTH} characters or less"},
        )

    mentioned = parse_mentions(content)
    recipients = []
    if mentioned:
        recipients = (
            User.query.filter(User.id.in_(mentioned), User.company_id == author.company_id).all()
        )

    comment = Comment(
        stage_id=stage.id,
        user_id=author.id,
        content=content,
        mentions=mentioned or None,
    )
    db.session.add(comment)
    commit_or_raise("Comment")
    logger.info("Comment created id=%s stage=%s mentions=%d", comment.id, stage.id, len(mentioned))

    for user in recipients:
        if user.id != author.id:
            email_service.send_mention_email(comment, user)
    return comment


# ═══════════════════════════════════════════════════════════════
# Tasks
# ═══════════════════════════════════════════════════════════════
def _get_task(task_id: int, company_id: int) -> Task:
    task = db.session.get(Task, task_id)
    if task is None or task.stage.project.company_id != company_id:
        raise NotFoundError("Task", task_id, company_id)
    return task


def create_task(stage_id: int, data: dict, assigner) -> Task:
    stage = get_stage(stage_id, assigner.company_id)
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("Invalid data", details={"description": "Description is required"})
    assignee_id = data.get("assignedToId")
    if isinstance(assignee_id, bool) or not isinstance(assignee_id, int):
        raise ValidationError("Invalid data", details={"assignedToId": "Assignee is required"})
    assignee = db.session.get(User, assignee_id)
    if assignee is None or assignee.company_id != assigner.company_id:
        raise ValidationError("Invalid data", details={"assignedToId": "Not a member of this company"})

    task = Task(
        stage_id=stage.id,
        description=description.strip(),
        assigned_to_id=assignee.id,
        assigned_by_id=assigner.id,
        completed=False,
        status="pending",
    )
    db.session.add(task)
    commit_or_raise("Task")
    logger.info("Task created id=%s stage=%s to=%s", task.id, stage.id, assignee.id)

    if assignee.id != assigner.id:
        email_service.send_task_assigned_email(task)
    return task


def list_incoming(user) -> list[dict]:
    tasks = Task.query.filter_by(assigned_to_id=user.id).order_by(Task.created_at.desc(), Task.id.desc()).all()
    return [t.to_dict(include_context=True) for t in tasks]


def list_outgoing(user) -> list[dict]:
    tasks = Task.query.filter_by(assigned_by_id=user.id).order_by(Task.created_at.desc(), Task.id.desc()).all()
    return [t.to_dict(include_context=True) for t in tasks]


def _optional_text(data, key):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError("Invalid data", details={key: "Expected a string"})
    return value or None


def update_task(task_id: int, data: dict, actor) -> Task:
    """Assignee or assigner. Completion flag and status move together."""
    task = _get_task(task_id, actor.company_id)
    if actor.id not in (task.assigned_to_id, task.assigned_by_id):
        raise PermissionDeniedError("You can only update tasks assigned to you or by you")

    if "description" in data:
        if actor.id != task.assigned_by_id:
            raise PermissionDeniedError("Only the task sender can edit the description")
        description = data["description"]
        if not isinstance(description, str) or not description.strip():
            raise ValidationError("Invalid data", details={"description": "Description is required"})
        task.description = description.strip()
    if "completed" in data and not isinstance(data["completed"], bool):
        raise ValidationError("Invalid data", details={"completed": "Expected a boolean"})
    if "status" in data and data["status"] not in TASK_STATUSES:
        raise ValidationError(
            "Invalid data", details={"status": f"Must be one of: {', '.join(sorted(TASK_STATUSES))}"}
        )
    if "revisionNote" in data:
        task.revision_note = _optional_text(data, "revisionNote")
    if "revisionResponse" in data:
        task.revision_response = _optional_text(data, "revisionResponse")

    completed, status = data.get("completed"), data.get("status")
    if completed is True or status == "completed":
        task.completed = True
        task.status = "completed"
        task.completed_at = datetime.now(timezone.utc)
    elif completed is False or status == "pending":
        task.completed = False
        task.status = "pending"
        task.completed_at = None
    elif status == "needs_revision":
        task.status = "needs_revision"

    commit_or_raise("Task")
    logger.info("Task updated id=%s status=%s by=%s", task.id, task.status, actor.id)
    return task


def request_revision(task_id: int, revision_note, actor) -> Task:
    task = _get_task(task_id, actor.company_id)
    if actor.id != task.assigned_to_id:
        raise PermissionDeniedError("Only the task recipient can request revision")
    if revision_note is not None and not isinstance(revision_note, str):
        raise ValidationError("Invalid data", details={"revisionNote": "Expected a string"})
    task.status = "needs_revision"
    task.revision_note = revision_note or None
    task.completed = False
    task.completed_at = None
    commit_or_raise("Task")
    logger.info("Task revision requested id=%s", task.id)
    return task


def delete_task(task_id: int, actor) -> None:
    task = _get_task(task_id, actor.company_id)
    if actor.id != task.assigned_by_id:
        raise PermissionDeniedError("Only the task sender can delete the task")
    if task.status == "completed":
        raise ValidationError("Cannot delete a completed task")
    db.session.delete(task)
    commit_or_raise("Task")
    logger.info("Task deleted id=%s by=%s", task_id, actor.id)
