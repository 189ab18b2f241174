"""
History Ledger service layer.

Two append-only streams per stage: status transitions and deadline
changes. Writers add and flush the row but never commit, so the row and
the stage update it describes land in one transaction owned by the
calling service. Rows are never updated or deleted here.
"""

import logging

from sourcetrack.models import db
from sourcetrack.models.history import DeadlineHistory, StatusHistory

logger = logging.getLogger(__name__)

INITIAL_DEADLINE_REASON = "Initial deadline set"


def record_status_change(stage, new_status, actor_id) -> StatusHistory:
    """Append one ``old -> new`` status row for ``stage``."""
    row = StatusHistory(
        stage_id=stage.id,
        old_status=stage.status,
        new_status=new_status,
        changed_by_id=actor_id,
    )
    db.session.add(row)
    db.session.flush()
    logger.info(
        "Stage status change logged stage=%s %s->%s by=%s",
        stage.id, stage.status, new_status, actor_id,
    )
    return row


def record_deadline_change(stage, new_deadline, reason, actor_id) -> DeadlineHistory:
    """Append one deadline row; ``reason`` falls back to the initial-set text."""
    row = DeadlineHistory(
        stage_id=stage.id,
        old_deadline=stage.deadline,
        new_deadline=new_deadline,
        reason=reason or INITIAL_DEADLINE_REASON,
        changed_by_id=actor_id,
    )
    db.session.add(row)
    db.session.flush()
    logger.info("Stage deadline change logged stage=%s by=%s", stage.id, actor_id)
    return row


def get_stage_history(stage_id: int) -> dict:
    """Both streams for a stage, newest first, with the acting user resolved."""
    status_rows = (
        StatusHistory.query.filter_by(stage_id=stage_id)
        .order_by(StatusHistory.created_at.desc(), StatusHistory.id.desc())
        .all()
    )
    deadline_rows = (
        DeadlineHistory.query.filter_by(stage_id=stage_id)
        .order_by(DeadlineHistory.created_at.desc(), DeadlineHistory.id.desc())
        .all()
    )
    return {
        "statusHistory": [r.to_dict() for r in status_rows],
        "deadlineHistory": [r.to_dict() for r in deadline_rows],
    }
