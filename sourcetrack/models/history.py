"""
History ledger: append-only status and deadline transitions per stage.

Rows are only ever inserted. Writers flush instead of committing so the
row lands in the same transaction as the stage update it describes.
"""

from datetime import datetime, timezone

from sourcetrack.models import db


def _changed_by(user):
    if user is None:
        return {"id": None, "name": "Unknown"}
    return {**user.to_brief(), "name": user.display_name}


class StatusHistory(db.Model):
    __tablename__ = "status_history"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_status = db.Column(db.String(20))
    new_status = db.Column(db.String(20), nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    stage = db.relationship("Stage", back_populates="status_history")
    changed_by = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "stageId": self.stage_id,
            "oldStatus": self.old_status,
            "newStatus": self.new_status,
            "changedById": self.changed_by_id,
            "changedBy": _changed_by(self.changed_by),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class DeadlineHistory(db.Model):
    __tablename__ = "deadline_history"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_deadline = db.Column(db.Date)
    new_deadline = db.Column(db.Date)
    reason = db.Column(db.Text, nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    stage = db.relationship("Stage", back_populates="deadline_history")
    changed_by = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "stageId": self.stage_id,
            "oldDeadline": self.old_deadline.isoformat() if self.old_deadline else None,
            "newDeadline": self.new_deadline.isoformat() if self.new_deadline else None,
            "reason": self.reason,
            "changedById": self.changed_by_id,
            "changedBy": _changed_by(self.changed_by),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
