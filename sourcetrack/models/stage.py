"""
Stage instances and what hangs off them: files, comments, tasks.

A Stage is materialized from a StageTemplate; its ``name`` and ``kind``
are copied at creation and never re-synced. ``position`` is unique within
a project.
"""

from datetime import datetime, timezone

from sourcetrack.models import db


STAGE_STATUSES = {"waiting", "in_progress", "skip", "completed"}
TASK_STATUSES = {"pending", "completed", "needs_revision"}


def _iso(value):
    return value.isoformat() if value else None


class Stage(db.Model):
    __tablename__ = "stages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    template_id = db.Column(
        db.Integer, db.ForeignKey("stage_templates.id", ondelete="SET NULL"), nullable=True
    )
    name = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.String(30), nullable=False, default="generic")
    position = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="waiting")
    start_date = db.Column(db.Date)
    deadline = db.Column(db.Date)
    checklist_data = db.Column(db.JSON)               # key -> bool
    checklist_input_data = db.Column(db.JSON)         # key -> str
    conditional_enabled = db.Column(db.Boolean, nullable=False, default=True)
    conditional_substages_data = db.Column(db.JSON)   # key -> bool
    custom_fields_data = db.Column(db.JSON)           # key -> str
    distribution_data = db.Column(db.JSON)
    product_quantities_data = db.Column(db.JSON)      # product id -> int
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "position", name="uq_stage_project_position"),
    )

    project = db.relationship("Project", back_populates="stages")
    template = db.relationship("StageTemplate")
    files = db.relationship(
        "StageFile", back_populates="stage", order_by="StageFile.id", cascade="all, delete-orphan"
    )
    comments = db.relationship(
        "Comment", back_populates="stage", order_by="Comment.id", cascade="all, delete-orphan"
    )
    tasks = db.relationship(
        "Task", back_populates="stage", order_by="Task.id", cascade="all, delete-orphan"
    )
    status_history = db.relationship(
        "StatusHistory", back_populates="stage", cascade="all, delete-orphan"
    )
    deadline_history = db.relationship(
        "DeadlineHistory", back_populates="stage", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "projectId": self.project_id,
            "templateId": self.template_id,
            "name": self.name,
            "kind": self.kind,
            "position": self.position,
            "status": self.status,
            "startDate": _iso(self.start_date),
            "deadline": _iso(self.deadline),
            "checklistData": self.checklist_data,
            "checklistInputData": self.checklist_input_data,
            "conditionalEnabled": self.conditional_enabled,
            "conditionalSubstagesData": self.conditional_substages_data,
            "customFieldsData": self.custom_fields_data,
            "distributionData": self.distribution_data,
            "productQuantitiesData": self.product_quantities_data,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class StageFile(db.Model):
    __tablename__ = "stage_files"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    checklist_item_key = db.Column(db.String(100))
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(500), nullable=False)
    file_type = db.Column(db.String(100))
    file_size = db.Column(db.Integer)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    version = db.Column(db.Integer, nullable=False, default=1)
    is_latest = db.Column(db.Boolean, nullable=False, default=True)
    allowed_user_ids = db.Column(db.JSON)  # NULL / [] = whole company
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    stage = db.relationship("Stage", back_populates="files")
    uploaded_by = db.relationship("User")

    def is_visible_to(self, user_id):
        """True when the file is company-public or ``user_id`` is on its allow-list."""
        if not self.allowed_user_ids:
            return True
        return user_id is not None and user_id in self.allowed_user_ids

    def to_dict(self):
        return {
            "id": self.id,
            "stageId": self.stage_id,
            "checklistItemKey": self.checklist_item_key,
            "fileName": self.file_name,
            "fileUrl": self.file_url,
            "fileType": self.file_type,
            "fileSize": self.file_size,
            "uploadedById": self.uploaded_by_id,
            "version": self.version,
            "isLatest": self.is_latest,
            "allowedUserIds": self.allowed_user_ids,
            "createdAt": _iso(self.created_at),
        }


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    mentions = db.Column(db.JSON)  # list of user ids
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    stage = db.relationship("Stage", back_populates="comments")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "stageId": self.stage_id,
            "userId": self.user_id,
            "content": self.content,
            "mentions": self.mentions or [],
            "createdAt": _iso(self.created_at),
            "user": self.user.to_brief() if self.user else None,
        }


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description = db.Column(db.Text, nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    revision_note = db.Column(db.Text)
    revision_response = db.Column(db.Text)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    stage = db.relationship("Stage", back_populates="tasks")
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    assigned_by = db.relationship("User", foreign_keys=[assigned_by_id])

    def to_dict(self, include_context=False):
        d = {
            "id": self.id,
            "stageId": self.stage_id,
            "assignedToId": self.assigned_to_id,
            "assignedById": self.assigned_by_id,
            "description": self.description,
            "completed": self.completed,
            "status": self.status,
            "revisionNote": self.revision_note,
            "revisionResponse": self.revision_response,
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
            "assignedTo": self.assigned_to.to_brief() if self.assigned_to else None,
            "assignedBy": self.assigned_by.to_brief() if self.assigned_by else None,
        }
        if include_context and self.stage is not None:
            d["stage"] = {"id": self.stage.id, "name": self.stage.name}
            d["project"] = {"id": self.stage.project.id, "name": self.stage.project.name}
        return d
