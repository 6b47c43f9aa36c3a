"""
Checklist Automation Service
Completion action rule model.

Models:
    - CompletionActionRule: threshold-based status transition policy scoped
      by entity type, optional project and optional source status.

A NULL ``project_id`` means the rule applies to every project; a NULL
``source_status`` means it applies whatever the current status is. Rules are
never hard-deleted: ``is_active`` is flipped to False instead.
"""

from datetime import datetime, timezone

from sqlalchemy import func

from checklist_automation.models import db
from checklist_automation.models.work_item import WORK_ITEM_TYPES

RULE_ENTITY_TYPES = WORK_ITEM_TYPES

MIN_THRESHOLD = 0
MAX_THRESHOLD = 100


def _utcnow():
    return datetime.now(timezone.utc)


class CompletionActionRule(db.Model):
    """A configured checklist-completion → status-transition rule."""

    __tablename__ = "checklist_completion_actions"
    __table_args__ = (
        db.Index("idx_completion_action_lookup", "entity_type", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(20), nullable=False, comment="issue | action_item")
    project_id = db.Column(db.Integer, nullable=True, index=True, comment="NULL = global rule")
    source_status = db.Column(db.String(50), nullable=True, comment="NULL = any current status")
    target_status = db.Column(db.String(50), nullable=False)
    completion_threshold = db.Column(db.Integer, nullable=False, default=100, comment="0-100 percent")
    notify_assignee = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by = db.Column(db.String(150), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "project_id": self.project_id,
            "source_status": self.source_status,
            "target_status": self.target_status,
            "completion_threshold": self.completion_threshold,
            "notify_assignee": self.notify_assignee,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return (
            f"<CompletionActionRule {self.id}: {self.entity_type} "
            f"{self.source_status or '*'} → {self.target_status} @{self.completion_threshold}%>"
        )


# One row per scope. NULL project / source status are folded to sentinels so
# two global or wildcard rules for the same scope collide like any other pair.
db.Index(
    "uq_completion_action_scope",
    CompletionActionRule.entity_type,
    func.coalesce(CompletionActionRule.project_id, 0),
    func.coalesce(CompletionActionRule.source_status, ""),
    unique=True,
)
