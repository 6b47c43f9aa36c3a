"""
Checklist Automation Service
Work item domain models.

Models:
    - Issue: a current problem tracked inside a project
    - ActionItem: a tracked follow-up task inside a project

Both variants expose the same automatable surface (status, assignee,
project_id) so the completion engine can treat them uniformly through
``checklist_automation.repositories.work_items``.
"""

from datetime import datetime, timezone

from checklist_automation.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ENTITY_ISSUE = "issue"
ENTITY_ACTION_ITEM = "action_item"

WORK_ITEM_TYPES = {ENTITY_ISSUE, ENTITY_ACTION_ITEM}


def _utcnow():
    return datetime.now(timezone.utc)


class WorkItemMixin:
    """Columns and serialisation shared by Issue and ActionItem."""

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=True, index=True, comment="Owning project (external)")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(50), nullable=False, default="To Do", index=True)
    assignee = db.Column(db.String(150), nullable=True, comment="Username of the assignee")
    priority = db.Column(db.String(20), default="medium")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    entity_type = None

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "assignee": self.assignee,
            "priority": self.priority,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  ISSUE
# ═══════════════════════════════════════════════════════════════════════════

class Issue(WorkItemMixin, db.Model):
    """A current problem / impediment affecting a project."""

    __tablename__ = "issues"

    entity_type = ENTITY_ISSUE

    severity = db.Column(db.String(20), default="moderate")

    def to_dict(self):
        data = super().to_dict()
        data["severity"] = self.severity
        return data

    def __repr__(self):
        return f"<Issue {self.id}: {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  ACTION ITEM
# ═══════════════════════════════════════════════════════════════════════════

class ActionItem(WorkItemMixin, db.Model):
    """A tracked action item linked to a project."""

    __tablename__ = "action_items"

    entity_type = ENTITY_ACTION_ITEM

    due_date = db.Column(db.Date, nullable=True)

    def to_dict(self):
        data = super().to_dict()
        data["due_date"] = self.due_date.isoformat() if self.due_date else None
        return data

    def __repr__(self):
        return f"<ActionItem {self.id}: {self.title[:40]}>"
