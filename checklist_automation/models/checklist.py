"""
Checklist Automation Service
Checklist domain models.

Models:
    - Checklist: a collection of boolean items, optionally linked to one
      issue or action item
    - ChecklistItem: a single completable line of a checklist

``Checklist.total_items`` / ``Checklist.completed_items`` are denormalized
counters. Whoever mutates checklist items must call ``recount()`` before the
transaction is committed; the completion engine aggregates these counters
rather than the item rows.
"""

from datetime import datetime, timezone

from sqlalchemy import case, func

from checklist_automation.models import db
from checklist_automation.models.work_item import ENTITY_ACTION_ITEM, ENTITY_ISSUE


def _utcnow():
    return datetime.now(timezone.utc)


class Checklist(db.Model):
    """A checklist owned by a project, optionally attached to a work item."""

    __tablename__ = "checklists"
    __table_args__ = (
        db.Index("idx_checklists_related_issue", "related_issue_id"),
        db.Index("idx_checklists_related_action", "related_action_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")

    related_issue_id = db.Column(
        db.Integer, db.ForeignKey("issues.id", ondelete="SET NULL"), nullable=True,
    )
    related_action_id = db.Column(
        db.Integer, db.ForeignKey("action_items.id", ondelete="SET NULL"), nullable=True,
    )
    is_standalone = db.Column(
        db.Boolean, nullable=True, default=False,
        comment="Standalone checklists never drive status automation",
    )

    total_items = db.Column(db.Integer, nullable=False, default=0)
    completed_items = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "ChecklistItem",
        back_populates="checklist",
        cascade="all, delete-orphan",
        order_by="ChecklistItem.position",
        lazy="select",
    )

    @property
    def linked_work_item(self):
        """Return ``(entity_type, entity_id)`` of the linked work item, or None."""
        if self.related_issue_id:
            return ENTITY_ISSUE, self.related_issue_id
        if self.related_action_id:
            return ENTITY_ACTION_ITEM, self.related_action_id
        return None

    def recount(self):
        """Recompute the denormalized counters from the item rows."""
        total, completed = (
            db.session.query(
                func.count(ChecklistItem.id),
                func.sum(case((ChecklistItem.is_completed.is_(True), 1), else_=0)),
            )
            .filter(ChecklistItem.checklist_id == self.id)
            .one()
        )
        self.total_items = int(total or 0)
        self.completed_items = int(completed or 0)

    def to_dict(self, include_items=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "related_issue_id": self.related_issue_id,
            "related_action_id": self.related_action_id,
            "is_standalone": bool(self.is_standalone),
            "total_items": self.total_items,
            "completed_items": self.completed_items,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self):
        return f"<Checklist {self.id}: {self.title[:40]}>"


class ChecklistItem(db.Model):
    """One binary line of a checklist."""

    __tablename__ = "checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    checklist_id = db.Column(
        db.Integer, db.ForeignKey("checklists.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    item_text = db.Column(db.String(500), nullable=False)
    position = db.Column(db.Integer, default=0)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(150), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    checklist = db.relationship("Checklist", back_populates="items")

    def to_dict(self):
        return {
            "id": self.id,
            "checklist_id": self.checklist_id,
            "item_text": self.item_text,
            "position": self.position,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_by": self.completed_by,
        }

    def __repr__(self):
        return f"<ChecklistItem {self.id} done={self.is_completed}>"
