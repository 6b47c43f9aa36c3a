"""
Checklist Automation Service
Status history model.

Models:
    - StatusHistory: immutable, append-only record of work item status
      changes. ``changed_by`` is NULL when the change was made by the
      completion engine rather than a user.
"""

from datetime import datetime, timezone

from checklist_automation.models import db


class StatusHistory(db.Model):
    """One row per applied status transition."""

    __tablename__ = "status_history"
    __table_args__ = (
        db.Index("idx_status_history_item", "item_type", "item_id"),
        db.Index("idx_status_history_project", "project_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(20), nullable=False, comment="issue | action_item")
    item_id = db.Column(db.Integer, nullable=False)
    project_id = db.Column(db.Integer, nullable=True)
    from_status = db.Column(db.String(50), nullable=True)
    to_status = db.Column(db.String(50), nullable=False)
    changed_by = db.Column(db.String(150), nullable=True, comment="NULL = system automation")
    changed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_automated(self):
        return self.changed_by is None

    def to_dict(self):
        return {
            "id": self.id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "project_id": self.project_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "is_automated": self.is_automated,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }

    def __repr__(self):
        return (
            f"<StatusHistory {self.id}: {self.item_type}/{self.item_id} "
            f"{self.from_status} → {self.to_status}>"
        )


# ── Convenience writer ───────────────────────────────────────────────────────

def write_status_history(
    *,
    item_type: str,
    item_id: int,
    to_status: str,
    from_status: str | None = None,
    project_id: int | None = None,
    changed_by: str | None = None,
) -> StatusHistory:
    """
    Append a single status history row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) StatusHistory instance.
    """
    entry = StatusHistory(
        item_type=item_type,
        item_id=item_id,
        project_id=project_id,
        from_status=from_status,
        to_status=to_status,
        changed_by=changed_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
