"""
Checklist Automation Service
Notification Service.

Records notification intents for downstream delivery (email, chat). The
completion engine only decides *whether* an assignee should hear about an
automated transition; it never delivers anything itself.
"""

from datetime import datetime, timezone

from checklist_automation.models import db
from checklist_automation.models.notification import Notification


_ENTITY_LABELS = {"issue": "Issue", "action_item": "Action item"}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient, title, message="", category="system", severity="info",
               project_id=None, entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (flushed, not committed).
        """
        notif = Notification(
            project_id=project_id,
            recipient=recipient,
            title=title,
            message=message,
            category=category,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient=recipient)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient=recipient, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.flush()
        return notif

    @staticmethod
    def mark_all_read(recipient):
        """Mark all notifications for a recipient as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(recipient=recipient, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.flush()
        return count

    # ── Status automation ─────────────────────────────────────────────────

    @staticmethod
    def notify_status_automation(assignee, entity_type, entity_id, old_status, new_status,
                                 project_id=None):
        """Queue a notice that checklist completion changed a work item's status."""
        label = _ENTITY_LABELS.get(entity_type, entity_type)
        return NotificationService.create(
            recipient=assignee,
            title=f"{label} #{entity_id} moved to {new_status}",
            message=(
                f"Checklist completion moved {label.lower()} #{entity_id} "
                f"from '{old_status}' to '{new_status}'."
            ),
            category="status_automation",
            severity="info",
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
        )
