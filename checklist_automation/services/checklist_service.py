"""Checklist service layer — item toggles and denormalized counters.

Transaction policy: ``toggle_checklist_item`` commits, because the toggle
must be durable before status automation runs against it. The other helpers
only flush.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select

from checklist_automation.core.exceptions import NotFoundError, ValidationError
from checklist_automation.models import db
from checklist_automation.models.checklist import Checklist, ChecklistItem
from checklist_automation.models.status_history import StatusHistory
from checklist_automation.models.work_item import WORK_ITEM_TYPES

logger = logging.getLogger(__name__)


def get_checklist(checklist_id):
    checklist = db.session.get(Checklist, checklist_id)
    if checklist is None:
        raise NotFoundError(resource="Checklist", resource_id=checklist_id)
    return checklist


def _lock_checklist(checklist_id):
    """Re-read a checklist under a row lock so counter updates serialize."""
    stmt = (
        select(Checklist)
        .where(Checklist.id == checklist_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one()


def recount_checklist(checklist):
    """Resync ``total_items`` / ``completed_items`` from the item rows."""
    db.session.flush()
    checklist.recount()
    db.session.flush()
    return checklist


def toggle_checklist_item(item_id, is_completed, user_id=None):
    """Set an item's completion flag and keep its checklist's counters in sync.

    Args:
        item_id: ChecklistItem primary key.
        is_completed: New completion state.
        user_id: Who toggled the item (stored on completion).

    Returns:
        The updated ChecklistItem (committed).

    Raises:
        NotFoundError: Unknown item.
        ValidationError: ``is_completed`` is not a boolean.
    """
    if not isinstance(is_completed, bool):
        raise ValidationError(
            "is_completed must be true or false",
            details={"is_completed": "boolean required"},
        )

    item = db.session.get(ChecklistItem, item_id)
    if item is None:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id)

    # Held until commit: recounts of one checklist run one at a time.
    checklist = _lock_checklist(item.checklist_id)

    if item.is_completed != is_completed:
        item.is_completed = is_completed
        if is_completed:
            item.completed_at = datetime.now(timezone.utc)
            item.completed_by = user_id
        else:
            item.completed_at = None
            item.completed_by = None

    recount_checklist(checklist)
    db.session.commit()
    logger.debug(
        "Checklist item %s set to %s (checklist %s: %s/%s)",
        item.id, is_completed, item.checklist_id,
        checklist.completed_items, checklist.total_items,
    )
    return item


def status_history_query(item_type, item_id):
    """Query for one work item's status history, newest first."""
    if item_type not in WORK_ITEM_TYPES:
        raise ValidationError(
            f"item_type must be one of {sorted(WORK_ITEM_TYPES)}",
            details={"item_type": "invalid"},
        )
    return (
        StatusHistory.query
        .filter_by(item_type=item_type, item_id=item_id)
        .order_by(StatusHistory.changed_at.desc(), StatusHistory.id.desc())
    )


def list_status_history(item_type, item_id):
    return status_history_query(item_type, item_id).all()
