"""Status transition applier.

Writes an automated status change onto a work item and appends exactly one
StatusHistory row with ``changed_by = NULL`` (system origin).

Transaction policy: the status write and the history row are flushed in the
caller's transaction and must be committed (or rolled back) together by the
caller. Nothing here commits.

Concurrency: the work item row is re-read with ``SELECT ... FOR UPDATE``
right before the write. The write is skipped (no history row, result None)
when the row no longer carries ``from_status``: either a concurrent run
already moved it to the target, or someone else changed it in the meantime
and the decision is stale.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from checklist_automation.core.exceptions import TransitionFailedError
from checklist_automation.models.status_history import write_status_history
from checklist_automation.repositories.work_items import get_repository

logger = logging.getLogger(__name__)


def apply_transition(entity_type, entity_id, from_status, to_status, project_id):
    """Move a work item from ``from_status`` to ``to_status``.

    Args:
        entity_type: ``issue`` or ``action_item``.
        entity_id: Work item primary key.
        from_status: Status the decision was based on.
        to_status: Target status of the matched rule.
        project_id: Project recorded on the history row.

    Returns:
        The updated work item, or None when the write was skipped because
        the row no longer carries ``from_status``.

    Raises:
        ValueError: ``from_status == to_status``. Self-transitions must be
            filtered out before calling; they would log a bogus history row.
        TransitionFailedError: The work item vanished or the write failed.
    """
    if from_status == to_status:
        raise ValueError(
            f"Refusing self-transition {from_status!r} → {to_status!r} "
            f"for {entity_type} {entity_id}"
        )

    repo = get_repository(entity_type)
    try:
        item = repo.get(entity_id, for_update=True)
        if item is None:
            raise TransitionFailedError(
                f"{entity_type} {entity_id} disappeared before its status could be written",
                entity_type=entity_type, entity_id=entity_id,
            )

        if item.status != from_status:
            if item.status == to_status:
                logger.info(
                    "%s %s already at %r, skipping duplicate transition",
                    entity_type, entity_id, to_status,
                )
            else:
                logger.warning(
                    "%s %s moved from %r to %r while evaluating, skipping stale transition to %r",
                    entity_type, entity_id, from_status, item.status, to_status,
                )
            return None

        repo.set_status(item, to_status)
        write_status_history(
            item_type=entity_type,
            item_id=entity_id,
            project_id=project_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=None,
        )
    except SQLAlchemyError as exc:
        raise TransitionFailedError(
            f"Could not write status for {entity_type} {entity_id}: {exc}",
            entity_type=entity_type, entity_id=entity_id,
        ) from exc

    logger.info(
        "Updated %s %s status: %r → %r", entity_type, entity_id, from_status, to_status,
        extra={"entity_type": entity_type, "entity_id": entity_id},
    )
    return item
