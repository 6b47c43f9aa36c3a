"""Checklist completion calculator.

Two read-only views of completion:

- ``compute_aggregate_completion`` sums the denormalized counters of every
  non-standalone checklist attached to a work item. This is the figure the
  status automation compares against rule thresholds.
- ``compute_checklist_completion`` counts the item rows of one checklist.

Percentages are rounded half-up to the nearest integer. With no items at all
the percentage is 0, never 100.
"""

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from checklist_automation.core.exceptions import StorageUnavailableError
from checklist_automation.models import db
from checklist_automation.models.checklist import Checklist, ChecklistItem
from checklist_automation.repositories.work_items import get_repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionSummary:
    total: int
    completed: int
    percentage: int

    def to_dict(self):
        return asdict(self)


def completion_percentage(completed: int, total: int) -> int:
    """Return ``completed / total`` as a whole percent, rounded half-up.

    1 of 8 (12.5%) gives 13; 0 of 0 gives 0.
    """
    if total <= 0:
        return 0
    # floor(x + 0.5) in integer arithmetic; round() would round half to even.
    return (completed * 200 + total) // (total * 2)


def summarize(completed: int, total: int) -> CompletionSummary:
    total = int(total or 0)
    completed = int(completed or 0)
    return CompletionSummary(
        total=total,
        completed=completed,
        percentage=completion_percentage(completed, total),
    )


def compute_aggregate_completion(entity_type: str, entity_id: int) -> CompletionSummary:
    """Aggregate completion across all automation-eligible checklists of a work item.

    Args:
        entity_type: ``issue`` or ``action_item``.
        entity_id: Work item primary key. Existence is the caller's concern.

    Returns:
        CompletionSummary built from the summed ``total_items`` /
        ``completed_items`` counters.

    Raises:
        StorageUnavailableError: The aggregate query failed.
    """
    repo = get_repository(entity_type)
    try:
        total, completed = (
            repo.linked_checklists_query(entity_id)
            .with_entities(
                func.coalesce(func.sum(Checklist.total_items), 0),
                func.coalesce(func.sum(Checklist.completed_items), 0),
            )
            .one()
        )
    except SQLAlchemyError as exc:
        raise StorageUnavailableError(
            f"Could not aggregate checklist completion: {exc}",
            entity_type=entity_type, entity_id=entity_id,
        ) from exc

    summary = summarize(completed, total)
    logger.debug(
        "Aggregate completion for %s %s: %s%% (%s/%s)",
        entity_type, entity_id, summary.percentage, summary.completed, summary.total,
    )
    return summary


def compute_checklist_completion(checklist_id: int) -> CompletionSummary:
    """Completion of a single checklist, counted from its item rows."""
    total, completed = (
        db.session.query(
            func.count(ChecklistItem.id),
            func.sum(case((ChecklistItem.is_completed.is_(True), 1), else_=0)),
        )
        .filter(ChecklistItem.checklist_id == checklist_id)
        .one()
    )
    return summarize(completed, total)
