"""Checklist-driven status automation.

Entry point called after every checklist item completion toggle:

    from checklist_automation.services.status_automation import on_checklist_changed

    result = on_checklist_changed(checklist_id)   # AutomationResult | None

Sequence for one run:
    1. resolve the checklist (gone → no-op)
    2. resolve the linked issue / action item (none → no-op)
    3. read the work item's current status (gone → no-op)
    4. aggregate completion over *all* its non-standalone checklists
    5. match the highest-precedence rule
    6. no rule, or target == current status → no-op
    7. apply the transition, commit, then queue a notification intent when
       the rule asks for it and the item has an assignee

Reliability contract: ``on_checklist_changed`` never raises. Failures are
captured on an ``AutomationRun`` by ``evaluate_checklist``, the session is
rolled back, and the public entry point logs the error and returns None.
The checklist update that triggered the run has already been committed by
its caller and is not affected.
"""

import logging
from dataclasses import dataclass

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from checklist_automation.core.exceptions import (
    EngineError,
    StorageUnavailableError,
    TransitionFailedError,
)
from checklist_automation.models import db
from checklist_automation.models.checklist import Checklist
from checklist_automation.models.completion_rule import CompletionActionRule
from checklist_automation.repositories.work_items import get_repository
from checklist_automation.services.completion_calculator import (
    CompletionSummary,
    compute_aggregate_completion,
)
from checklist_automation.services.notification import NotificationService
from checklist_automation.services.rule_matcher import match_rule
from checklist_automation.services.transition_applier import apply_transition

logger = logging.getLogger(__name__)


@dataclass
class AutomationResult:
    """Outcome of a run that changed a work item's status."""

    entity_type: str
    entity_id: int
    old_status: str
    new_status: str
    completion: CompletionSummary
    rule: CompletionActionRule
    notified: bool = False

    def to_dict(self):
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "completion": self.completion.to_dict(),
            "rule": self.rule.to_dict(),
            "notified": self.notified,
        }


@dataclass
class AutomationRun:
    """Internal result of one evaluation: a result, a no-op, or an error."""

    checklist_id: int
    result: AutomationResult | None = None
    error: EngineError | None = None

    @property
    def ok(self):
        return self.error is None

    @property
    def changed(self):
        return self.result is not None


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _load_checklist(checklist_id):
    try:
        return db.session.get(Checklist, checklist_id)
    except SQLAlchemyError as exc:
        raise StorageUnavailableError(
            f"Could not load checklist: {exc}", checklist_id=checklist_id,
        ) from exc


def _load_work_item(entity_type, entity_id, checklist_id):
    try:
        return get_repository(entity_type).get(entity_id)
    except SQLAlchemyError as exc:
        raise StorageUnavailableError(
            f"Could not load {entity_type}: {exc}",
            checklist_id=checklist_id, entity_type=entity_type, entity_id=entity_id,
        ) from exc


def _queue_notification(item, entity_type, old_status, new_status):
    """Record a notify intent. Failure here never undoes the committed transition."""
    try:
        NotificationService.notify_status_automation(
            item.assignee, entity_type, item.id, old_status, new_status,
            project_id=item.project_id,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning(
            "Notification intent failed for %s %s, transition kept",
            entity_type, item.id, exc_info=True,
        )
        return False
    logger.info("Queued status notification for %s on %s %s", item.assignee, entity_type, item.id)
    return True


def _run(checklist_id):
    checklist = _load_checklist(checklist_id)
    if checklist is None:
        logger.info("Checklist %s not found, skipping automation", checklist_id)
        return None

    link = checklist.linked_work_item
    if link is None:
        logger.debug("Checklist %s is not linked to an issue or action item", checklist_id)
        return None
    entity_type, entity_id = link

    item = _load_work_item(entity_type, entity_id, checklist_id)
    if item is None:
        logger.info("%s %s linked from checklist %s not found", entity_type, entity_id, checklist_id)
        return None
    current_status = item.status
    project_id = item.project_id

    completion = compute_aggregate_completion(entity_type, entity_id)

    rule = match_rule(entity_type, project_id, current_status, completion.percentage)
    if rule is None:
        return None
    if rule.target_status == current_status:
        logger.debug(
            "%s %s already has target status %r", entity_type, entity_id, current_status,
        )
        return None

    updated = apply_transition(entity_type, entity_id, current_status, rule.target_status, project_id)
    if updated is None:
        db.session.rollback()
        return None

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        raise TransitionFailedError(
            f"Commit failed for {entity_type} {entity_id}: {exc}",
            checklist_id=checklist_id, entity_type=entity_type, entity_id=entity_id,
        ) from exc

    result = AutomationResult(
        entity_type=entity_type,
        entity_id=entity_id,
        old_status=current_status,
        new_status=rule.target_status,
        completion=completion,
        rule=rule,
    )

    if (
        rule.notify_assignee
        and updated.assignee
        and _config("AUTOMATION_NOTIFY_ENABLED", True)
    ):
        result.notified = _queue_notification(updated, entity_type, current_status, rule.target_status)

    return result


def evaluate_checklist(checklist_id) -> AutomationRun:
    """Run the automation for one checklist and report the outcome explicitly.

    Returns:
        AutomationRun with ``result`` set when a transition was applied,
        ``error`` set when the run failed, neither for a benign no-op.
    """
    run = AutomationRun(checklist_id=checklist_id)
    try:
        run.result = _run(checklist_id)
    except EngineError as exc:
        if exc.checklist_id is None:
            exc.checklist_id = checklist_id
        run.error = exc
    except Exception as exc:
        # Malformed data or an unexpected bug: still must not escape.
        error = EngineError(
            f"Unexpected automation failure: {exc!r}", checklist_id=checklist_id,
        )
        error.__cause__ = exc
        run.error = error

    if run.error is not None:
        try:
            db.session.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback after failed automation run also failed", exc_info=True)
    return run


def on_checklist_changed(checklist_id):
    """Public entry point. Returns AutomationResult or None, never raises."""
    if not _config("AUTOMATION_ENABLED", True):
        logger.debug("Status automation disabled, ignoring checklist %s", checklist_id)
        return None

    logger.debug("Checking completion actions for checklist %s", checklist_id)
    run = evaluate_checklist(checklist_id)
    if not run.ok:
        err = run.error
        logger.error(
            "Status automation failed for checklist %s (%s %s): %s",
            checklist_id, err.entity_type or "-", err.entity_id or "-", err,
            exc_info=(type(err), err, err.__traceback__),
            extra={
                "checklist_id": checklist_id,
                "entity_type": err.entity_type,
                "entity_id": err.entity_id,
            },
        )
        return None
    return run.result
