"""Completion action rule store.

Transaction policy: methods use flush(), never commit().
Caller (route handler / CLI) is responsible for db.session.commit().

Operations:
- list_rules: active rules in canonical precedence order
- get_rule: single rule lookup
- upsert_rule: insert-or-update keyed by (entity_type, project_id, source_status)
- deactivate_rule: soft delete

Precedence order (also used by the rule matcher):
    1. project-scoped rules before global rules
    2. entity type
    3. specific source status before wildcard source status
    4. lowest id first (explicit tiebreak)
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from checklist_automation.core.exceptions import NotFoundError, ValidationError
from checklist_automation.models import db
from checklist_automation.models.completion_rule import (
    CompletionActionRule,
    MAX_THRESHOLD,
    MIN_THRESHOLD,
    RULE_ENTITY_TYPES,
)

logger = logging.getLogger(__name__)


def precedence_order():
    """ORDER BY clauses implementing the canonical rule precedence."""
    return (
        CompletionActionRule.project_id.is_(None),
        CompletionActionRule.entity_type,
        CompletionActionRule.source_status.is_(None),
        CompletionActionRule.id,
    )


def precedence_key(rule):
    """Python equivalent of ``precedence_order`` for in-memory sorting."""
    return (
        rule.project_id is None,
        rule.entity_type,
        rule.source_status is None,
        rule.id if rule.id is not None else 0,
    )


def list_rules(project_id=None, entity_type=None):
    """Return active rules, optionally narrowed to a project and entity type.

    A ``project_id`` filter keeps the project's own rules *and* the global
    ones, since both can apply to that project.
    """
    q = CompletionActionRule.query.filter(CompletionActionRule.is_active.is_(True))
    if project_id is not None:
        q = q.filter(
            (CompletionActionRule.project_id == project_id)
            | (CompletionActionRule.project_id.is_(None))
        )
    if entity_type is not None:
        q = q.filter(CompletionActionRule.entity_type == entity_type)
    return q.order_by(*precedence_order()).all()


def get_rule(rule_id):
    rule = db.session.get(CompletionActionRule, rule_id)
    if rule is None:
        raise NotFoundError(resource="CompletionActionRule", resource_id=rule_id)
    return rule


def _coerce_threshold(value):
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(
            "completion_threshold must be a whole number",
            details={"completion_threshold": "not a whole number"},
        )
    try:
        threshold = int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "completion_threshold must be a whole number",
            details={"completion_threshold": "not a whole number"},
        ) from None
    if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
        raise ValidationError(
            f"Completion threshold must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}",
            details={"completion_threshold": "out of range"},
        )
    return threshold


def _blank_to_none(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def validate_rule_data(data):
    """Normalise and validate a rule payload.

    Returns:
        dict with entity_type, project_id, source_status, target_status,
        completion_threshold, notify_assignee, created_by.

    Raises:
        ValidationError: Bad entity type, threshold or missing target status.
    """
    if not isinstance(data, dict):
        raise ValidationError(
            "Rule payload must be a JSON object",
            details={"body": "object required"},
        )

    entity_type = data.get("entity_type")
    if entity_type not in RULE_ENTITY_TYPES:
        raise ValidationError(
            'Invalid entity_type. Must be "issue" or "action_item"',
            details={"entity_type": f"must be one of {sorted(RULE_ENTITY_TYPES)}"},
        )

    target_status = _blank_to_none(data.get("target_status"))
    if not target_status:
        raise ValidationError(
            "target_status is required",
            details={"target_status": "required"},
        )

    project_id = data.get("project_id")
    if project_id is not None:
        try:
            project_id = int(project_id)
        except (TypeError, ValueError):
            raise ValidationError(
                "project_id must be an integer or null",
                details={"project_id": "not an integer"},
            ) from None

    return {
        "entity_type": entity_type,
        "project_id": project_id,
        "source_status": _blank_to_none(data.get("source_status")),
        "target_status": target_status,
        "completion_threshold": _coerce_threshold(data.get("completion_threshold", MAX_THRESHOLD)),
        "notify_assignee": bool(data.get("notify_assignee", False)),
        "created_by": data.get("created_by"),
    }


def _find_by_scope(entity_type, project_id, source_status):
    """Rule row (active or not) for a scope triple; NULLs compare as equal."""
    stmt = select(CompletionActionRule).where(CompletionActionRule.entity_type == entity_type)
    if project_id is None:
        stmt = stmt.where(CompletionActionRule.project_id.is_(None))
    else:
        stmt = stmt.where(CompletionActionRule.project_id == project_id)
    if source_status is None:
        stmt = stmt.where(CompletionActionRule.source_status.is_(None))
    else:
        stmt = stmt.where(CompletionActionRule.source_status == source_status)
    stmt = stmt.order_by(CompletionActionRule.id).with_for_update()
    return db.session.execute(stmt).scalars().first()


def _apply_rule_values(rule, values):
    was_active = rule.is_active
    rule.target_status = values["target_status"]
    rule.completion_threshold = values["completion_threshold"]
    rule.notify_assignee = values["notify_assignee"]
    rule.is_active = True
    logger.info(
        "Updated completion rule %s%s", rule.id, "" if was_active else " (reactivated)",
    )


def upsert_rule(data):
    """Create or update the rule for ``(entity_type, project_id, source_status)``.

    On conflict the existing row gets the new target status, threshold and
    notify flag and is forced active, so re-saving a deactivated rule
    reactivates it. ``created_by`` is kept from the first save. The insert
    runs in a savepoint: if a concurrent save wins the unique scope index,
    the winner's row is re-read and updated instead.

    Returns:
        CompletionActionRule instance (already flushed).

    Raises:
        ValidationError: See ``validate_rule_data``.
    """
    values = validate_rule_data(data)
    scope = (values["entity_type"], values["project_id"], values["source_status"])

    rule = _find_by_scope(*scope)
    if rule is None:
        rule = CompletionActionRule(**values, is_active=True)
        try:
            with db.session.begin_nested():
                db.session.add(rule)
                db.session.flush()
        except IntegrityError:
            # A concurrent save inserted the same scope after our lookup.
            rule = _find_by_scope(*scope)
            if rule is None:
                raise
            logger.info("Completion rule %s inserted concurrently, updating it", rule.id)
        else:
            logger.info(
                "Created completion rule %s/%s: %s → %s @%s%%",
                values["entity_type"], values["project_id"] or "global",
                values["source_status"] or "*", values["target_status"],
                values["completion_threshold"],
            )
            return rule

    _apply_rule_values(rule, values)
    db.session.flush()
    return rule


def deactivate_rule(rule_id):
    """Soft-delete a rule by flipping ``is_active``.

    Returns:
        The deactivated CompletionActionRule.

    Raises:
        NotFoundError: No rule with that id.
    """
    rule = get_rule(rule_id)
    rule.is_active = False
    db.session.flush()
    logger.info("Deactivated completion rule %s", rule.id)
    return rule
