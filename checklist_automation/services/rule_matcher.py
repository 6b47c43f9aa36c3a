"""Completion rule matcher.

Picks the single rule that should fire for a work item, given its current
status and its aggregate checklist completion.

A rule qualifies when all of the following hold:
    - same entity type
    - same project, or the rule is global (project_id NULL)
    - same source status, or the rule is a wildcard (source_status NULL)
    - the rule is active
    - percentage >= completion_threshold

The winner is the first qualifying rule in the rule store's precedence
order: project-scoped before global, specific source status before
wildcard, then lowest id.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from checklist_automation.core.exceptions import StorageUnavailableError
from checklist_automation.services.completion_rule_service import list_rules, precedence_key

logger = logging.getLogger(__name__)


def rule_qualifies(rule, entity_type, project_id, current_status, percentage):
    """Return True when ``rule`` applies to the given work item state."""
    return (
        rule.entity_type == entity_type
        and (rule.project_id is None or rule.project_id == project_id)
        and (rule.source_status is None or rule.source_status == current_status)
        and bool(rule.is_active)
        and percentage >= rule.completion_threshold
    )


def select_rule(rules, entity_type, project_id, current_status, percentage):
    """Winning rule among ``rules`` (any order), or None."""
    qualifying = [
        r for r in rules
        if rule_qualifies(r, entity_type, project_id, current_status, percentage)
    ]
    if not qualifying:
        return None
    return min(qualifying, key=precedence_key)


def match_rule(entity_type, project_id, current_status, percentage):
    """Select the highest-precedence applicable rule from the rule store.

    Args:
        entity_type: ``issue`` or ``action_item``.
        project_id: Project of the work item (may be None).
        current_status: The work item's status right now.
        percentage: Aggregate checklist completion, 0-100.

    Returns:
        CompletionActionRule or None.

    Raises:
        StorageUnavailableError: The rule store could not be read.
    """
    try:
        candidates = list_rules(project_id=project_id, entity_type=entity_type)
    except SQLAlchemyError as exc:
        raise StorageUnavailableError(
            f"Could not load completion rules: {exc}",
            entity_type=entity_type,
        ) from exc

    rule = select_rule(candidates, entity_type, project_id, current_status, percentage)
    if rule is None:
        logger.debug(
            "No completion rule for %s (project=%s, status=%r, %s%%)",
            entity_type, project_id, current_status, percentage,
        )
    else:
        logger.debug(
            "Matched completion rule %s: %r → %r (threshold %s%%)",
            rule.id, current_status, rule.target_status, rule.completion_threshold,
        )
    return rule
