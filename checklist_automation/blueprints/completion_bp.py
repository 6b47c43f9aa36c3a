"""
Checklist Automation Service
Completion blueprint — completion rule admin, checklist toggles, audit trail.

Endpoints summary:
    RULES    /api/v1/completion-rules                     GET, POST (upsert)
             /api/v1/completion-rules/<id>                GET, DELETE (deactivate)

    COMPLETION
             /api/v1/checklists/<id>/completion           GET   (item rows)
             /api/v1/issues/<id>/checklist-completion     GET   (aggregate)
             /api/v1/action-items/<id>/checklist-completion GET (aggregate)

    TOGGLE   /api/v1/checklist-items/<id>                 PATCH (toggle + automation)

    AUDIT    /api/v1/status-history                       GET   (?item_type=&item_id=)

    NOTIF    /api/v1/notifications                        GET   (?recipient=)
             /api/v1/notifications/<id>/read              PATCH
             /api/v1/notifications/mark-all-read          POST

Service layer owns business logic; rule admin routes commit here.
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from checklist_automation.core.exceptions import NotFoundError, ValidationError
from checklist_automation.models import db
from checklist_automation.models.work_item import ENTITY_ACTION_ITEM, ENTITY_ISSUE
from checklist_automation.blueprints import paginate_query
from checklist_automation.repositories.work_items import get_repository
from checklist_automation.services import checklist_service
from checklist_automation.services import completion_rule_service as rules
from checklist_automation.services.completion_calculator import (
    compute_aggregate_completion,
    compute_checklist_completion,
)
from checklist_automation.services.notification import NotificationService
from checklist_automation.services.status_automation import on_checklist_changed
from checklist_automation.utils.errors import E, api_error

logger = logging.getLogger(__name__)

completion_bp = Blueprint("completion", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@completion_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@completion_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@completion_bp.errorhandler(SQLAlchemyError)
def _handle_database(error: SQLAlchemyError):
    logger.exception("Database error in completion_bp endpoint=%s", request.endpoint)
    db.session.rollback()
    return api_error(E.DATABASE, "Database error")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _optional_int_arg(name):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={name: "not an integer"}) from None


def _aggregate_for(entity_type, entity_id):
    repo = get_repository(entity_type)
    if repo.get(entity_id) is None:
        raise NotFoundError(resource=repo.model.__name__, resource_id=entity_id)
    summary = compute_aggregate_completion(entity_type, entity_id)
    return jsonify({"entity_type": entity_type, "entity_id": entity_id, **summary.to_dict()})


# ═══════════════════════════════════════════════════════════════════════════
#  COMPLETION RULES
# ═══════════════════════════════════════════════════════════════════════════


@completion_bp.route("/completion-rules", methods=["GET"])
def list_completion_rules():
    """List active rules in precedence order.

    Query params: project_id (optional; includes global rules),
    entity_type (optional).
    """
    project_id = _optional_int_arg("project_id")
    entity_type = request.args.get("entity_type") or None
    items = rules.list_rules(project_id=project_id, entity_type=entity_type)
    return jsonify({"items": [r.to_dict() for r in items], "total": len(items)})


@completion_bp.route("/completion-rules", methods=["POST"])
def save_completion_rule():
    """Create or update the rule for (entity_type, project_id, source_status).

    Body: {
        entity_type, target_status, completion_threshold?,
        project_id?, source_status?, notify_assignee?, created_by?
    }
    """
    data = request.get_json(silent=True) or {}
    rule = rules.upsert_rule(data)
    db.session.commit()
    return jsonify(rule.to_dict()), 200


@completion_bp.route("/completion-rules/<int:rule_id>", methods=["GET"])
def get_completion_rule(rule_id):
    return jsonify(rules.get_rule(rule_id).to_dict())


@completion_bp.route("/completion-rules/<int:rule_id>", methods=["DELETE"])
def delete_completion_rule(rule_id):
    """Soft-delete a rule; it can be reactivated by saving the same scope again."""
    rule = rules.deactivate_rule(rule_id)
    db.session.commit()
    return jsonify(rule.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  COMPLETION FIGURES
# ═══════════════════════════════════════════════════════════════════════════


@completion_bp.route("/checklists/<int:checklist_id>/completion", methods=["GET"])
def get_checklist_completion(checklist_id):
    checklist_service.get_checklist(checklist_id)
    summary = compute_checklist_completion(checklist_id)
    return jsonify({"checklist_id": checklist_id, **summary.to_dict()})


@completion_bp.route("/issues/<int:issue_id>/checklist-completion", methods=["GET"])
def get_issue_completion(issue_id):
    return _aggregate_for(ENTITY_ISSUE, issue_id)


@completion_bp.route("/action-items/<int:action_id>/checklist-completion", methods=["GET"])
def get_action_item_completion(action_id):
    return _aggregate_for(ENTITY_ACTION_ITEM, action_id)


# ═══════════════════════════════════════════════════════════════════════════
#  CHECKLIST ITEM TOGGLE
# ═══════════════════════════════════════════════════════════════════════════


@completion_bp.route("/checklist-items/<int:item_id>", methods=["PATCH"])
def toggle_checklist_item(item_id):
    """Toggle an item, then let status automation react.

    Body: { is_completed: bool, user_id?: str }
    Returns: { item, checklist, automation }. ``automation`` is null when
    nothing changed or automation failed; the toggle itself still succeeded.
    """
    data = request.get_json(silent=True) or {}
    if "is_completed" not in data:
        return api_error(E.VALIDATION_REQUIRED, "is_completed is required")

    item = checklist_service.toggle_checklist_item(
        item_id, data["is_completed"], user_id=data.get("user_id"),
    )
    checklist_id = item.checklist_id

    result = on_checklist_changed(checklist_id)

    checklist = checklist_service.get_checklist(checklist_id)
    return jsonify({
        "item": item.to_dict(),
        "checklist": checklist.to_dict(),
        "automation": result.to_dict() if result else None,
    })


# ═══════════════════════════════════════════════════════════════════════════
#  STATUS HISTORY
# ═══════════════════════════════════════════════════════════════════════════


@completion_bp.route("/status-history", methods=["GET"])
def list_status_history():
    """Query params: item_type (issue|action_item), item_id — both required."""
    item_type = request.args.get("item_type")
    item_id = _optional_int_arg("item_id")
    if not item_type or item_id is None:
        return api_error(E.VALIDATION_REQUIRED, "item_type and item_id are required")

    rows, total = paginate_query(checklist_service.status_history_query(item_type, item_id))
    return jsonify({"items": [r.to_dict() for r in rows], "total": total})


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════


@completion_bp.route("/notifications", methods=["GET"])
def list_notifications():
    recipient = request.args.get("recipient")
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    items, total = NotificationService.list_for_recipient(recipient, unread_only=unread_only)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread": NotificationService.unread_count(recipient),
    })


@completion_bp.route("/notifications/<int:notification_id>/read", methods=["PATCH"])
def mark_notification_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    db.session.commit()
    return jsonify(notif.to_dict())


@completion_bp.route("/notifications/mark-all-read", methods=["POST"])
def mark_all_notifications_read():
    data = request.get_json(silent=True) or {}
    recipient = data.get("recipient") or request.args.get("recipient")
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")
    count = NotificationService.mark_all_read(recipient)
    db.session.commit()
    return jsonify({"marked_read": count})
