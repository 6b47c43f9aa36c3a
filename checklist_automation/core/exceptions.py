"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to HTTP status codes.

Two families live here:

  * Request errors (``NotFoundError``, ``ValidationError``) surface to the
    direct caller, e.g. the rule administration endpoints.
  * Engine errors (``EngineError`` and subclasses) describe why an
    automation run failed. They never escape ``on_checklist_changed``: the
    orchestrator records them on an ``AutomationRun`` and logs them.

Usage:
    from checklist_automation.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="CompletionActionRule", resource_id=42)
    raise ValidationError("completion_threshold must be between 0 and 100")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Checklist").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class EngineError(Exception):
    """Base class for failures inside a status automation run.

    Args:
        message: What went wrong.
        checklist_id: Checklist whose change triggered the run, when known.
        entity_type: Work item type being evaluated, when known.
        entity_id: Work item id being evaluated, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        checklist_id: int | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> None:
        self.checklist_id = checklist_id
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)


class StorageUnavailableError(EngineError):
    """A read needed to decide on a transition failed."""


class TransitionFailedError(EngineError):
    """Writing the new status or its history row failed."""
