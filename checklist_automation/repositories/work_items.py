"""
Work item repositories.

The completion engine never branches on table names: it asks
``get_repository(entity_type)`` for the repository of the variant it is
handling and only talks to the common ``WorkItemRepository`` interface.

Transaction policy: methods use flush(), never commit(). The caller owns
the unit of work.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import select

from checklist_automation.core.exceptions import NotFoundError
from checklist_automation.models import db
from checklist_automation.models.checklist import Checklist
from checklist_automation.models.work_item import (
    ActionItem,
    ENTITY_ACTION_ITEM,
    ENTITY_ISSUE,
    Issue,
)

logger = logging.getLogger(__name__)


class WorkItemRepository(ABC):
    """Capability set the engine needs from a work item store."""

    entity_type: str

    @property
    @abstractmethod
    def model(self):
        """SQLAlchemy model class backing this variant."""

    @property
    @abstractmethod
    def checklist_link_column(self):
        """Column on ``Checklist`` that points at this variant."""

    def get(self, entity_id, *, for_update=False):
        """Return the work item or None.

        With ``for_update`` the row is re-read from the database under a
        row lock (``SELECT ... FOR UPDATE``) even if it is already in the
        identity map.
        """
        stmt = select(self.model).where(self.model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return db.session.execute(stmt).scalar_one_or_none()

    def get_status(self, entity_id):
        item = self.get(entity_id)
        if item is None:
            raise NotFoundError(resource=self.model.__name__, resource_id=entity_id)
        return item.status

    def set_status(self, item, new_status):
        """Write ``new_status`` and a fresh ``updated_at`` onto ``item``."""
        item.status = new_status
        item.updated_at = datetime.now(timezone.utc)
        db.session.flush()
        return item

    def linked_checklists_query(self, entity_id):
        """Checklists attached to the work item, standalone ones excluded."""
        return Checklist.query.filter(
            self.checklist_link_column == entity_id,
            (Checklist.is_standalone.is_(False)) | (Checklist.is_standalone.is_(None)),
        )


class IssueRepository(WorkItemRepository):
    entity_type = ENTITY_ISSUE

    @property
    def model(self):
        return Issue

    @property
    def checklist_link_column(self):
        return Checklist.related_issue_id


class ActionItemRepository(WorkItemRepository):
    entity_type = ENTITY_ACTION_ITEM

    @property
    def model(self):
        return ActionItem

    @property
    def checklist_link_column(self):
        return Checklist.related_action_id


_REPOSITORIES = {
    ENTITY_ISSUE: IssueRepository(),
    ENTITY_ACTION_ITEM: ActionItemRepository(),
}


def get_repository(entity_type: str) -> WorkItemRepository:
    """Return the repository for ``entity_type``.

    Raises:
        ValueError: Unknown entity type.
    """
    try:
        return _REPOSITORIES[entity_type]
    except KeyError:
        raise ValueError(f"Unknown work item type: {entity_type!r}") from None
