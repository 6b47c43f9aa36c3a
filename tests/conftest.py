"""
Shared pytest fixtures for the Checklist Automation test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_issue / make_action_item / make_checklist / make_rule: ORM factories
"""

import pytest

from checklist_automation import create_app
from checklist_automation.models import db as _db
from checklist_automation.models.checklist import Checklist, ChecklistItem
from checklist_automation.models.completion_rule import CompletionActionRule
from checklist_automation.models.work_item import ActionItem, Issue


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience factories ────────────────────────────────────────────────
# Everything is committed: automation runs may roll the session back.


def _save(obj):
    _db.session.add(obj)
    _db.session.commit()
    return obj


@pytest.fixture()
def make_issue():
    def _make(status="In Progress", project_id=5, assignee=None, **kw):
        kw.setdefault("title", "Interface mapping incomplete")
        return _save(Issue(status=status, project_id=project_id, assignee=assignee, **kw))
    return _make


@pytest.fixture()
def make_action_item():
    def _make(status="To Do", project_id=5, assignee=None, **kw):
        kw.setdefault("title", "Confirm cutover window")
        return _save(ActionItem(status=status, project_id=project_id, assignee=assignee, **kw))
    return _make


@pytest.fixture()
def make_checklist():
    """Create a checklist.

    ``items`` is a list of completion flags; when given, real item rows are
    created and the counters recounted. Otherwise ``total`` / ``completed``
    are written straight onto the counters.
    """
    def _make(issue=None, action_item=None, items=None, total=0, completed=0,
              is_standalone=False, project_id=5, title="Definition of done"):
        checklist = Checklist(
            project_id=project_id,
            title=title,
            related_issue_id=issue.id if issue is not None else None,
            related_action_id=action_item.id if action_item is not None else None,
            is_standalone=is_standalone,
            total_items=total,
            completed_items=completed,
        )
        _db.session.add(checklist)
        _db.session.flush()
        if items is not None:
            for pos, done in enumerate(items):
                _db.session.add(ChecklistItem(
                    checklist_id=checklist.id,
                    item_text=f"Step {pos + 1}",
                    position=pos,
                    is_completed=done,
                ))
            _db.session.flush()
            checklist.recount()
        _db.session.commit()
        return checklist
    return _make


@pytest.fixture()
def make_rule():
    def _make(target_status="Done", entity_type="issue", project_id=None,
              source_status=None, completion_threshold=100, notify_assignee=False,
              is_active=True, created_by="admin"):
        return _save(CompletionActionRule(
            entity_type=entity_type,
            project_id=project_id,
            source_status=source_status,
            target_status=target_status,
            completion_threshold=completion_threshold,
            notify_assignee=notify_assignee,
            is_active=is_active,
            created_by=created_by,
        ))
    return _make
