"""
Checklist Automation Service
Tests — completion rule matcher.
"""

import pytest
from sqlalchemy.exc import OperationalError

from checklist_automation.core.exceptions import StorageUnavailableError
from checklist_automation.models.completion_rule import CompletionActionRule
from checklist_automation.services import rule_matcher
from checklist_automation.services.rule_matcher import match_rule, select_rule


class TestMatchRule:
    def test_project_rule_beats_global(self, make_rule):
        make_rule(project_id=None, source_status="In Progress", target_status="Done",
                  completion_threshold=100)
        review = make_rule(project_id=5, source_status="In Progress", target_status="Review",
                           completion_threshold=80)

        rule = match_rule("issue", 5, "In Progress", 85)
        assert rule.id == review.id
        assert rule.target_status == "Review"

    def test_project_rule_ignored_for_other_project(self, make_rule):
        make_rule(project_id=5, target_status="Review", completion_threshold=80)
        assert match_rule("issue", 6, "In Progress", 85) is None

    def test_global_rule_when_project_rule_below_threshold(self, make_rule):
        make_rule(project_id=5, source_status="In Progress", target_status="Review",
                  completion_threshold=100)
        done = make_rule(project_id=None, source_status="In Progress", completion_threshold=80)
        assert match_rule("issue", 5, "In Progress", 85).id == done.id

    def test_specific_source_beats_wildcard(self, make_rule):
        make_rule(source_status=None, target_status="Closed", completion_threshold=50)
        specific = make_rule(source_status="To Do", target_status="In Progress",
                             completion_threshold=50)
        assert match_rule("issue", 5, "To Do", 60).id == specific.id
        assert match_rule("issue", 5, "Review", 60).target_status == "Closed"

    def test_threshold_inclusive(self, make_rule):
        make_rule(completion_threshold=80)
        assert match_rule("issue", 5, "In Progress", 80) is not None
        assert match_rule("issue", 5, "In Progress", 79) is None

    def test_inactive_rule_never_matches(self, make_rule):
        make_rule(completion_threshold=0, is_active=False)
        assert match_rule("issue", 5, "In Progress", 100) is None

    def test_entity_type_must_match(self, make_rule):
        make_rule(entity_type="action_item", completion_threshold=0)
        assert match_rule("issue", 5, "To Do", 100) is None
        assert match_rule("action_item", 5, "To Do", 0) is not None

    def test_zero_percent_only_fires_explicit_zero_threshold(self, make_rule):
        make_rule(source_status=None, completion_threshold=1)
        assert match_rule("issue", 5, "In Progress", 0) is None

        zero = make_rule(source_status="In Progress", completion_threshold=0, target_status="Open")
        assert match_rule("issue", 5, "In Progress", 0).id == zero.id

    def test_lowest_id_breaks_ties(self):
        a = CompletionActionRule(id=7, entity_type="issue", project_id=None,
                                 source_status=None, target_status="A",
                                 completion_threshold=0, is_active=True)
        b = CompletionActionRule(id=3, entity_type="issue", project_id=None,
                                 source_status=None, target_status="B",
                                 completion_threshold=0, is_active=True)
        assert select_rule([a, b], "issue", 1, "To Do", 0) is b

    def test_rule_store_fault(self, monkeypatch):
        def _boom(**kw):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(rule_matcher, "list_rules", _boom)
        with pytest.raises(StorageUnavailableError):
            match_rule("issue", 5, "In Progress", 100)
