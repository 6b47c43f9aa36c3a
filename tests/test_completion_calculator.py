"""
Checklist Automation Service
Tests — completion calculator.

Covers:
    - half-up percentage rounding, empty total
    - aggregate over linked checklists (standalone excluded)
    - single checklist completion from item rows
    - completion API endpoints
"""

import pytest
from sqlalchemy.exc import OperationalError

from checklist_automation.core.exceptions import StorageUnavailableError
from checklist_automation.repositories.work_items import IssueRepository
from checklist_automation.services.completion_calculator import (
    CompletionSummary,
    completion_percentage,
    compute_aggregate_completion,
    compute_checklist_completion,
)


class TestCompletionPercentage:
    @pytest.mark.parametrize("completed,total,expected", [
        (0, 0, 0),
        (0, 4, 0),
        (4, 4, 100),
        (12, 15, 80),
        (1, 8, 13),     # 12.5 rounds up
        (1, 3, 33),
        (2, 3, 67),
        (79, 100, 79),
    ])
    def test_rounding(self, completed, total, expected):
        assert completion_percentage(completed, total) == expected


class TestAggregateCompletion:
    def test_standalone_checklist_excluded(self, make_issue, make_checklist):
        issue = make_issue()
        make_checklist(issue=issue, total=10, completed=7)
        make_checklist(issue=issue, total=5, completed=5)
        make_checklist(issue=issue, total=0, completed=0, is_standalone=True)

        summary = compute_aggregate_completion("issue", issue.id)
        assert summary == CompletionSummary(total=15, completed=12, percentage=80)

    def test_null_standalone_flag_counts(self, make_issue, make_checklist):
        issue = make_issue()
        make_checklist(issue=issue, total=4, completed=4, is_standalone=None)
        assert compute_aggregate_completion("issue", issue.id).percentage == 100

    def test_no_checklists_is_zero(self, make_issue):
        issue = make_issue()
        summary = compute_aggregate_completion("issue", issue.id)
        assert summary.to_dict() == {"total": 0, "completed": 0, "percentage": 0}

    def test_only_own_checklists(self, make_issue, make_action_item, make_checklist):
        issue = make_issue()
        other = make_issue()
        action = make_action_item()
        make_checklist(issue=issue, total=2, completed=1)
        make_checklist(issue=other, total=2, completed=2)
        make_checklist(action_item=action, total=10, completed=0)

        assert compute_aggregate_completion("issue", issue.id).percentage == 50
        assert compute_aggregate_completion("action_item", action.id).percentage == 0

    def test_storage_fault_raises_engine_error(self, monkeypatch, make_issue):
        issue = make_issue()

        def _boom(self, entity_id):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(IssueRepository, "linked_checklists_query", _boom)
        with pytest.raises(StorageUnavailableError) as exc_info:
            compute_aggregate_completion("issue", issue.id)
        assert exc_info.value.entity_id == issue.id


class TestChecklistCompletion:
    def test_counts_item_rows(self, make_checklist):
        checklist = make_checklist(items=[True, False, False, False, False, False, False, False])
        summary = compute_checklist_completion(checklist.id)
        assert (summary.total, summary.completed, summary.percentage) == (8, 1, 13)

    def test_empty_checklist(self, make_checklist):
        checklist = make_checklist(items=[])
        assert compute_checklist_completion(checklist.id).percentage == 0


class TestCompletionAPI:
    def test_checklist_completion(self, client, make_checklist):
        checklist = make_checklist(items=[True, True, False, False])
        res = client.get(f"/api/v1/checklists/{checklist.id}/completion")
        assert res.status_code == 200
        assert res.get_json() == {
            "checklist_id": checklist.id, "total": 4, "completed": 2, "percentage": 50,
        }

    def test_checklist_completion_not_found(self, client):
        res = client.get("/api/v1/checklists/999/completion")
        assert res.status_code == 404

    def test_issue_aggregate(self, client, make_issue, make_checklist):
        issue = make_issue()
        make_checklist(issue=issue, total=10, completed=7)
        make_checklist(issue=issue, total=5, completed=5)
        res = client.get(f"/api/v1/issues/{issue.id}/checklist-completion")
        assert res.status_code == 200
        data = res.get_json()
        assert data["entity_type"] == "issue"
        assert data["percentage"] == 80

    def test_action_item_aggregate_not_found(self, client):
        res = client.get("/api/v1/action-items/42/checklist-completion")
        assert res.status_code == 404
