from datetime import datetime, timedelta

import pytest
import pytz

from jira_metrics.analytics.metrics.sprint import calculate_sprint_metrics
from jira_metrics.core.models import ChangelogEntryModel, ChangeType, IssueModel, SprintModel

NOW = pytz.UTC.localize(datetime(2024, 6, 20, 12, 0))
START = pytz.UTC.localize(datetime(2024, 6, 3, 9, 0))


def _sprint(sprint_id=10, state="closed", dated=True):
    return SprintModel(
        id=sprint_id,
        name=f"Sprint {sprint_id}",
        state=state,
        board_id=1,
        start_date=START if dated else None,
        end_date=START + timedelta(days=14) if dated else None,
    )


def _issue(key, points, status, issue_type="Story", issue_id=None, **kwargs):
    return IssueModel(
        id=issue_id,
        key=key,
        issue_type=issue_type,
        status=status,
        story_points=points,
        sprint_id=10,
        **kwargs,
    )


def test_scenario_story_points_velocity():
    issues = [_issue("S-1", 5, "Done"), _issue("S-2", 3, "To Do")]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.total_story_points == 8
    assert snap.completed_story_points == 5
    assert snap.velocity == 5
    assert snap.completion_rate == 62.5
    assert snap.total_issues == 2
    assert snap.completed_issues == 1


def test_scenario_issue_count_fallback():
    issues = [_issue(f"S-{i}", None, "Done") for i in range(3)]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.velocity == 3
    assert snap.completion_rate == 0
    assert snap.churn_rate == 0


def test_scenario_changelog_churn():
    moved = _issue("S-1", 8, "In Progress", issue_id=1)
    others = [_issue(f"S-{i}", 8, "Done", issue_id=i) for i in range(2, 6)]
    entry = ChangelogEntryModel(
        issue_id=1,
        issue_key="S-1",
        field="Sprint",
        changed_at=START + timedelta(days=1),
        change_type=ChangeType.SPRINT_ADDED,
        to_sprint_id=10,
    )
    snap = calculate_sprint_metrics(_sprint(), [moved] + others, [entry], now=NOW)
    assert snap.total_story_points == 40
    assert snap.churn_rate == pytest.approx(20.0)
    assert snap.scope_change_percent == snap.churn_rate
    assert snap.added_issues == 1
    assert snap.added_story_points == 8
    assert snap.churn_source == "changelog"


def test_negative_and_nan_points_keep_rates_in_bounds():
    issues = [
        _issue("S-1", 5, "Done"),
        _issue("S-2", -3, "To Do"),
        _issue("S-3", float("nan"), "To Do"),
    ]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.total_story_points == 5
    assert 0 <= snap.completion_rate <= 100
    assert snap.completion_rate == 100.0
    assert 0 <= snap.churn_rate <= 100


def test_fallback_churn_without_dates():
    issues = [_issue("S-1", 6, "Done"), _issue("S-2", 2, "In Progress")]
    entry = ChangelogEntryModel(issue_id=None, issue_key="S-2", field="Sprint", changed_at=START)
    snap = calculate_sprint_metrics(_sprint(dated=False), issues, [entry], now=NOW)
    assert snap.churn_rate == 25.0
    assert snap.churn_source == "fallback"
    assert snap.added_story_points == 0


def test_fallback_churn_without_changelog():
    issues = [_issue("S-1", 6, "Done"), _issue("S-2", 2, "In Progress")]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.churn_rate == 25.0
    assert snap.churn_source == "fallback"


def test_strict_completion_statuses():
    issues = [
        _issue("S-1", 2, "Closed"),
        _issue("S-2", 2, "Resolved"),
        _issue("S-3", 2, "Completed"),
        _issue("S-4", 2, "done"),
    ]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.completed_issues == 2
    assert snap.completion_rate == 50.0


def test_sub_tasks_excluded_and_empty_sprint_zero_filled():
    issues = [_issue("S-1", 5, "Done", issue_type="Sub-task"), _issue("S-2", 3, "Done", issue_type="subtask")]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap is not None
    assert snap.total_issues == 0
    assert snap.velocity == 0
    assert snap.quality_rate == 100
    assert snap.defect_leakage_rate == 0
    assert snap.average_cycle_time is None
    assert snap.team_members == []


def test_missing_sprint_returns_none():
    assert calculate_sprint_metrics(None, [], []) is None


def test_cycle_and_lead_time():
    created = START
    issues = [
        _issue("S-1", 3, "Done", created=created, resolved=created + timedelta(days=2, hours=1)),
        _issue("S-2", 3, "Done", created=created, updated=created + timedelta(days=4)),
        # completion before creation is dropped
        _issue("S-3", 3, "Done", created=created, resolved=created - timedelta(days=1)),
        _issue("S-4", 3, "In Progress", created=created, resolved=created + timedelta(days=9)),
    ]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    # ceil(2.04) = 3, 4
    assert snap.average_cycle_time == 3.5
    assert snap.median_cycle_time == 3.5
    assert snap.average_lead_time == snap.average_cycle_time


def test_quality_rates():
    issues = [
        _issue("Q-1", 1, "Done"),
        _issue("Q-2", 1, "Done", issue_type="Task"),
        _issue("Q-3", 1, "Done", issue_type="Defect"),
        _issue("Q-4", 1, "To Do", issue_type="Defect"),
        _issue("Q-5", 1, "Done", issue_type="Bug"),
        _issue("Q-6", 1, "Done", issue_type="Spike"),
    ]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.total_defects == 2
    assert snap.completed_defects == 1
    assert snap.defect_leakage_rate == 50.0
    assert snap.quality_rate + snap.defect_leakage_rate == 100


def test_quality_defaults_when_no_relevant_work():
    issues = [_issue("Q-1", 1, "Done", issue_type="Bug"), _issue("Q-2", 1, "Done", issue_type="Release")]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.quality_rate == 100
    assert snap.defect_leakage_rate == 0


def test_breakdowns_and_team():
    issues = [
        _issue("B-1", 2, "Done", priority="High", assignee="Ana", reporter="Ben"),
        _issue("B-2", 4, "Done", issue_type="Task", assignee=None, reporter="Ana"),
        _issue("B-3", 8, "To Do", priority="High", assignee="Cy", reporter=""),
        _issue("B-4", 0, "To Do", issue_type=None, assignee="Ana"),
    ]
    snap = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert snap.issue_type_breakdown == {"Story": 2, "Task": 1, "Unknown": 1}
    assert snap.priority_breakdown == {"High": 2, "Unknown": 2}
    assert snap.assignee_breakdown == {"Ana": 2, "Unassigned": 1, "Cy": 1}
    assert snap.story_points_breakdown == {"Small (0-3)": 2.0, "Medium (3-5)": 4.0, "Large (>5)": 8.0}
    assert snap.team_members == ["Ana", "Cy", "Ben"]


def test_idempotent_with_fixed_now():
    issues = [_issue("S-1", 5, "Done", created=START, resolved=START + timedelta(days=3)), _issue("S-2", 3, "To Do")]
    first = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    second = calculate_sprint_metrics(_sprint(), issues, [], now=NOW)
    assert first.to_dict() == second.to_dict()
