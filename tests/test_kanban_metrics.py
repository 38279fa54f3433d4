from datetime import datetime, timedelta

import pytz

from jira_metrics.analytics.metrics.kanban import (
    WipLimitPolicy,
    calculate_kanban_metrics,
    monthly_windows,
    summarize_kanban_boards,
    weekly_windows,
)
from jira_metrics.analytics.metrics.timing import resolve_now
from jira_metrics.core.models import IssueModel, KanbanBoardModel

NOW = pytz.UTC.localize(datetime(2024, 6, 20, 12, 0))
BOARD = KanbanBoardModel(id=7, name="Ops", project_key="OPS")


def _issue(key, status, created_days_ago=10, resolved_days_ago=None, **kwargs):
    return IssueModel(
        id=None,
        key=key,
        issue_type=kwargs.pop("issue_type", "Task"),
        status=status,
        created=NOW - timedelta(days=created_days_ago),
        updated=NOW - timedelta(days=kwargs.pop("updated_days_ago", 0)),
        resolved=NOW - timedelta(days=resolved_days_ago) if resolved_days_ago is not None else None,
        **kwargs,
    )


def test_review_column_violates_wip():
    issues = [_issue(f"K-{i}", "In Review") for i in range(4)]
    snap = calculate_kanban_metrics(BOARD, issues, now=NOW)
    review = snap.wip_utilization["In Review"]
    assert review["wipLimit"] == 3
    assert review["currentCount"] == 4
    assert review["utilization"] == 133
    assert review["violation"] is True
    assert snap.wip_violations == 1
    column = snap.column_metrics[0]
    assert column.column_name == "In Review"
    assert column.wip_limit == 3
    assert column.wip_violation


def test_wip_limit_policy_rules():
    policy = WipLimitPolicy()
    assert policy.limit_for("In Progress") == 5
    assert policy.limit_for("Development") == 5
    assert policy.limit_for("Testing") == 3
    assert policy.limit_for("Ready to Deploy") == 2
    assert policy.limit_for("Backlog") is None
    custom = WipLimitPolicy(rules=((("review",), 1),))
    assert custom.limit_for("Peer Review") == 1
    assert custom.limit_for("In Progress") is None


def test_injected_policy_and_ratio():
    issues = [_issue("K-1", "Backlog"), _issue("K-2", "Backlog"), _issue("K-3", "Done", resolved_days_ago=1)]
    snap = calculate_kanban_metrics(
        BOARD,
        issues,
        now=NOW,
        wip_policy=WipLimitPolicy(rules=((("backlog",), 1),)),
        active_work_ratio=0.25,
    )
    assert snap.wip_violations == 1
    assert snap.wip_utilization["Backlog"]["utilization"] == 200
    assert snap.wip_utilization["Done"]["wipLimit"] is None
    assert snap.wip_utilization["Done"]["utilization"] is None
    assert snap.flow_efficiency == 25.0


def test_status_counts_and_flags():
    issues = [
        _issue("K-1", "To Do"),
        _issue("K-2", "In Progress", flagged=True),
        _issue("K-3", "Code Review", blocked_reason="Waiting on vendor"),
        _issue("K-4", "Done", resolved_days_ago=2),
        _issue("K-5", "Selected"),
        _issue("K-6", "In Progress", issue_type="Sub-task"),
    ]
    snap = calculate_kanban_metrics(BOARD, issues, now=NOW)
    assert snap.total_issues == 5
    assert snap.todo_issues == 1
    assert snap.in_progress_issues == 2
    assert snap.done_issues == 1
    assert snap.blocked_issues == 1
    assert snap.flagged_issues == 1


def test_time_and_flow_metrics():
    issues = [
        _issue("K-1", "Done", created_days_ago=10, resolved_days_ago=7),
        _issue("K-2", "Closed", created_days_ago=10, resolved_days_ago=5),
        # resolved date counts as completed even without a done keyword
        _issue("K-3", "In QA", created_days_ago=10, resolved_days_ago=6),
        _issue("K-4", "In Progress", created_days_ago=4),
    ]
    snap = calculate_kanban_metrics(BOARD, issues, now=NOW)
    assert sorted(snap.cycle_times) == [3, 4, 5]
    assert snap.average_cycle_time == 4.0
    assert snap.median_cycle_time == 4.0
    assert snap.lead_times == snap.cycle_times
    assert snap.flow_efficiency == 60.0
    # open issues: K-3 (no done keyword) and K-4
    assert snap.average_age_in_progress == 7.0
    assert snap.oldest_issue_age == 10


def test_no_completed_issues():
    snap = calculate_kanban_metrics(BOARD, [_issue("K-1", "In Progress")], now=NOW)
    assert snap.flow_efficiency is None
    assert snap.average_cycle_time is None
    assert snap.cycle_times == []
    assert snap.weekly_throughput == [0] * 12
    assert snap.monthly_throughput == [0] * 6


def test_throughput_buckets():
    issues = [
        _issue("T-1", "Done", created_days_ago=60, resolved_days_ago=1),
        _issue("T-2", "Done", created_days_ago=60, resolved_days_ago=7),
        _issue("T-3", "Done", created_days_ago=60, resolved_days_ago=8),
        _issue("T-4", "Done", created_days_ago=400, resolved_days_ago=90),
        # updated date stands in for a missing resolution date
        _issue("T-5", "Done", created_days_ago=60, updated_days_ago=3),
        _issue("T-6", "Done", created_days_ago=400, resolved_days_ago=200),
    ]
    snap = calculate_kanban_metrics(BOARD, issues, now=NOW)
    assert len(snap.weekly_throughput) == 12
    assert snap.weekly_throughput[-1] == 2
    assert snap.weekly_throughput[-2] == 2
    assert sum(snap.weekly_throughput) == 4
    assert len(snap.monthly_throughput) == 6
    # June: T-1, T-2, T-3, T-5; March: T-4 (2024-03-22)
    assert snap.monthly_throughput[-1] == 4
    assert snap.monthly_throughput[2] == 1
    assert sum(snap.monthly_throughput) == 5


def test_windows_are_ordered_and_contiguous():
    now = resolve_now(NOW)
    weeks = weekly_windows(now, 12)
    assert len(weeks) == 12
    assert weeks[-1][1] == now
    assert all(weeks[i][1] == weeks[i + 1][0] for i in range(11))
    months = monthly_windows(now, 6, "UTC")
    assert [m[0].month for m in months] == [1, 2, 3, 4, 5, 6]
    assert months[-1][1].day == 30


def test_monthly_windows_cross_year():
    now = resolve_now(pytz.UTC.localize(datetime(2024, 2, 10)))
    months = monthly_windows(now, 6, "UTC")
    assert [(m[0].year, m[0].month) for m in months] == [
        (2023, 9),
        (2023, 10),
        (2023, 11),
        (2023, 12),
        (2024, 1),
        (2024, 2),
    ]


def test_missing_board_or_issues():
    assert calculate_kanban_metrics(None, [_issue("K-1", "Done")], now=NOW) is None
    assert calculate_kanban_metrics(BOARD, [], now=NOW) is None
    assert calculate_kanban_metrics(BOARD, [_issue("K-1", "Done", issue_type="Subtask")], now=NOW) is None


def test_idempotent_with_fixed_now():
    issues = [_issue("K-1", "Done", resolved_days_ago=3), _issue("K-2", "In Review", priority="High")]
    first = calculate_kanban_metrics(BOARD, issues, now=NOW)
    second = calculate_kanban_metrics(BOARD, issues, now=NOW)
    assert first.to_dict() == second.to_dict()


def test_summary_across_boards():
    a = calculate_kanban_metrics(BOARD, [_issue("K-1", "Done", created_days_ago=5, resolved_days_ago=1)], now=NOW)
    b = calculate_kanban_metrics(
        KanbanBoardModel(id=8, name="Web"), [_issue("W-1", "In Progress"), _issue("W-2", "In Progress")], now=NOW
    )
    summary = summarize_kanban_boards([a, b, None])
    assert summary["totalBoards"] == 2
    assert summary["totalIssues"] == 3
    assert summary["averageCycleTime"] == 4.0
    assert summary["averageFlowEfficiency"] == 60.0
    assert summary["totalWeeklyThroughput"] == 1
    assert summary["averageThroughput"] == 0.5
    assert summarize_kanban_boards([]) is None
