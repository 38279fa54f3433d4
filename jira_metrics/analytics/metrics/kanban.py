"""Continuous-flow metrics for kanban boards.

Columns are issue statuses. Completion follows the keyword rule (a done
keyword in the status, or a resolution date); age metrics only look at issues
whose status has no done keyword.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pandas as pd
import pytz

from jira_metrics.analytics.aggregations.breakdowns import issue_breakdowns
from jira_metrics.core.classifier import WorkflowBucket, WorkflowBucketPolicy, filter_out_sub_tasks
from jira_metrics.core.config import (
    DEFAULT_WIP_LIMIT_RULES,
    MONTHLY_THROUGHPUT_MONTHS,
    SETTINGS,
    UNKNOWN_LABEL,
    WEEKLY_THROUGHPUT_WEEKS,
    AppSettings,
)
from jira_metrics.core.mappers import issues_to_dataframe
from jira_metrics.core.models import ColumnMetric, IssueModel, KanbanBoardModel, KanbanMetricsSnapshot

from .timing import (
    age_in_days,
    completion_dates,
    cycle_time_days,
    lead_time_days,
    resolve_now,
    round_half_up,
    summarize_durations,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WipLimitPolicy:
    """Column WIP limits by keyword; the first matching rule wins, no match means unbounded."""

    rules: Sequence[tuple[tuple[str, ...], int]] = field(default_factory=lambda: tuple(DEFAULT_WIP_LIMIT_RULES))

    def limit_for(self, column_name: str | None) -> int | None:
        if not column_name:
            return None
        text = str(column_name).lower()
        for keywords, limit in self.rules:
            if any(keyword in text for keyword in keywords):
                return limit
        return None


# ---------------------------------------------------------------------------
# Throughput windows
# ---------------------------------------------------------------------------
def weekly_windows(now: pd.Timestamp, weeks: int) -> list[tuple[pd.Timestamp, pd.Timestamp]]:
    """``weeks`` consecutive 7-day windows ending at ``now``, oldest first.

    Windows are half-open ``(start, end]`` so a completion on a boundary is
    counted once.
    """
    windows = []
    for back in range(weeks - 1, -1, -1):
        end = now - pd.Timedelta(days=7 * back)
        windows.append((end - pd.Timedelta(days=7), end))
    return windows


def _month_start(local: pd.Timestamp, back: int, tz) -> pd.Timestamp:
    index = local.year * 12 + (local.month - 1) - back
    return pd.Timestamp(year=index // 12, month=index % 12 + 1, day=1, tz=tz)


def monthly_windows(now: pd.Timestamp, months: int, timezone: str) -> list[tuple[pd.Timestamp, pd.Timestamp]]:
    """Calendar months in ``timezone`` up to and including the current one, oldest first."""
    tz = pytz.timezone(timezone)
    local = now.tz_convert(tz)
    windows = []
    for back in range(months - 1, -1, -1):
        start = _month_start(local, back, tz)
        end = _month_start(local, back - 1, tz) - pd.Timedelta(microseconds=1)
        windows.append((start, end))
    return windows


def throughput(done: pd.DataFrame, now: pd.Timestamp, settings: AppSettings) -> tuple[list[int], list[int]]:
    completed_at = completion_dates(done).dropna()
    weekly = [
        int(((completed_at > start) & (completed_at <= end)).sum())
        for start, end in weekly_windows(now, WEEKLY_THROUGHPUT_WEEKS)
    ]
    monthly = [
        int(((completed_at >= start) & (completed_at <= end)).sum())
        for start, end in monthly_windows(now, MONTHLY_THROUGHPUT_MONTHS, settings.timezone)
    ]
    return weekly, monthly


# ---------------------------------------------------------------------------
# Flow and WIP
# ---------------------------------------------------------------------------
def flow_efficiency(done: pd.DataFrame, active_work_ratio: float) -> float | None:
    """Estimated active share of total lead time, in percent (one decimal)."""
    if done.empty:
        return None
    lead_seconds = (completion_dates(done) - done["created"]).dt.total_seconds().dropna()
    total_lead = float(lead_seconds.sum())
    if total_lead <= 0:
        return 0.0
    total_active = float((lead_seconds * active_work_ratio).sum())
    return round_half_up(total_active / total_lead * 100, 1)


def _columns(df: pd.DataFrame) -> pd.Series:
    return df["status"].fillna(UNKNOWN_LABEL).astype(str).replace("", UNKNOWN_LABEL)


def wip_metrics(df: pd.DataFrame, policy: WipLimitPolicy) -> tuple[int, dict[str, dict[str, Any]]]:
    violations = 0
    utilization: dict[str, dict[str, Any]] = {}
    for column, group in df.groupby(_columns(df), sort=False):
        count = len(group)
        limit = policy.limit_for(column)
        violation = limit is not None and count > limit
        violations += int(violation)
        utilization[str(column)] = {
            "currentCount": count,
            "wipLimit": limit,
            "utilization": int(round_half_up(count / limit * 100)) if limit else None,
            "violation": violation,
        }
    return violations, utilization


def column_metrics(df: pd.DataFrame, now: pd.Timestamp, policy: WipLimitPolicy) -> list[ColumnMetric]:
    out: list[ColumnMetric] = []
    for column, group in df.groupby(_columns(df), sort=False):
        ages = age_in_days(group, now)
        limit = policy.limit_for(column)
        out.append(
            ColumnMetric(
                column_name=str(column),
                issue_count=len(group),
                average_age=round_half_up(float(ages.mean()), 1) if not ages.empty else 0.0,
                oldest_issue_age=int(ages.max()) if not ages.empty else 0,
                wip_limit=limit,
                wip_violation=limit is not None and len(group) > limit,
            )
        )
    return out


def _mask(df: pd.DataFrame, issues: list[IssueModel], predicate) -> pd.Series:
    return pd.Series([bool(predicate(i)) for i in issues], index=df.index, dtype=bool)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def calculate_kanban_metrics(
    board: KanbanBoardModel | None,
    issues: Iterable[IssueModel],
    *,
    now: datetime | None = None,
    wip_policy: WipLimitPolicy | None = None,
    active_work_ratio: float | None = None,
    settings: AppSettings = SETTINGS,
) -> KanbanMetricsSnapshot | None:
    """Compute the flow snapshot for a kanban board.

    Returns ``None`` when the board is missing or has no issues left after
    sub-task filtering (a board that is not set up yet).
    """
    if board is None:
        logger.warning("Kanban board not found; skipping metrics")
        return None
    kept = filter_out_sub_tasks(issues, f"Kanban board {board.name}")
    if not kept:
        logger.warning("No non-sub-task issues found for kanban board %s", board.id)
        return None

    ts_now = resolve_now(now)
    wip_policy = wip_policy or WipLimitPolicy(settings.kanban.wip_limit_rules)
    ratio = settings.kanban.active_work_ratio if active_work_ratio is None else active_work_ratio
    flow = WorkflowBucketPolicy()

    df = issues_to_dataframe(kept)
    buckets = [flow.bucket(i) for i in kept]
    done = df[_mask(df, kept, flow.is_completed)]
    open_issues = df[_mask(df, kept, flow.is_open)]

    cycle = cycle_time_days(done)
    lead = lead_time_days(done)
    avg_cycle, median_cycle = summarize_durations(cycle, digits=2)
    avg_lead, median_lead = summarize_durations(lead, digits=2)
    if done.empty:
        logger.warning("No completed issues on kanban board %s for time metrics", board.id)

    weekly, monthly = throughput(done, ts_now, settings)
    violations, utilization = wip_metrics(df, wip_policy)

    ages = age_in_days(open_issues, ts_now)
    breakdowns = issue_breakdowns(df)

    snapshot = KanbanMetricsSnapshot(
        kanban_board_id=board.id,
        calculated_at=ts_now.to_pydatetime(),
        total_issues=len(kept),
        todo_issues=buckets.count(WorkflowBucket.TODO),
        in_progress_issues=buckets.count(WorkflowBucket.IN_PROGRESS),
        done_issues=buckets.count(WorkflowBucket.DONE),
        blocked_issues=sum(1 for i in kept if i.blocked_reason),
        flagged_issues=sum(1 for i in kept if i.flagged),
        average_cycle_time=avg_cycle,
        median_cycle_time=median_cycle,
        cycle_times=[int(v) for v in cycle],
        average_lead_time=avg_lead,
        median_lead_time=median_lead,
        lead_times=[int(v) for v in lead],
        weekly_throughput=weekly,
        monthly_throughput=monthly,
        wip_violations=violations,
        wip_utilization=utilization,
        flow_efficiency=flow_efficiency(done, ratio),
        average_age_in_progress=round_half_up(float(ages.mean()), 2) if not ages.empty else None,
        oldest_issue_age=int(ages.max()) if not ages.empty else None,
        issue_type_breakdown=breakdowns["issue_type"],
        priority_breakdown=breakdowns["priority"],
        assignee_breakdown=breakdowns["assignee"],
        column_metrics=column_metrics(df, ts_now, wip_policy),
    )
    logger.info(
        "Kanban board %s: %s issues, %s done, weekly throughput %s, %s WIP violations",
        board.id,
        snapshot.total_issues,
        snapshot.done_issues,
        sum(weekly),
        violations,
    )
    return snapshot


def summarize_kanban_boards(snapshots: Iterable[KanbanMetricsSnapshot | None]) -> dict[str, Any] | None:
    """Cross-board summary of the latest kanban snapshots; ``None`` when there are none."""
    valid = [s for s in snapshots if s is not None]
    if not valid:
        logger.warning("No kanban metrics found for summary")
        return None

    def _avg(values: list[float | None]) -> float | None:
        present = [v for v in values if v is not None]
        return sum(present) / len(present) if present else None

    total_weekly = sum(sum(s.weekly_throughput) for s in valid)
    return {
        "totalBoards": len(valid),
        "totalIssues": sum(s.total_issues for s in valid),
        "averageCycleTime": _avg([s.average_cycle_time for s in valid]),
        "averageLeadTime": _avg([s.average_lead_time for s in valid]),
        "totalWipViolations": sum(s.wip_violations for s in valid),
        "averageFlowEfficiency": _avg([s.flow_efficiency for s in valid]),
        "totalWeeklyThroughput": total_weekly,
        "averageThroughput": round_half_up(total_weekly / len(valid), 1),
    }
