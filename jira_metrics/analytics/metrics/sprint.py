"""Per-sprint metrics: velocity, completion, churn, timing, quality and breakdowns."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

import pandas as pd

from jira_metrics.analytics.aggregations.breakdowns import (
    issue_breakdowns,
    story_points_breakdown,
    team_members,
)
from jira_metrics.core.classifier import (
    StrictCompletionPolicy,
    filter_defect_issues,
    filter_for_quality_metrics,
    filter_out_sub_tasks,
)
from jira_metrics.core.config import STORY_POINT_BUCKETS
from jira_metrics.core.mappers import issues_to_dataframe
from jira_metrics.core.models import (
    ChangelogEntryModel,
    ChurnResult,
    IssueModel,
    SprintMetricsSnapshot,
    SprintModel,
)

from .churn import churn_rate, compute_churn
from .timing import cycle_time_days, lead_time_days, resolve_now, summarize_durations

logger = logging.getLogger(__name__)

CHURN_SOURCE_CHANGELOG = "changelog"
CHURN_SOURCE_FALLBACK = "fallback"


def _empty_snapshot(sprint_id: int, calculated_at: datetime) -> SprintMetricsSnapshot:
    return SprintMetricsSnapshot(
        sprint_id=sprint_id,
        calculated_at=calculated_at,
        story_points_breakdown={label: 0.0 for label, _, _ in STORY_POINT_BUCKETS},
    )


def _completion_mask(df: pd.DataFrame, issues: list[IssueModel], policy) -> pd.Series:
    return pd.Series([policy.is_completed(i) for i in issues], index=df.index, dtype=bool)


def fallback_churn_rate(total_story_points: float, completed_story_points: float) -> float:
    """Undelivered share of the committed points, used when no changelog applies."""
    if total_story_points <= 0:
        return 0.0
    return (total_story_points - completed_story_points) / total_story_points * 100


def quality_rates(issues: list[IssueModel]) -> tuple[float, float, int]:
    """Return ``(defect_leakage_rate, quality_rate, total_defects)`` for an issue set."""
    total_defects = len(filter_defect_issues(issues))
    relevant = len(filter_for_quality_metrics(issues))
    if relevant == 0:
        return 0.0, 100.0, total_defects
    leakage = total_defects / relevant * 100
    return leakage, 100.0 - leakage, total_defects


def calculate_sprint_metrics(
    sprint: SprintModel | None,
    issues: Iterable[IssueModel],
    changelog: Iterable[ChangelogEntryModel] = (),
    *,
    issue_lookup: Iterable[IssueModel] | None = None,
    now: datetime | None = None,
    completion: StrictCompletionPolicy | None = None,
) -> SprintMetricsSnapshot | None:
    """Compute the metrics snapshot for one sprint.

    Parameters
    ----------
    sprint : SprintModel | None
        Sprint record; ``None`` (not found) short-circuits to ``None``.
    issues : iterable of IssueModel
        Issues currently associated with the sprint (sub-tasks are dropped here).
    changelog : iterable of ChangelogEntryModel
        Changelog store content used for churn. When empty, or when the sprint
        lacks start/end dates, churn falls back to the undelivered share.
    issue_lookup : iterable of IssueModel, optional
        Issues referenced by the changelog (e.g. issues moved out of the
        sprint). Defaults to ``issues``.
    now : datetime, optional
        Fixed calculation time; only stamped on ``calculated_at``.
    completion : StrictCompletionPolicy, optional
        Completion rule; exact ``Done``/``Closed``/``Resolved`` by default.

    Returns
    -------
    SprintMetricsSnapshot | None
    """
    if sprint is None:
        logger.warning("Sprint not found; skipping metrics calculation")
        return None
    logger.info("Calculating metrics for sprint %s", sprint.id)
    calculated_at = resolve_now(now).to_pydatetime()
    policy = completion or StrictCompletionPolicy()

    all_issues = list(issues)
    kept = filter_out_sub_tasks(all_issues, f"Sprint {sprint.id}")
    if not kept:
        logger.info("No non-sub-task issues found for sprint %s", sprint.id)
        return _empty_snapshot(sprint.id, calculated_at)

    df = issues_to_dataframe(kept)
    completed = _completion_mask(df, kept, policy)

    total_story_points = float(df["story_points"].sum())
    completed_story_points = float(df.loc[completed, "story_points"].sum())
    total_issues = len(df)
    completed_issues = int(completed.sum())

    has_story_points = total_story_points > 0
    velocity = completed_story_points if has_story_points else float(completed_issues)
    completion_rate = completed_story_points / total_story_points * 100 if has_story_points else 0.0
    logger.debug(
        "Sprint %s: %s/%s issues, %s/%s points, velocity=%s (%s)",
        sprint.id,
        completed_issues,
        total_issues,
        completed_story_points,
        total_story_points,
        velocity,
        "story_points" if has_story_points else "issue_count",
    )

    # Churn: changelog when the sprint has a window and the store has data
    changelog = list(changelog)
    churn = ChurnResult(has_changelog_data=bool(changelog))
    if sprint.start_date is not None and sprint.end_date is not None and changelog:
        lookup = list(issue_lookup) if issue_lookup is not None else all_issues
        churn = compute_churn(sprint.id, sprint.start_date, sprint.end_date, changelog, lookup)
        rate = churn_rate(churn, total_story_points)
        churn_source = CHURN_SOURCE_CHANGELOG
    else:
        if sprint.start_date is None or sprint.end_date is None:
            logger.warning("Sprint %s missing start/end dates, using fallback churn calculation", sprint.id)
        else:
            logger.warning("No changelog data available for sprint %s, using fallback churn calculation", sprint.id)
        rate = fallback_churn_rate(total_story_points, completed_story_points)
        churn_source = CHURN_SOURCE_FALLBACK

    done_df = df[completed]
    avg_cycle, median_cycle = summarize_durations(cycle_time_days(done_df))
    avg_lead, median_lead = summarize_durations(lead_time_days(done_df))

    defects = filter_defect_issues(kept)
    completed_defects = sum(1 for issue in defects if policy.is_completed(issue))
    leakage, quality, total_defects = quality_rates(kept)
    logger.debug("Sprint %s quality: defects=%s leakage=%.2f quality=%.2f", sprint.id, total_defects, leakage, quality)

    breakdowns = issue_breakdowns(df)
    return SprintMetricsSnapshot(
        sprint_id=sprint.id,
        calculated_at=calculated_at,
        velocity=velocity,
        churn_rate=rate,
        completion_rate=completion_rate,
        scope_change_percent=rate,
        total_story_points=total_story_points,
        completed_story_points=completed_story_points,
        added_story_points=churn.added_story_points,
        removed_story_points=churn.removed_story_points,
        total_issues=total_issues,
        completed_issues=completed_issues,
        added_issues=churn.added_issues,
        removed_issues=churn.removed_issues,
        issue_type_breakdown=breakdowns["issue_type"],
        priority_breakdown=breakdowns["priority"],
        assignee_breakdown=breakdowns["assignee"],
        story_points_breakdown=story_points_breakdown(df),
        average_cycle_time=avg_cycle,
        median_cycle_time=median_cycle,
        average_lead_time=avg_lead,
        median_lead_time=median_lead,
        defect_leakage_rate=leakage,
        quality_rate=quality,
        total_defects=total_defects,
        completed_defects=completed_defects,
        churn_source=churn_source,
        team_members=team_members(df),
    )
