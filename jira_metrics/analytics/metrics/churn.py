"""Sprint scope churn derived from changelog diffs.

An entry counts toward a sprint when its timestamp falls inside the sprint
window (both ends inclusive) and it either moves an issue into/out of the
sprint or changes the estimate of an issue currently associated with it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from jira_metrics.core.mappers import safe_float
from jira_metrics.core.models import ChangelogEntryModel, ChangeType, ChurnResult, IssueModel

from .timing import to_utc

logger = logging.getLogger(__name__)


def _issue_index(issues: Iterable[IssueModel]):
    by_id: dict[int, IssueModel] = {}
    by_key: dict[str, IssueModel] = {}
    for issue in issues:
        if issue.id is not None:
            by_id[issue.id] = issue
        if issue.key:
            by_key[issue.key] = issue
    return by_id, by_key


def _lookup(entry: ChangelogEntryModel, by_id, by_key) -> IssueModel | None:
    if entry.issue_id is not None and entry.issue_id in by_id:
        return by_id[entry.issue_id]
    return by_key.get(entry.issue_key)


def _membership_delta(entry: ChangelogEntryModel, sprint_id: int) -> int:
    """+1 when the entry moves an issue into the sprint, -1 when out, else 0."""
    if entry.change_type == ChangeType.SPRINT_ADDED and entry.to_sprint_id == sprint_id:
        return 1
    if entry.change_type == ChangeType.SPRINT_REMOVED and entry.from_sprint_id == sprint_id:
        return -1
    if entry.change_type == ChangeType.SPRINT_CHANGED:
        if entry.to_sprint_id == sprint_id and entry.from_sprint_id != sprint_id:
            return 1
        if entry.from_sprint_id == sprint_id and entry.to_sprint_id != sprint_id:
            return -1
    return 0


def compute_churn(
    sprint_id: int,
    window_start: datetime,
    window_end: datetime,
    entries: Iterable[ChangelogEntryModel],
    issues: Iterable[IssueModel],
) -> ChurnResult:
    """Story points and issue counts added to / removed from a sprint in its window.

    ``entries`` is the changelog store content (it may hold entries for other
    sprints); ``issues`` supplies current story points and sprint association.
    Entries whose issue is unknown are ignored. An empty ``entries`` collection
    yields an all-zero result with ``has_changelog_data`` False.
    """
    entries = list(entries)
    result = ChurnResult(has_changelog_data=bool(entries))
    if not entries:
        return result

    start = to_utc(window_start)
    end = to_utc(window_end)
    by_id, by_key = _issue_index(issues)
    considered = 0

    for entry in entries:
        changed_at = to_utc(entry.changed_at)
        if changed_at is None or changed_at < start or changed_at > end:
            continue
        issue = _lookup(entry, by_id, by_key)
        if issue is None:
            continue

        if entry.change_type == ChangeType.STORY_POINTS_CHANGED:
            if issue.sprint_id != sprint_id:
                continue
            considered += 1
            delta = safe_float(entry.story_points_change)
            if delta > 0:
                result.added_story_points += delta
            elif delta < 0:
                result.removed_story_points += abs(delta)
            continue

        if sprint_id not in (entry.from_sprint_id, entry.to_sprint_id):
            continue
        considered += 1
        points = max(safe_float(issue.story_points), 0.0)
        direction = _membership_delta(entry, sprint_id)
        if direction > 0:
            result.added_issues += 1
            result.added_story_points += points
        elif direction < 0:
            result.removed_issues += 1
            result.removed_story_points += points

    logger.info(
        "Sprint %s churn data: added=%s pts/%s issues, removed=%s pts/%s issues (%s entries in window)",
        sprint_id,
        result.added_story_points,
        result.added_issues,
        result.removed_story_points,
        result.removed_issues,
        considered,
    )
    return result


def churn_rate(result: ChurnResult, committed_story_points: float) -> float:
    """``(added + removed) / committed * 100``; 0 when nothing was committed."""
    if committed_story_points <= 0:
        return 0.0
    return (result.added_story_points + result.removed_story_points) / committed_story_points * 100
