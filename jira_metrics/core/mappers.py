"""Mapping raw Jira JSON payloads into domain models and issue DataFrames."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any

import pandas as pd

from .config import (
    FLAGGED_FIELD_ID,
    SPRINT_CHANGELOG_FIELDS,
    SPRINT_STATES,
    STORY_POINT_CHANGELOG_FIELDS,
    STORY_POINT_FIELD_IDS,
)
from .models import ChangelogEntryModel, ChangeType, IssueModel, SprintModel

ISSUE_FRAME_COLUMNS: Sequence[str] = (
    "id",
    "key",
    "issue_type",
    "status",
    "priority",
    "assignee",
    "reporter",
    "story_points",
    "created",
    "updated",
    "resolved",
    "sprint_id",
    "flagged",
    "blocked_reason",
)

DATETIME_COLUMNS: Sequence[str] = ("created", "updated", "resolved")

_FIRST_INT = re.compile(r"(\d+)")
_SPRINT_NUMBER = re.compile(r"Sprint\s+(\d+)", flags=re.IGNORECASE)


def parse_dt(val):
    if val is None or val == "":
        return None
    ts = pd.to_datetime(val, utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def safe_float(value: Any, default: float | None = 0.0) -> float | None:
    """Coerce numbers and numeric strings to float; NaN/inf/garbage -> ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if pd.isna(number) or number in (float("inf"), float("-inf")):
        return default
    return number


def _display_name(node: Any) -> str | None:
    if isinstance(node, dict):
        return node.get("displayName") or node.get("name")
    return None


def _extract_story_points(fields: dict[str, Any]) -> float | None:
    for field_id in STORY_POINT_FIELD_IDS:
        points = safe_float(fields.get(field_id), default=None)
        if points is not None:
            return points
    return None


def map_issue(raw: dict[str, Any], sprint_id: int | None = None) -> IssueModel:
    fields = raw.get("fields", {}) or {}
    parent = fields.get("parent") or {}
    flagged_value = fields.get("flagged")
    if flagged_value is None:
        flagged_value = bool(fields.get(FLAGGED_FIELD_ID))
    raw_id = raw.get("id")
    return IssueModel(
        id=int(raw_id) if raw_id is not None and str(raw_id).isdigit() else None,
        key=raw.get("key"),
        issue_type=_display_name(fields.get("issuetype")),
        status=_display_name(fields.get("status")),
        priority=_display_name(fields.get("priority")),
        assignee=_display_name(fields.get("assignee")),
        reporter=_display_name(fields.get("reporter")),
        story_points=_extract_story_points(fields),
        created=parse_dt(fields.get("created")),
        updated=parse_dt(fields.get("updated")),
        resolved=parse_dt(fields.get("resolutiondate")),
        parent_key=parent.get("key"),
        sprint_id=sprint_id,
        labels=list(fields.get("labels", []) or []),
        components=[c.get("name") for c in fields.get("components", []) or [] if c.get("name")],
        flagged=bool(flagged_value),
        blocked_reason=fields.get("blockedReason"),
    )


def _sprint_state(value: Any) -> str:
    state = str(value or "").lower()
    return state if state in SPRINT_STATES else "future"


def map_sprint(raw: dict[str, Any], board_id: int | None = None) -> SprintModel:
    return SprintModel(
        id=int(raw["id"]),
        name=raw.get("name") or f"Sprint {raw['id']}",
        state=_sprint_state(raw.get("state")),
        board_id=board_id if board_id is not None else raw.get("originBoardId"),
        start_date=parse_dt(raw.get("startDate")),
        end_date=parse_dt(raw.get("endDate")),
        complete_date=parse_dt(raw.get("completeDate")),
        goal=raw.get("goal"),
    )


def resolve_sprint_id(value: str | None, sprints: Iterable[SprintModel] | None = None) -> int | None:
    """Resolve a changelog sprint string ("Team Sprint 12", "123") to a sprint id.

    Name lookup wins; otherwise the number after "Sprint" (or the first number)
    is used, and when sprints are known it must match one of their ids.
    """
    if not value:
        return None
    known = list(sprints or [])
    for sprint in known:
        if sprint.name == value:
            return sprint.id
    match = _SPRINT_NUMBER.search(value) or _FIRST_INT.search(value)
    if not match:
        return None
    candidate = int(match.group(1))
    if known and candidate not in {s.id for s in known}:
        return None
    return candidate


def classify_changelog_item(item: dict[str, Any], sprints: Iterable[SprintModel] | None = None):
    """Return ``(change_type, from_sprint_id, to_sprint_id, story_points_change)``."""
    field_name = item.get("field")
    field_id = item.get("fieldId")
    if field_name in SPRINT_CHANGELOG_FIELDS:
        has_from = bool(item.get("from") or item.get("fromString"))
        has_to = bool(item.get("to") or item.get("toString"))
        from_id = resolve_sprint_id(item.get("fromString") or item.get("from"), sprints) if has_from else None
        to_id = resolve_sprint_id(item.get("toString") or item.get("to"), sprints) if has_to else None
        if has_from and has_to:
            return ChangeType.SPRINT_CHANGED, from_id, to_id, None
        if has_to:
            return ChangeType.SPRINT_ADDED, None, to_id, None
        if has_from:
            return ChangeType.SPRINT_REMOVED, from_id, None, None
        return ChangeType.OTHER, None, None, None
    if field_name in STORY_POINT_CHANGELOG_FIELDS or field_id in STORY_POINT_CHANGELOG_FIELDS:
        before = safe_float(item.get("fromString") or item.get("from"))
        after = safe_float(item.get("toString") or item.get("to"))
        return ChangeType.STORY_POINTS_CHANGED, None, None, after - before
    return ChangeType.OTHER, None, None, None


def is_relevant_change(item: dict[str, Any]) -> bool:
    relevant = SPRINT_CHANGELOG_FIELDS | STORY_POINT_CHANGELOG_FIELDS
    return item.get("field") in relevant or item.get("fieldId") in relevant


def map_changelog(
    raw: dict[str, Any],
    sprints: Iterable[SprintModel] | None = None,
    issue_id: int | None = None,
) -> list[ChangelogEntryModel]:
    """Flatten an issue's changelog histories into sprint/story-point entries."""
    known = list(sprints or [])
    issue_key = raw.get("key")
    if issue_id is None and raw.get("id") is not None and str(raw.get("id")).isdigit():
        issue_id = int(raw["id"])
    histories = (raw.get("changelog") or {}).get("histories", []) or []
    entries: list[ChangelogEntryModel] = []
    for history in histories:
        changed_at = parse_dt(history.get("created"))
        author = _display_name(history.get("author"))
        for item in history.get("items") or []:
            if not is_relevant_change(item):
                continue
            change_type, from_id, to_id, delta = classify_changelog_item(item, known)
            entries.append(
                ChangelogEntryModel(
                    issue_id=issue_id,
                    issue_key=issue_key,
                    field=item.get("field"),
                    changed_at=changed_at,
                    from_value=item.get("fromString"),
                    to_value=item.get("toString"),
                    author=author,
                    change_type=change_type,
                    from_sprint_id=from_id,
                    to_sprint_id=to_id,
                    story_points_change=delta,
                )
            )
    return entries


def issues_to_dataframe(issues: Iterable[IssueModel]) -> pd.DataFrame:
    """Build an issue frame with a stable column set, even for no issues.

    Datetime columns are parsed to UTC (unparseable values become NaT) and
    story points are numeric with missing/NaN values as 0.
    """
    rows = []
    for i in issues:
        rows.append(
            {
                "id": i.id,
                "key": i.key,
                "issue_type": i.issue_type,
                "status": i.status,
                "priority": i.priority,
                "assignee": i.assignee,
                "reporter": i.reporter,
                "story_points": i.story_points,
                "created": i.created,
                "updated": i.updated,
                "resolved": i.resolved,
                "sprint_id": i.sprint_id,
                "flagged": bool(i.flagged),
                "blocked_reason": i.blocked_reason,
            }
        )
    df = pd.DataFrame(rows, columns=list(ISSUE_FRAME_COLUMNS))
    for col in DATETIME_COLUMNS:
        df[col] = pd.to_datetime(df[col], utc=True, errors="coerce")
    # Negative estimates count as unestimated, as in churn
    df["story_points"] = pd.to_numeric(df["story_points"], errors="coerce").fillna(0.0).astype(float).clip(lower=0.0)
    df["flagged"] = df["flagged"].fillna(False).astype(bool)
    return df
