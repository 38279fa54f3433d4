"""Frequency and size breakdowns over an issue frame."""

from __future__ import annotations

import pandas as pd

from jira_metrics.core.config import STORY_POINT_BUCKETS, UNASSIGNED_LABEL, UNKNOWN_LABEL


def frequency_map(series: pd.Series, missing_label: str = UNKNOWN_LABEL) -> dict[str, int]:
    if series is None or series.empty:
        return {}
    labels = series.fillna(missing_label).astype(str).replace("", missing_label)
    return {str(label): int(count) for label, count in labels.value_counts().items()}


def issue_breakdowns(df: pd.DataFrame) -> dict[str, dict[str, int]]:
    """Issue counts by type, priority and assignee (missing assignee -> "Unassigned")."""
    return {
        "issue_type": frequency_map(df["issue_type"]),
        "priority": frequency_map(df["priority"]),
        "assignee": frequency_map(df["assignee"], missing_label=UNASSIGNED_LABEL),
    }


def story_points_breakdown(df: pd.DataFrame) -> dict[str, float]:
    """Sum story points per size bucket; issues without points are skipped."""
    out = {label: 0.0 for label, _, _ in STORY_POINT_BUCKETS}
    if df.empty:
        return out
    points = pd.to_numeric(df["story_points"], errors="coerce").fillna(0.0)
    for label, lower, upper in STORY_POINT_BUCKETS:
        mask = (points > lower) & (points <= upper)
        out[label] = float(points[mask].sum())
    return out


def team_members(df: pd.DataFrame) -> list[str]:
    """Distinct assignee and reporter names, assignees first, blanks excluded."""
    seen: set[str] = set()
    members: list[str] = []
    if df.empty:
        return members
    for name in list(df["assignee"]) + list(df["reporter"]):
        if not isinstance(name, str) or not name.strip():
            continue
        if name not in seen:
            members.append(name)
            seen.add(name)
    return members
