"""Board-level aggregation across sprint snapshots: averages, trends, prediction."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime

import pandas as pd

from jira_metrics.core.config import (
    PREDICTION_WINDOW,
    TREND_DOWN_FACTOR,
    TREND_MIN_SPRINTS,
    TREND_UP_FACTOR,
    TREND_WINDOW,
)
from jira_metrics.core.models import BoardMetricsSnapshot, BoardModel, SprintMetricsSnapshot, SprintModel, Trend

from .timing import resolve_now, to_utc

logger = logging.getLogger(__name__)

_FAR_FUTURE = pd.Timestamp.max.tz_localize("UTC")


def chronological(sprints: Iterable[SprintModel]) -> list[SprintModel]:
    """Order sprints by start date (undated last), then id."""

    def _key(sprint: SprintModel):
        start = to_utc(sprint.start_date)
        return (start if start is not None else _FAR_FUTURE, sprint.id)

    return sorted(sprints, key=_key)


def classify_trend(values: Sequence[float]) -> Trend:
    """Compare the mean of the last ``TREND_WINDOW`` values with the window before it.

    Needs at least ``TREND_MIN_SPRINTS`` values (oldest first); fewer is STABLE.
    """
    if len(values) < TREND_MIN_SPRINTS:
        return Trend.STABLE
    recent = sum(values[-TREND_WINDOW:]) / TREND_WINDOW
    previous = sum(values[-2 * TREND_WINDOW : -TREND_WINDOW]) / TREND_WINDOW
    if recent > previous * TREND_UP_FACTOR:
        return Trend.UP
    if recent < previous * TREND_DOWN_FACTOR:
        return Trend.DOWN
    return Trend.STABLE


def predict_velocity(velocities: Sequence[float]) -> float:
    """Mean of the most recent sprints, or of all of them when there are fewer."""
    if not velocities:
        return 0.0
    window = velocities[-PREDICTION_WINDOW:] if len(velocities) >= PREDICTION_WINDOW else velocities
    return float(sum(window) / len(window))


def _mean_or_none(series: pd.Series) -> float | None:
    values = pd.to_numeric(series, errors="coerce").dropna()
    if values.empty:
        return None
    return float(values.mean())


def _union_members(snapshots: Iterable[SprintMetricsSnapshot]) -> list[str]:
    seen: dict[str, None] = {}
    for snap in snapshots:
        for member in snap.team_members:
            if member:
                seen.setdefault(member, None)
    return list(seen)


def calculate_board_metrics(
    board: BoardModel | None,
    sprints: Iterable[SprintModel],
    sprint_snapshots: Mapping[int, SprintMetricsSnapshot | None],
    *,
    now: datetime | None = None,
) -> BoardMetricsSnapshot | None:
    """Aggregate a board's sprint snapshots into a board snapshot.

    Sprints without a snapshot contribute to the state counts only. A board
    with no sprints (or no snapshots) yields a zero-filled snapshot.
    """
    if board is None:
        logger.warning("Board not found; skipping board metrics")
        return None
    calculated_at = resolve_now(now).to_pydatetime()
    ordered = chronological(sprints)
    snapshot = BoardMetricsSnapshot(board_id=board.id, calculated_at=calculated_at)
    if not ordered:
        logger.info("No sprints found for board %s", board.id)
        return snapshot

    snapshot.total_sprints = len(ordered)
    snapshot.active_sprints = sum(1 for s in ordered if s.is_active)
    snapshot.completed_sprints = sum(1 for s in ordered if s.is_closed)

    valid = [sprint_snapshots[s.id] for s in ordered if sprint_snapshots.get(s.id) is not None]
    if not valid:
        logger.info("No sprint metrics available for board %s", board.id)
        return snapshot

    frame = pd.DataFrame(
        {
            "velocity": [m.velocity for m in valid],
            "churn_rate": [m.churn_rate for m in valid],
            "completion_rate": [m.completion_rate for m in valid],
            "defect_leakage_rate": [m.defect_leakage_rate for m in valid],
            "quality_rate": [m.quality_rate for m in valid],
            "average_cycle_time": [m.average_cycle_time for m in valid],
            "average_lead_time": [m.average_lead_time for m in valid],
            "total_story_points": [m.total_story_points for m in valid],
            "total_defects": [m.total_defects for m in valid],
        },
        dtype="float64",
    )

    velocities = frame["velocity"].tolist()
    snapshot.average_velocity = float(frame["velocity"].mean())
    snapshot.average_churn_rate = float(frame["churn_rate"].mean())
    snapshot.average_completion_rate = float(frame["completion_rate"].mean())
    snapshot.average_defect_leakage_rate = float(frame["defect_leakage_rate"].mean())
    snapshot.average_quality_rate = float(frame["quality_rate"].mean())
    snapshot.average_cycle_time = _mean_or_none(frame["average_cycle_time"])
    snapshot.average_lead_time = _mean_or_none(frame["average_lead_time"])
    snapshot.velocity_trend = classify_trend(velocities)
    snapshot.churn_rate_trend = classify_trend(frame["churn_rate"].tolist())
    snapshot.predicted_velocity = predict_velocity(velocities)
    snapshot.team_members = _union_members(valid)
    snapshot.total_story_points = float(frame["total_story_points"].sum())
    snapshot.total_defects = int(frame["total_defects"].sum())

    logger.info(
        "Board %s: %s sprint snapshots, avg velocity %.2f, predicted %.2f, trend %s",
        board.id,
        len(valid),
        snapshot.average_velocity,
        snapshot.predicted_velocity,
        snapshot.velocity_trend.value,
    )
    return snapshot
