"""Narrative commentary for a sprint from its numeric metrics.

Each dimension gets a severity from 0 (best) to 4 (worst) via the threshold
tables in ``core.config``. Recommendations and priority come from individual
dimensions; sentiment from the mean severity over all seven.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from jira_metrics.core.config import (
    CHURN_RATE_THRESHOLDS,
    COMPLETION_GAP_THRESHOLDS,
    COMPLETION_RATE_THRESHOLDS,
    CYCLE_TIME_THRESHOLDS,
    LEAD_TIME_THRESHOLDS,
    QUALITY_RATE_THRESHOLDS,
    SCOPE_CHANGE_THRESHOLDS,
    VELOCITY_EFFICIENCY_THRESHOLDS,
)
from jira_metrics.core.mappers import safe_float
from jira_metrics.core.models import CommentaryResult, SprintMetricsSnapshot, SprintModel, camel_case

from .metrics.timing import resolve_now, round_half_up, to_utc

logger = logging.getLogger(__name__)

PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"
PRIORITY_CRITICAL = "critical"

SENTIMENT_POSITIVE = "positive"
SENTIMENT_NEUTRAL = "neutral"
SENTIMENT_WARNING = "warning"
SENTIMENT_NEGATIVE = "negative"


@dataclass(frozen=True, slots=True)
class Severity:
    level: int
    note: str


def descending_severity(value: float, thresholds: Sequence[float]) -> int:
    """Higher is better: ``value >= thresholds[i]`` gives severity ``i``."""
    for level, threshold in enumerate(thresholds):
        if value >= threshold:
            return level
    return len(thresholds)


def ascending_severity(value: float, thresholds: Sequence[float]) -> int:
    """Lower is better: ``value <= thresholds[i]`` gives severity ``i``."""
    for level, threshold in enumerate(thresholds):
        if value <= threshold:
            return level
    return len(thresholds)


# ---------------------------------------------------------------------------
# Per-dimension analysis
# ---------------------------------------------------------------------------
_VELOCITY_NOTES = (
    "Excellent story point velocity",
    "Good story point velocity",
    "Moderate story point velocity",
    "Low story point velocity",
    "Very low story point velocity",
)
_DELIVERY_NOTES = (
    "Excellent story point delivery",
    "Good story point delivery",
    "Moderate story point delivery",
    "Poor story point delivery",
    "Very poor story point delivery",
)
_PROGRESS_NOTES = (
    "On track with story points",
    "Slightly behind on story points",
    "Behind schedule on story points",
    "Significantly behind on story points",
)
_CHURN_NOTES = ("Excellent stability", "Good stability", "Moderate churn", "High churn", "Excessive churn")
_SCOPE_NOTES = ("Stable scope", "Minor scope changes", "Moderate scope changes", "Significant scope changes")
_CYCLE_NOTES = ("Fast cycle time", "Good cycle time", "Moderate cycle time", "Slow cycle time")
_LEAD_NOTES = ("Fast lead time", "Good lead time", "Moderate lead time", "Slow lead time")
_QUALITY_NOTES = (
    "Excellent quality - very few defects",
    "Good quality - minimal defects",
    "Moderate quality - some defects present",
    "Poor quality - significant defects",
    "Critical quality issues - high defect rate",
)


def analyze_velocity(velocity: float, total_story_points: float) -> Severity:
    efficiency = velocity / total_story_points * 100 if total_story_points > 0 else 0.0
    level = descending_severity(efficiency, VELOCITY_EFFICIENCY_THRESHOLDS)
    return Severity(level, _VELOCITY_NOTES[level])


def analyze_completion(completion_rate: float, progress_percent: float, is_active: bool) -> Severity:
    if not is_active:
        level = descending_severity(completion_rate, COMPLETION_RATE_THRESHOLDS)
        return Severity(level, _DELIVERY_NOTES[level])
    # Active sprints are judged against the share of the sprint already elapsed
    level = ascending_severity(progress_percent - completion_rate, COMPLETION_GAP_THRESHOLDS)
    return Severity(level, _PROGRESS_NOTES[level])


def analyze_churn(churn_rate: float) -> Severity:
    level = ascending_severity(churn_rate, CHURN_RATE_THRESHOLDS)
    return Severity(level, _CHURN_NOTES[level])


def analyze_scope(scope_change_percent: float) -> Severity:
    level = ascending_severity(scope_change_percent, SCOPE_CHANGE_THRESHOLDS)
    return Severity(level, _SCOPE_NOTES[level])


def analyze_cycle_time(average_cycle_time: float | None) -> Severity:
    if not average_cycle_time:
        return Severity(0, "Cycle time not available")
    level = ascending_severity(average_cycle_time, CYCLE_TIME_THRESHOLDS)
    return Severity(level, _CYCLE_NOTES[level])


def analyze_lead_time(average_lead_time: float | None) -> Severity:
    if not average_lead_time:
        return Severity(0, "Lead time not available")
    level = ascending_severity(average_lead_time, LEAD_TIME_THRESHOLDS)
    return Severity(level, _LEAD_NOTES[level])


def analyze_quality(quality_rate: float) -> Severity:
    level = descending_severity(quality_rate, QUALITY_RATE_THRESHOLDS)
    return Severity(level, _QUALITY_NOTES[level])


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
_NUMERIC_FIELDS = (
    "velocity",
    "churn_rate",
    "completion_rate",
    "scope_change_percent",
    "total_story_points",
    "completed_story_points",
    "total_issues",
    "completed_issues",
    "defect_leakage_rate",
    "quality_rate",
    "total_defects",
    "completed_defects",
)
_OPTIONAL_FIELDS = ("average_cycle_time", "average_lead_time")
_NUMERIC_DEFAULTS = {"quality_rate": 100.0}


def _metric_values(metrics: SprintMetricsSnapshot | Mapping[str, Any]) -> dict[str, Any]:
    """Read metrics from a snapshot or a mapping, coercing numeric strings."""
    if isinstance(metrics, Mapping):

        def getter(name, default=None):
            # Stored snapshots use the camelCase keys of ``to_dict()``
            if name in metrics:
                return metrics[name]
            return metrics.get(camel_case(name), default)

    else:

        def getter(name, default=None):
            return getattr(metrics, name, default)

    values: dict[str, Any] = {
        name: safe_float(getter(name, None), default=_NUMERIC_DEFAULTS.get(name, 0.0)) for name in _NUMERIC_FIELDS
    }
    for name in _OPTIONAL_FIELDS:
        # 0 and missing both mean "no timing data"
        values[name] = safe_float(getter(name, None), default=None) or None
    return values


def sprint_progress_percent(sprint: SprintModel, now: datetime | None = None) -> float:
    """Elapsed share of an active sprint's window (0-100); 100 for other states."""
    if not sprint.is_active:
        return 100.0
    ts_now = resolve_now(now)
    start = to_utc(sprint.start_date) or ts_now
    end = to_utc(sprint.end_date) or ts_now
    duration = (end - start).total_seconds()
    if duration <= 0:
        return 100.0
    elapsed = (ts_now - start).total_seconds()
    return min(100.0, max(0.0, elapsed / duration * 100))


def _rounded(value: float) -> int:
    return int(round_half_up(value))


def _points(value: float) -> str:
    return f"{value:g}"


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------
def _narrative(
    sprint: SprintModel,
    m: dict[str, Any],
    factors: dict[str, Severity],
    progress_percent: float,
) -> str:
    parts: list[str] = []

    if sprint.is_active:
        parts.append(f"Sprint is {_rounded(progress_percent)}% complete by time.")
    elif sprint.is_closed:
        parts.append(
            f"Sprint completed with {_rounded(m['completion_rate'])}% of story points delivered "
            f"({_points(m['completed_story_points'])}/{_points(m['total_story_points'])} points)."
        )

    velocity, completion = factors["velocity"].level, factors["completion"].level
    if velocity <= 1 and completion <= 1:
        parts.append("🎯 Performance is strong with good velocity and story point completion rates.")
    elif velocity >= 3 or completion >= 3:
        parts.append("⚠️ Performance concerns detected in velocity or story point completion metrics.")
    else:
        parts.append("📊 Performance is moderate with room for improvement in story point delivery.")

    if m["churn_rate"] > 20:
        parts.append(f"Churn rate of {_rounded(m['churn_rate'])}% suggests scope instability.")

    issue_rate = m["completed_issues"] / m["total_issues"] * 100 if m["total_issues"] > 0 else 0.0
    point_rate = m["completion_rate"]
    if abs(point_rate - issue_rate) > 15:
        if point_rate > issue_rate:
            parts.append(
                f"Team focused on high-value stories ({_rounded(point_rate)}% story points "
                f"vs {_rounded(issue_rate)}% issues completed)."
            )
        else:
            parts.append(
                f"Team completed many small tasks but fewer story points ({_rounded(issue_rate)}% issues "
                f"vs {_rounded(point_rate)}% story points)."
            )

    if m["scope_change_percent"] > 15:
        parts.append(f"Scope changed by {_rounded(m['scope_change_percent'])}% during sprint.")

    if m["average_cycle_time"] and m["average_cycle_time"] > 7:
        parts.append(
            f"Average cycle time of {_rounded(m['average_cycle_time'])} days may indicate process bottlenecks."
        )

    if m["total_defects"] > 0:
        parts.append(
            f"Quality metrics: {int(m['total_defects'])} defects found ({_rounded(m['defect_leakage_rate'])}% of "
            f"development work), resulting in {_rounded(m['quality_rate'])}% quality rate."
        )
        if m["defect_leakage_rate"] > 20:
            parts.append("High defect rate suggests need for improved testing and code review processes.")
        elif m["defect_leakage_rate"] > 10:
            parts.append("Moderate defect rate - consider strengthening quality gates.")
        elif m["defect_leakage_rate"] <= 5:
            parts.append("Excellent quality with minimal defects - good testing practices in place.")
    else:
        parts.append("🏆 Zero defects in this sprint - excellent quality delivery!")

    if sprint.is_active:
        if m["completion_rate"] < progress_percent - 20:
            parts.append("Consider adjusting scope or increasing focus to meet story point commitments.")
        elif m["completion_rate"] > progress_percent + 10:
            parts.append("Excellent progress - team is ahead of schedule on story point delivery.")
        if m["velocity"] > 0 and m["total_story_points"] > 0:
            projected = m["velocity"] / m["total_story_points"] * 100
            if projected > 100:
                parts.append("Current velocity suggests the team may exceed sprint goals.")
            elif projected < 70:
                parts.append("Current velocity indicates potential risk of missing sprint goals.")

    return " ".join(parts)


def generate_sprint_commentary(
    sprint: SprintModel,
    metrics: SprintMetricsSnapshot | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> CommentaryResult:
    """Build commentary, recommendations, priority and sentiment for a sprint.

    ``metrics`` may be a snapshot or a mapping with snake_case keys whose
    values are numbers or numeric strings.
    """
    m = _metric_values(metrics)
    progress = sprint_progress_percent(sprint, now)

    factors = {
        "velocity": analyze_velocity(m["velocity"], m["total_story_points"]),
        "completion": analyze_completion(m["completion_rate"], progress, sprint.is_active),
        "churn": analyze_churn(m["churn_rate"]),
        "scope": analyze_scope(m["scope_change_percent"]),
        "cycle_time": analyze_cycle_time(m["average_cycle_time"]),
        "lead_time": analyze_lead_time(m["average_lead_time"]),
        "quality": analyze_quality(m["quality_rate"]),
    }

    recommendations: list[str] = []
    priority = PRIORITY_LOW
    sentiment = SENTIMENT_NEUTRAL

    def escalate(to: str) -> None:
        nonlocal priority
        if priority == PRIORITY_LOW:
            priority = to

    if factors["churn"].level >= 3:
        recommendations.append("🔄 High churn detected - Review sprint planning and scope management")
        escalate(PRIORITY_HIGH)
    if factors["completion"].level >= 3 and sprint.is_active:
        recommendations.append("⚡ Sprint may be at risk - Consider scope adjustment or additional resources")
        escalate(PRIORITY_HIGH)
    if factors["scope"].level >= 2:
        recommendations.append("📋 Scope changes detected - Improve initial sprint planning and stakeholder alignment")
        escalate(PRIORITY_MEDIUM)
    if factors["cycle_time"].level >= 3:
        recommendations.append("🚀 Long cycle times - Review development process and remove blockers")
        escalate(PRIORITY_MEDIUM)
    if factors["quality"].level >= 3:
        recommendations.append("🐛 High defect rate detected - Strengthen code review and testing practices")
        escalate(PRIORITY_HIGH)
    elif factors["quality"].level >= 2:
        recommendations.append("🔍 Quality concerns - Consider additional testing and quality gates")
        escalate(PRIORITY_MEDIUM)
    if factors["velocity"].level == 0 and factors["completion"].level <= 1:
        recommendations.append("✨ Great performance! Continue current practices")
        sentiment = SENTIMENT_POSITIVE

    mean_severity = sum(f.level for f in factors.values()) / len(factors)
    if mean_severity >= 3:
        sentiment = SENTIMENT_NEGATIVE
        priority = PRIORITY_CRITICAL
    elif mean_severity >= 2:
        sentiment = SENTIMENT_WARNING
        escalate(PRIORITY_HIGH)
    elif mean_severity <= 0.5:
        sentiment = SENTIMENT_POSITIVE

    logger.debug(
        "Sprint %s commentary: mean severity %.2f, priority %s, sentiment %s",
        sprint.id,
        mean_severity,
        priority,
        sentiment,
    )
    return CommentaryResult(
        commentary=_narrative(sprint, m, factors, progress),
        recommendations=recommendations,
        priority=priority,
        sentiment=sentiment,
    )
