"""Central configuration, constants, and tuning knobs for metrics derivation."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

# =============================================================================
# Time Settings
# =============================================================================
# Timezone used for calendar-month throughput buckets and the default "now".
TIMEZONE = "UTC"
SECONDS_PER_DAY = 86400.0

# =============================================================================
# Issue Type Configuration
# =============================================================================
# Sub-task spellings (compared lowercase after trimming)
SUB_TASK_TYPES: frozenset[str] = frozenset(
    {
        "sub-task",
        "subtask",
        "sub task",
    }
)

# Types that are not meaningful delivered work for defect leakage / quality rate
QUALITY_EXCLUDED_TYPES: frozenset[str] = frozenset({"Release", "Sub-task", "Spike", "Bug"})

# Only "Defect" counts as a process-quality failure ("Bug" is tracked separately)
DEFECT_TYPES: frozenset[str] = frozenset({"Defect"})

# =============================================================================
# Workflow Status Configuration
# =============================================================================
# Keyword sets for the workflow buckets (substring match on lowercase status).
# Order matters: the first bucket with a matching keyword wins.
TODO_KEYWORDS: Sequence[str] = ("to do", "todo", "backlog")
IN_PROGRESS_KEYWORDS: Sequence[str] = ("progress", "development", "review")
DONE_KEYWORDS: Sequence[str] = ("done", "complete", "closed")

# Exact statuses counted as completed by sprint metrics
STRICT_COMPLETED_STATUSES: frozenset[str] = frozenset({"Done", "Closed", "Resolved"})

SPRINT_STATES: Sequence[str] = ("future", "active", "closed")

# =============================================================================
# Sprint Metrics Settings
# =============================================================================
# Story point size buckets: (label, exclusive lower bound, inclusive upper bound)
STORY_POINT_BUCKETS: Sequence[tuple[str, float, float]] = (
    ("Small (0-3)", 0.0, 3.0),
    ("Medium (3-5)", 3.0, 5.0),
    ("Large (>5)", 5.0, float("inf")),
)

UNASSIGNED_LABEL = "Unassigned"
UNKNOWN_LABEL = "Unknown"

# =============================================================================
# Board Trend Settings
# =============================================================================
TREND_WINDOW = 3  # sprints per comparison window
TREND_MIN_SPRINTS = 2 * TREND_WINDOW
TREND_UP_FACTOR = 1.1
TREND_DOWN_FACTOR = 0.9
PREDICTION_WINDOW = 3

# =============================================================================
# Kanban Settings
# =============================================================================
WEEKLY_THROUGHPUT_WEEKS = 12
MONTHLY_THROUGHPUT_MONTHS = 6

# Default WIP limits keyed by column-name keywords, checked in order
DEFAULT_WIP_LIMIT_RULES: Sequence[tuple[tuple[str, ...], int]] = (
    (("progress", "development"), 5),
    (("review", "testing"), 3),
    (("deploy", "release"), 2),
)

# Share of lead time assumed to be active work when estimating flow efficiency
DEFAULT_ACTIVE_WORK_RATIO = 0.6

# =============================================================================
# Commentary Thresholds
# =============================================================================
# Descending thresholds: value >= threshold[i] -> severity i
VELOCITY_EFFICIENCY_THRESHOLDS: Sequence[float] = (95, 80, 65, 45)
COMPLETION_RATE_THRESHOLDS: Sequence[float] = (90, 75, 60, 40)
QUALITY_RATE_THRESHOLDS: Sequence[float] = (95, 90, 80, 70)

# Ascending thresholds: value <= threshold[i] -> severity i
COMPLETION_GAP_THRESHOLDS: Sequence[float] = (5, 15, 30)
CHURN_RATE_THRESHOLDS: Sequence[float] = (5, 15, 25, 40)
SCOPE_CHANGE_THRESHOLDS: Sequence[float] = (5, 15, 30)
CYCLE_TIME_THRESHOLDS: Sequence[float] = (2, 5, 10)
LEAD_TIME_THRESHOLDS: Sequence[float] = (5, 10, 20)

# =============================================================================
# Jira Field Mapping
# =============================================================================
# Candidate story point fields, tried in order
STORY_POINT_FIELD_IDS: Sequence[str] = (
    "customfield_10030",
    "customfield_10016",
    "customfield_10002",
    "customfield_10020",
)

# Jira "Flagged" checkbox field (impediment marker on kanban cards)
FLAGGED_FIELD_ID = "customfield_10021"

# Changelog items kept for churn analysis
SPRINT_CHANGELOG_FIELDS: frozenset[str] = frozenset({"Sprint"})
STORY_POINT_CHANGELOG_FIELDS: frozenset[str] = frozenset({"Story Points", "customfield_10020"})


@dataclass(slots=True)
class KanbanSettings:
    wip_limit_rules: Sequence[tuple[tuple[str, ...], int]] = field(
        default_factory=lambda: tuple(DEFAULT_WIP_LIMIT_RULES)
    )
    active_work_ratio: float = DEFAULT_ACTIVE_WORK_RATIO


@dataclass(slots=True)
class AppSettings:
    timezone: str = TIMEZONE
    kanban: KanbanSettings = field(default_factory=KanbanSettings)


SETTINGS = AppSettings()
