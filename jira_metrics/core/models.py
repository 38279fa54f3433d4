"""Domain records (issues, changelog, sprints, boards) and computed metric snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any


class ChangeType(str, Enum):
    SPRINT_ADDED = "sprint_added"
    SPRINT_REMOVED = "sprint_removed"
    SPRINT_CHANGED = "sprint_changed"
    STORY_POINTS_CHANGED = "story_points_changed"
    OTHER = "other"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _export(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_export(v) for v in value]
    if isinstance(value, dict):
        return {k: _export(v) for k, v in value.items()}
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class _SnapshotMixin:
    """camelCase export matching the dashboard's JSON field names."""

    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return {camel_case(f.name): _export(getattr(self, f.name)) for f in fields(self)}


# ---------------------------------------------------------------------------
# Input records (owned by the sync collaborator, read-only here)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class IssueModel:
    id: int | None
    key: str
    issue_type: str | None
    status: str | None
    priority: str | None = None
    assignee: str | None = None
    reporter: str | None = None
    story_points: float | None = None
    created: datetime | None = None
    updated: datetime | None = None
    resolved: datetime | None = None
    parent_key: str | None = None
    sprint_id: int | None = None
    labels: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    flagged: bool = False
    blocked_reason: str | None = None


@dataclass(slots=True)
class ChangelogEntryModel:
    issue_id: int | None
    issue_key: str
    field: str
    changed_at: datetime | None
    from_value: str | None = None
    to_value: str | None = None
    author: str | None = None
    change_type: ChangeType = ChangeType.OTHER
    from_sprint_id: int | None = None
    to_sprint_id: int | None = None
    story_points_change: float | None = None


@dataclass(slots=True)
class SprintModel:
    id: int
    name: str
    state: str
    board_id: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    complete_date: datetime | None = None
    goal: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state == "active"

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"


@dataclass(slots=True)
class BoardModel:
    id: int
    name: str
    project_key: str | None = None


@dataclass(slots=True)
class KanbanBoardModel:
    id: int
    name: str
    project_key: str | None = None


# ---------------------------------------------------------------------------
# Computed outputs
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ChurnResult(_SnapshotMixin):
    added_story_points: float = 0.0
    removed_story_points: float = 0.0
    added_issues: int = 0
    removed_issues: int = 0
    has_changelog_data: bool = False


@dataclass(slots=True)
class CommentaryResult(_SnapshotMixin):
    commentary: str
    recommendations: list[str]
    priority: str
    sentiment: str


@dataclass(slots=True)
class SprintMetricsSnapshot(_SnapshotMixin):
    sprint_id: int
    calculated_at: datetime
    velocity: float = 0.0
    churn_rate: float = 0.0
    completion_rate: float = 0.0
    scope_change_percent: float = 0.0
    total_story_points: float = 0.0
    completed_story_points: float = 0.0
    added_story_points: float = 0.0
    removed_story_points: float = 0.0
    total_issues: int = 0
    completed_issues: int = 0
    added_issues: int = 0
    removed_issues: int = 0
    issue_type_breakdown: dict[str, int] = field(default_factory=dict)
    priority_breakdown: dict[str, int] = field(default_factory=dict)
    assignee_breakdown: dict[str, int] = field(default_factory=dict)
    story_points_breakdown: dict[str, float] = field(default_factory=dict)
    average_cycle_time: float | None = None
    median_cycle_time: float | None = None
    average_lead_time: float | None = None
    median_lead_time: float | None = None
    defect_leakage_rate: float = 0.0
    quality_rate: float = 100.0
    total_defects: int = 0
    completed_defects: int = 0
    churn_source: str = "none"
    commentary: str | None = None
    team_members: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BoardMetricsSnapshot(_SnapshotMixin):
    board_id: int
    calculated_at: datetime
    average_velocity: float = 0.0
    average_churn_rate: float = 0.0
    average_completion_rate: float = 0.0
    average_cycle_time: float | None = None
    average_lead_time: float | None = None
    average_defect_leakage_rate: float = 0.0
    average_quality_rate: float = 100.0
    total_sprints: int = 0
    active_sprints: int = 0
    completed_sprints: int = 0
    predicted_velocity: float = 0.0
    velocity_trend: Trend = Trend.STABLE
    churn_rate_trend: Trend = Trend.STABLE
    team_members: list[str] = field(default_factory=list)
    total_story_points: float = 0.0
    total_defects: int = 0


@dataclass(slots=True)
class ColumnMetric(_SnapshotMixin):
    column_name: str
    issue_count: int
    average_age: float
    oldest_issue_age: int
    wip_limit: int | None
    wip_violation: bool


@dataclass(slots=True)
class KanbanMetricsSnapshot(_SnapshotMixin):
    kanban_board_id: int
    calculated_at: datetime
    total_issues: int = 0
    todo_issues: int = 0
    in_progress_issues: int = 0
    done_issues: int = 0
    blocked_issues: int = 0
    flagged_issues: int = 0
    average_cycle_time: float | None = None
    median_cycle_time: float | None = None
    cycle_times: list[int] = field(default_factory=list)
    average_lead_time: float | None = None
    median_lead_time: float | None = None
    lead_times: list[int] = field(default_factory=list)
    weekly_throughput: list[int] = field(default_factory=list)
    monthly_throughput: list[int] = field(default_factory=list)
    wip_violations: int = 0
    wip_utilization: dict[str, dict[str, Any]] = field(default_factory=dict)
    flow_efficiency: float | None = None
    average_age_in_progress: float | None = None
    oldest_issue_age: int | None = None
    issue_type_breakdown: dict[str, int] = field(default_factory=dict)
    priority_breakdown: dict[str, int] = field(default_factory=dict)
    assignee_breakdown: dict[str, int] = field(default_factory=dict)
    column_metrics: list[ColumnMetric] = field(default_factory=list)
