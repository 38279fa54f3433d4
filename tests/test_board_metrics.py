from datetime import datetime, timedelta

import pytz

from jira_metrics.analytics.metrics.board import (
    calculate_board_metrics,
    chronological,
    classify_trend,
    predict_velocity,
)
from jira_metrics.core.models import BoardModel, SprintMetricsSnapshot, SprintModel, Trend

NOW = pytz.UTC.localize(datetime(2024, 6, 20, 12, 0))
BASE = pytz.UTC.localize(datetime(2024, 1, 1))


def _sprints(count, state="closed"):
    return [
        SprintModel(
            id=100 + i,
            name=f"Sprint {i + 1}",
            state=state,
            board_id=1,
            start_date=BASE + timedelta(days=14 * i),
            end_date=BASE + timedelta(days=14 * (i + 1)),
        )
        for i in range(count)
    ]


def _snap(sprint_id, velocity, churn=10.0, cycle=None, members=()):
    return SprintMetricsSnapshot(
        sprint_id=sprint_id,
        calculated_at=NOW,
        velocity=velocity,
        churn_rate=churn,
        completion_rate=80.0,
        total_story_points=velocity + 5,
        average_cycle_time=cycle,
        average_lead_time=cycle,
        total_defects=1,
        quality_rate=90.0,
        defect_leakage_rate=10.0,
        team_members=list(members),
    )


def test_trend_thresholds():
    assert classify_trend([10, 10, 10, 12, 12, 12]) == Trend.UP
    assert classify_trend([10, 10, 10, 8, 8, 8]) == Trend.DOWN
    assert classify_trend([10, 10, 10, 10.5, 10.5, 10.5]) == Trend.STABLE
    assert classify_trend([1, 2, 3, 30, 40]) == Trend.STABLE


def test_prediction_window():
    assert predict_velocity([]) == 0.0
    assert predict_velocity([4, 8]) == 6.0
    assert predict_velocity([100, 3, 6, 9]) == 6.0


def test_board_not_found():
    assert calculate_board_metrics(None, [], {}) is None


def test_board_without_sprints_is_zero_filled():
    snap = calculate_board_metrics(BoardModel(id=1, name="B"), [], {}, now=NOW)
    assert snap.total_sprints == 0
    assert snap.average_velocity == 0
    assert snap.average_quality_rate == 100
    assert snap.velocity_trend == Trend.STABLE
    assert snap.churn_rate_trend == Trend.STABLE
    assert snap.predicted_velocity == 0


def test_board_aggregation():
    sprints = _sprints(6)
    velocities = [10, 10, 10, 20, 20, 20]
    snapshots = {
        s.id: _snap(s.id, v, churn=30.0 - i * 4, cycle=4.0 if i % 2 == 0 else None, members=[f"m{i % 2}"])
        for i, (s, v) in enumerate(zip(sprints, velocities))
    }
    # shuffle input order; aggregation is chronological
    snap = calculate_board_metrics(BoardModel(id=1, name="B"), list(reversed(sprints)), snapshots, now=NOW)
    assert snap.total_sprints == 6
    assert snap.completed_sprints == 6
    assert snap.average_velocity == 15
    assert snap.velocity_trend == Trend.UP
    assert snap.churn_rate_trend == Trend.DOWN
    assert snap.predicted_velocity == 20
    assert snap.average_cycle_time == 4.0
    assert snap.team_members == ["m0", "m1"]
    assert snap.total_story_points == sum(velocities) + 30
    assert snap.total_defects == 6


def test_board_counts_sprints_without_snapshots():
    sprints = _sprints(2) + [SprintModel(id=200, name="Current", state="active", board_id=1)]
    snapshots = {sprints[0].id: _snap(sprints[0].id, 6), sprints[1].id: _snap(sprints[1].id, 12)}
    snap = calculate_board_metrics(BoardModel(id=1, name="B"), sprints, snapshots, now=NOW)
    assert snap.total_sprints == 3
    assert snap.active_sprints == 1
    assert snap.completed_sprints == 2
    assert snap.average_velocity == 9
    assert snap.predicted_velocity == 9
    assert snap.average_cycle_time is None


def test_chronological_puts_undated_last():
    undated = SprintModel(id=1, name="Future", state="future")
    ordered = chronological([undated] + list(reversed(_sprints(3))))
    assert [s.id for s in ordered] == [100, 101, 102, 1]
