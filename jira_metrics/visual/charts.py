"""Chart builders (Altair) for sprint velocity and kanban throughput trends."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import altair as alt
import pandas as pd

from jira_metrics.analytics.metrics.board import chronological
from jira_metrics.core.models import KanbanMetricsSnapshot, SprintMetricsSnapshot, SprintModel


def velocity_frame(
    sprints: Iterable[SprintModel],
    snapshots: Mapping[int, SprintMetricsSnapshot | None],
) -> pd.DataFrame:
    rows = []
    for order, sprint in enumerate(chronological(sprints)):
        snap = snapshots.get(sprint.id)
        if snap is None:
            continue
        rows.append(
            {
                "order": order,
                "sprint": sprint.name,
                "velocity": float(snap.velocity),
                "committed": float(snap.total_story_points),
                "completion_rate": float(snap.completion_rate),
            }
        )
    return pd.DataFrame(rows, columns=["order", "sprint", "velocity", "committed", "completion_rate"])


def velocity_history(
    sprints: Iterable[SprintModel],
    snapshots: Mapping[int, SprintMetricsSnapshot | None],
):
    """Bars of committed points with the delivered velocity as a line, oldest sprint first."""
    chart_df = velocity_frame(sprints, snapshots)
    if chart_df.empty:
        return None
    x = alt.X("sprint:N", title="Sprint", sort=alt.EncodingSortField(field="order", order="ascending"))
    committed = (
        alt.Chart(chart_df)
        .mark_bar(color="#c7d7ea")
        .encode(
            x=x,
            y=alt.Y("committed:Q", title="Story Points"),
            tooltip=[
                alt.Tooltip("sprint:N", title="Sprint"),
                alt.Tooltip("committed:Q", title="Committed"),
                alt.Tooltip("velocity:Q", title="Velocity"),
                alt.Tooltip("completion_rate:Q", title="Completion %", format=".1f"),
            ],
        )
    )
    delivered = (
        alt.Chart(chart_df)
        .mark_line(color="#1f77b4", point=True)
        .encode(x=x, y="velocity:Q")
    )
    return (committed + delivered).properties(height=300)


def throughput_frame(snapshot: KanbanMetricsSnapshot) -> pd.DataFrame:
    weeks = len(snapshot.weekly_throughput)
    labels = [f"W-{weeks - 1 - i}" if i < weeks - 1 else "This week" for i in range(weeks)]
    return pd.DataFrame(
        {
            "order": list(range(weeks)),
            "week": labels,
            "completed": [int(v) for v in snapshot.weekly_throughput],
        }
    )


def weekly_throughput(snapshot: KanbanMetricsSnapshot | None):
    """Completed issues per week for a kanban board, oldest week first."""
    if snapshot is None or not snapshot.weekly_throughput:
        return None
    chart_df = throughput_frame(snapshot)
    chart = (
        alt.Chart(chart_df)
        .mark_bar(color="#2ca02c")
        .encode(
            x=alt.X("week:N", title="Week", sort=alt.EncodingSortField(field="order", order="ascending")),
            y=alt.Y("completed:Q", title="Issues Completed"),
            tooltip=[
                alt.Tooltip("week:N", title="Week"),
                alt.Tooltip("completed:Q", title="Completed"),
            ],
        )
        .properties(height=220)
    )
    return chart
