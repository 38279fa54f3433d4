from datetime import datetime, timedelta

import pandas as pd
import pytz

from jira_metrics.analytics.aggregations.breakdowns import frequency_map, story_points_breakdown, team_members
from jira_metrics.analytics.metrics.timing import (
    age_in_days,
    creation_to_completion_days,
    resolve_now,
    round_half_up,
    summarize_durations,
)
from jira_metrics.core.mappers import issues_to_dataframe
from jira_metrics.core.models import IssueModel

NOW = pytz.UTC.localize(datetime(2024, 6, 20, 12, 0))


def _sample_df():
    return issues_to_dataframe(
        [
            IssueModel(
                id=1,
                key="T-1",
                issue_type="Story",
                status="Done",
                story_points=3,
                created=NOW - timedelta(days=5),
                resolved=NOW - timedelta(days=2, hours=12),
                assignee="Ana",
            ),
            IssueModel(
                id=2,
                key="T-2",
                issue_type="Story",
                status="Done",
                story_points=3.5,
                created=NOW - timedelta(days=1),
                updated=NOW,
                reporter="Ben",
            ),
            IssueModel(id=3, key="T-3", issue_type="Task", status="To Do", story_points=13, created=None),
        ]
    )


def test_completion_days_round_up_and_skip_missing():
    days = creation_to_completion_days(_sample_df())
    assert days.tolist() == [3, 1]


def test_age_in_days():
    ages = age_in_days(_sample_df(), resolve_now(NOW))
    assert ages.tolist() == [5, 1]


def test_summaries():
    assert summarize_durations(pd.Series(dtype="int64")) == (None, None)
    assert summarize_durations(pd.Series([1, 2, 4]), digits=2) == (2.33, 2.0)
    assert round_half_up(2.5) == 3
    assert round_half_up(133.333) == 133


def test_resolve_now_naive_is_utc():
    ts = resolve_now(datetime(2024, 1, 1, 8, 0))
    assert str(ts.tz) == "UTC"
    assert ts.hour == 8


def test_breakdowns():
    df = _sample_df()
    assert frequency_map(df["issue_type"]) == {"Story": 2, "Task": 1}
    assert frequency_map(pd.Series(dtype=object)) == {}
    assert story_points_breakdown(df) == {"Small (0-3)": 3.0, "Medium (3-5)": 3.5, "Large (>5)": 13.0}
    assert team_members(df) == ["Ana", "Ben"]
