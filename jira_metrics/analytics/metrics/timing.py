"""Duration and age computations shared by sprint and kanban metrics (pure functions)."""

from __future__ import annotations

import math
from datetime import datetime

import pandas as pd
import pytz

from jira_metrics.core.config import SECONDS_PER_DAY, TIMEZONE


def to_utc(value) -> pd.Timestamp | None:
    """Coerce a datetime-like value to a UTC timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        return ts.tz_localize(pytz.UTC)
    return ts.tz_convert(pytz.UTC)


def resolve_now(now: datetime | None = None) -> pd.Timestamp:
    """Return ``now`` as a UTC timestamp (current time in ``TIMEZONE`` when omitted)."""
    if now is None:
        now = datetime.now(tz=pytz.timezone(TIMEZONE))
    return to_utc(now)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (2.5 -> 3, 0.125 -> 0.13)."""
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def completion_dates(df: pd.DataFrame) -> pd.Series:
    """Resolution date when present, otherwise the last update."""
    return df["resolved"].fillna(df["updated"])


def _ceil_days(seconds: pd.Series) -> pd.Series:
    days = seconds.dropna() / SECONDS_PER_DAY
    if days.empty:
        return pd.Series(dtype="int64")
    return days.apply(math.ceil).astype("int64")


def creation_to_completion_days(df: pd.DataFrame) -> pd.Series:
    """Whole days (rounded up) from creation to completion; non-positive values dropped."""
    if df.empty:
        return pd.Series(dtype="int64")
    seconds = (completion_dates(df) - df["created"]).dt.total_seconds()
    days = _ceil_days(seconds)
    return days[days > 0]


def cycle_time_days(df: pd.DataFrame) -> pd.Series:
    # Same as lead time until status-transition durations are tracked
    return creation_to_completion_days(df)


def lead_time_days(df: pd.DataFrame) -> pd.Series:
    return creation_to_completion_days(df)


def age_in_days(df: pd.DataFrame, now: pd.Timestamp) -> pd.Series:
    """Whole days (rounded up) since creation for every row with a created date."""
    if df.empty:
        return pd.Series(dtype="int64")
    seconds = (now - df["created"]).dt.total_seconds()
    return _ceil_days(seconds)


def summarize_durations(samples: pd.Series, digits: int | None = None) -> tuple[float | None, float | None]:
    """Return ``(average, median)`` of the samples, or ``(None, None)`` when empty."""
    if samples is None or samples.empty:
        return None, None
    average = float(samples.mean())
    median = float(samples.median())
    if digits is not None:
        average = round_half_up(average, digits)
        median = round_half_up(median, digits)
    return average, median
