"""Retention windows and UTC day arithmetic."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal, TypeVar

TimeWindow = Literal["7d", "30d", "3m", "6m", "1y"]

WINDOW_DAYS: dict[str, int] = {
    "7d": 7,
    "30d": 30,
    "3m": 90,
    "6m": 180,
    "1y": 365,
}

ALL_TIME_WINDOWS: list[str] = list(WINDOW_DAYS)

# The one window persisted per market; the others are filtered views of it.
CANONICAL_WINDOW = "1y"

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_today(now: datetime | None = None) -> date:
    return (now or utcnow()).astimezone(timezone.utc).date()


def day_start(day: date) -> datetime:
    """UTC midnight of *day*."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def day_end(day: date) -> datetime:
    """23:59:59.999 UTC of *day*."""
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)


def to_unix(dt: datetime) -> int:
    return int(dt.timestamp())


def days_for_window(window: str) -> int:
    if window not in WINDOW_DAYS:
        raise ValueError(f"unknown window {window!r}; expected one of {ALL_TIME_WINDOWS}")
    return WINDOW_DAYS[window]


def cutoff_date(window: str, now: datetime | None = None) -> date:
    """First day included in *window*, counted back from today (UTC)."""
    return utc_today(now) - timedelta(days=days_for_window(window))


def filter_by_window(
    points: Iterable[T],
    window: str,
    now: datetime | None = None,
    key=lambda p: p.date,
) -> list[T]:
    """Keep points whose day is on or after the window's cutoff."""
    cutoff = cutoff_date(window, now)
    out = []
    for p in points:
        d = key(p)
        if isinstance(d, str):
            d = date.fromisoformat(d[:10])
        elif isinstance(d, datetime):
            d = d.date()
        if d >= cutoff:
            out.append(p)
    return out


def last_n_days(days: int, now: datetime | None = None) -> list[date]:
    """The *days* UTC dates ending today, oldest first."""
    today = utc_today(now)
    return [today - timedelta(days=i) for i in range(days - 1, -1, -1)]
