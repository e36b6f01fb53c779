"""Supplied/borrowed change over 1d, 7d and 30d."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from lending_core.models.snapshot import MarketTimeseriesPoint


@dataclass
class Change:
    supplied: float
    borrowed: float
    supplied_percent: float
    borrowed_percent: float


@dataclass
class TrendTotals:
    current_total_supplied_usd: float
    current_total_borrowed_usd: float
    change_1d: Change | None
    change_7d: Change | None
    change_30d: Change | None


def calculate_change(
    current_supplied: float,
    current_borrowed: float,
    old_supplied: float,
    old_borrowed: float,
) -> Change:
    d_supplied = current_supplied - old_supplied
    d_borrowed = current_borrowed - old_borrowed
    return Change(
        supplied=d_supplied,
        borrowed=d_borrowed,
        supplied_percent=0.0 if old_supplied == 0 else d_supplied / old_supplied * 100,
        borrowed_percent=0.0 if old_borrowed == 0 else d_borrowed / old_borrowed * 100,
    )


def compute_trend_changes(points: Sequence[MarketTimeseriesPoint]) -> TrendTotals | None:
    """Compare the last point against the ones 1, 7 and 30 positions earlier.

    *points* must be one per day, oldest first. None if empty.
    """
    if not points:
        return None
    current = points[-1]

    def back(n: int) -> Change | None:
        if len(points) <= n:
            return None
        old = points[-1 - n]
        return calculate_change(
            current.total_supplied_usd,
            current.total_borrowed_usd,
            old.total_supplied_usd,
            old.total_borrowed_usd,
        )

    return TrendTotals(
        current_total_supplied_usd=current.total_supplied_usd,
        current_total_borrowed_usd=current.total_borrowed_usd,
        change_1d=back(1),
        change_7d=back(7),
        change_30d=back(30),
    )
