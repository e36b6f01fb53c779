"""APR derivation from ray-scaled liquidity and borrow indices."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from lending_core.utils.numeric import DECIMAL_CTX, to_decimal

SECONDS_PER_DAY = 86400

# Trailing periods reported by calculate_average_lending_rates, in days.
LENDING_RATE_PERIODS: dict[str, int] = {
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "6m": 180,
    "1y": 365,
}

# History must reach back this share of a period to report it.
MIN_COVERAGE = 0.8


def calculate_apr_from_indices(index_start: str, index_end: str, days: float) -> float:
    """Simple (non-compounding) annualized growth between two indices.

    ``((end / start) - 1) * (365 / days)``. Returns 0 when *index_start*
    is zero or *days* is zero.
    """
    start = to_decimal(index_start)
    if start == 0 or days == 0:
        return 0.0
    growth = DECIMAL_CTX.divide(to_decimal(index_end), start) - 1
    return float(growth * DECIMAL_CTX.divide(Decimal(365), to_decimal(days)))


@dataclass
class IndexPoint:
    index: str
    timestamp: int


def calculate_average_apr(points: Sequence[IndexPoint], period_days: float) -> float | None:
    """APR between the first and last of *points*.

    None when fewer than two points or when they span less than 80% of
    *period_days*.
    """
    if len(points) < 2:
        return None
    ordered = sorted(points, key=lambda p: p.timestamp)
    first, last = ordered[0], ordered[-1]
    days = (last.timestamp - first.timestamp) / SECONDS_PER_DAY
    if days < period_days * MIN_COVERAGE:
        return None
    return calculate_apr_from_indices(first.index, last.index, days)


@dataclass
class IndexSnapshot:
    liquidity_index: str
    variable_borrow_index: str
    timestamp: int


@dataclass
class LendingRates:
    supply_apr: float | None
    borrow_apr: float | None


def _nearest(snapshots: Sequence[IndexSnapshot], target: float) -> IndexSnapshot:
    return min(snapshots, key=lambda s: abs(s.timestamp - target))


def calculate_average_lending_rates(
    snapshots: Sequence[IndexSnapshot],
    now: datetime | None = None,
) -> dict[str, LendingRates]:
    """Trailing supply/borrow APR for each of 1d, 7d, 30d, 6m and 1y.

    The end point is the most recent snapshot; the start point is the
    snapshot nearest to ``now - period``. A period whose history does
    not reach back far enough yields ``LendingRates(None, None)``.
    """
    now_ts = (now or datetime.now(timezone.utc)).timestamp()
    results: dict[str, LendingRates] = {}
    if not snapshots:
        return {name: LendingRates(None, None) for name in LENDING_RATE_PERIODS}

    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    end = ordered[-1]
    oldest = ordered[0]

    for name, days in LENDING_RATE_PERIODS.items():
        period_s = days * SECONDS_PER_DAY
        target = now_ts - period_s
        # Oldest point must land within the first 20% of the period.
        if oldest.timestamp > target + period_s * (1 - MIN_COVERAGE):
            results[name] = LendingRates(None, None)
            continue
        start = _nearest(ordered, target)
        elapsed_days = (end.timestamp - start.timestamp) / SECONDS_PER_DAY
        if elapsed_days <= 0:
            results[name] = LendingRates(None, None)
            continue
        results[name] = LendingRates(
            supply_apr=calculate_apr_from_indices(start.liquidity_index, end.liquidity_index, elapsed_days),
            borrow_apr=calculate_apr_from_indices(
                start.variable_borrow_index, end.variable_borrow_index, elapsed_days
            ),
        )
    return results


@dataclass
class AprPoint:
    date: str
    borrow_apr: float


@dataclass
class AprStats:
    last: float
    min: float
    max: float
    delta_30d: float
    first_date: str
    last_date: str


def calculate_30d_apr_series(
    points: Sequence[tuple[str, int, float]],
    now: datetime | None = None,
) -> list[AprPoint]:
    """Borrow APR for each of the last 30 UTC days.

    *points* are ``(date, timestamp, borrow_apr)``. Zero APR values are
    ignored. Gaps are linearly interpolated between the nearest known
    neighbours, or filled from the single nearest neighbour at the edges.
    Returns an empty list with fewer than two usable points.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now.timestamp() - 30 * SECONDS_PER_DAY
    valid = sorted(
        (p for p in points if p[1] >= cutoff and p[2] > 0),
        key=lambda p: p[1],
    )
    by_date = {d: apr for d, _, apr in valid}
    if len(by_date) < 2:
        return []

    series: list[AprPoint] = []
    for i in range(29, -1, -1):
        day = now - timedelta(days=i)
        day_str = day.date().isoformat()
        if day_str in by_date:
            series.append(AprPoint(day_str, by_date[day_str]))
            continue
        ts = day.timestamp()
        before = [p for p in valid if p[1] < ts]
        after = [p for p in valid if p[1] > ts]
        if before and after:
            b, a = before[-1], after[0]
            weight = (ts - b[1]) / (a[1] - b[1])
            series.append(AprPoint(day_str, b[2] + (a[2] - b[2]) * weight))
        elif before:
            series.append(AprPoint(day_str, before[-1][2]))
        elif after:
            series.append(AprPoint(day_str, after[0][2]))
        else:
            series.append(AprPoint(day_str, 0.0))
    return series


def calculate_30d_apr_stats(series: Sequence[AprPoint]) -> AprStats | None:
    if len(series) < 2:
        return None
    values = [p.borrow_apr for p in series]
    return AprStats(
        last=values[-1],
        min=min(values),
        max=max(values),
        delta_30d=values[-1] - values[0],
        first_date=series[0].date,
        last_date=series[-1].date,
    )
