"""Monthly rollups of daily reserve snapshots."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

import numpy as np

from lending_core.models.snapshot import DailySnapshot, MonthlySnapshot


def aggregate_monthly_snapshots(daily: Iterable[DailySnapshot]) -> list[MonthlySnapshot]:
    """Group daily snapshots by calendar month (YYYY-MM).

    Start/end fields come from the first and last day of each month by
    timestamp; APRs and price are arithmetic means. Sorted by month.
    """
    groups: dict[str, list[DailySnapshot]] = defaultdict(list)
    for snap in daily:
        groups[snap.date[:7]].append(snap)

    months: list[MonthlySnapshot] = []
    for month in sorted(groups):
        days = sorted(groups[month], key=lambda s: s.timestamp)
        first, last = days[0], days[-1]
        months.append(
            MonthlySnapshot(
                month=month,
                start_date=first.date,
                end_date=last.date,
                avg_supply_apr=float(np.mean([s.supply_apr for s in days])),
                avg_borrow_apr=float(np.mean([s.borrow_apr for s in days])),
                start_total_supplied_usd=first.total_supplied_usd,
                end_total_supplied_usd=last.total_supplied_usd,
                start_total_borrowed_usd=first.total_borrowed_usd,
                end_total_borrowed_usd=last.total_borrowed_usd,
                start_utilization_rate=first.utilization_rate,
                end_utilization_rate=last.utilization_rate,
                avg_price=float(np.mean([s.price for s in days])),
            )
        )
    return months
