"""Market timeseries rows: canonical-window upserts and windowed reads."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from lending_core.calculations.totals import MarketTotals
from lending_core.db.tables import MarketTimeseriesRow
from lending_core.models.snapshot import MarketTimeseriesPoint
from lending_core.store.upsert import upsert
from lending_core.utils.timeframes import CANONICAL_WINDOW, cutoff_date


def upsert_market_point(
    session: Session,
    market_key: str,
    day: date,
    totals: MarketTotals,
    data_source: str,
    raw_data_id: int | None = None,
    window: str = CANONICAL_WINDOW,
) -> int:
    """Write one (market, day, window) row. Does not commit."""
    return upsert(
        session,
        MarketTimeseriesRow,
        {
            "market_key": market_key,
            "date": day,
            "time_window": window,
            "total_supplied_usd": totals.total_supplied_usd,
            "total_borrowed_usd": totals.total_borrowed_usd,
            "available_liquidity_usd": totals.available_liquidity_usd,
            "data_source": data_source,
            "raw_data_id": raw_data_id,
        },
        key=("market_key", "date", "time_window"),
    )


def get_market_timeseries(
    session: Session,
    market_key: str,
    window: str = CANONICAL_WINDOW,
    now: datetime | None = None,
) -> list[MarketTimeseriesPoint]:
    """Canonical series for *market_key*, filtered to *window*, oldest first."""
    rows = session.execute(
        select(MarketTimeseriesRow)
        .where(
            MarketTimeseriesRow.market_key == market_key,
            MarketTimeseriesRow.time_window == CANONICAL_WINDOW,
            MarketTimeseriesRow.date >= cutoff_date(window, now),
        )
        .order_by(MarketTimeseriesRow.date)
    ).scalars()
    return [
        MarketTimeseriesPoint(
            date=r.date.isoformat(),
            total_supplied_usd=float(r.total_supplied_usd),
            total_borrowed_usd=float(r.total_borrowed_usd),
            available_liquidity_usd=float(r.available_liquidity_usd),
            data_source=r.data_source,
        )
        for r in rows
    ]


def delete_market_timeseries(session: Session, market_key: str) -> int:
    result = session.execute(delete(MarketTimeseriesRow).where(MarketTimeseriesRow.market_key == market_key))
    session.commit()
    return result.rowcount or 0


def delete_timeseries_before(session: Session, cutoff: date) -> int:
    result = session.execute(delete(MarketTimeseriesRow).where(MarketTimeseriesRow.date < cutoff))
    session.commit()
    return result.rowcount or 0
