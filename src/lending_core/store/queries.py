"""Read-side queries used by the API and sync reporting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lending_core.calculations.totals import reserve_totals
from lending_core.db.tables import AssetSnapshotRow, MarketTimeseriesRow, RawSnapshotRow
from lending_core.errors import ErrorCode, ValidationError
from lending_core.models.reserve import Reserve
from lending_core.models.snapshot import DailySnapshot, ReserveSummary
from lending_core.store.asset_snapshots import get_daily_snapshots
from lending_core.store.raw_snapshots import latest_raw_snapshot
from lending_core.store.timeseries import get_market_timeseries  # noqa: F401 re-exported read query
from lending_core.utils.address import normalize_address
from lending_core.utils.timeframes import cutoff_date


def summarize_reserve(market_key: str, reserve: Reserve, data_source: str, day: date) -> ReserveSummary:
    t = reserve_totals(reserve, data_source)
    return ReserveSummary(
        market_key=market_key,
        underlying_asset=t.underlying_asset,
        symbol=reserve.symbol,
        name=reserve.name,
        decimals=reserve.decimals,
        image_url=reserve.image_url,
        date=day.isoformat(),
        supplied_tokens=reserve.total_a_token_supply,
        borrowed_tokens=reserve.total_current_variable_debt,
        available_liquidity=reserve.available_liquidity,
        supply_apr=t.supply_rate,
        borrow_apr=t.borrow_rate,
        utilization_rate=t.utilization_rate,
        oracle_price=t.price_usd,
        total_supplied_usd=t.supplied_usd,
        total_borrowed_usd=t.borrowed_usd,
        data_source=data_source,
    )


def get_market_reserves(session: Session, market_key: str) -> list[ReserveSummary]:
    """Reserves from the most recent raw snapshot of *market_key*.

    Empty when nothing has been collected for the market yet.
    """
    raw = latest_raw_snapshot(session, market_key)
    if raw is None:
        return []
    return [
        summarize_reserve(market_key, Reserve.model_validate(p), raw.data_source, raw.date) for p in raw.raw_data
    ]


def get_reserve(session: Session, market_key: str, underlying_asset: str) -> ReserveSummary:
    """Latest state of one reserve; ValidationError(RESERVE_NOT_FOUND) if absent."""
    wanted = underlying_asset.lower()
    for r in get_market_reserves(session, market_key):
        if r.underlying_asset == wanted:
            return r
    raise ValidationError(ErrorCode.RESERVE_NOT_FOUND, f"Reserve {wanted} not found in {market_key}")


def get_raw_reserve(session: Session, market_key: str, underlying_asset: str) -> Reserve | None:
    """The stored upstream payload for one reserve, rate-curve params included."""
    raw = latest_raw_snapshot(session, market_key)
    if raw is None:
        return None
    wanted = underlying_asset.lower()
    for payload in raw.raw_data:
        reserve = Reserve.model_validate(payload)
        if reserve.underlying_asset.lower() == wanted:
            return reserve
    return None


@dataclass
class Coverage:
    market_key: str
    first_date: date | None
    last_date: date | None
    count: int


def get_data_coverage(session: Session, table: str = "raw") -> list[Coverage]:
    """Min/max date and row count per market for one of the three tables."""
    model = {
        "raw": RawSnapshotRow,
        "timeseries": MarketTimeseriesRow,
        "assets": AssetSnapshotRow,
    }[table]
    rows = session.execute(
        select(model.market_key, func.min(model.date), func.max(model.date), func.count(model.id))
        .group_by(model.market_key)
        .order_by(model.market_key)
    )
    return [Coverage(market_key=m, first_date=lo, last_date=hi, count=n) for m, lo, hi, n in rows]


def get_asset_daily_snapshots(
    session: Session,
    market_key: str,
    underlying_asset: str,
    window: str | None = None,
    now: datetime | None = None,
) -> list[DailySnapshot]:
    """Stored daily snapshots for one reserve, optionally limited to *window*."""
    since = cutoff_date(window, now) if window else None
    return get_daily_snapshots(session, market_key, normalize_address(underlying_asset), since=since)
