"""Per-reserve daily asset snapshot rows."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from lending_core.db.tables import AssetSnapshotRow
from lending_core.models.snapshot import DailySnapshot
from lending_core.store.upsert import upsert


def upsert_asset_snapshot(session: Session, values: dict[str, Any]) -> int:
    """Write one (market, underlying, date) row. Does not commit."""
    return upsert(session, AssetSnapshotRow, values, key=("market_key", "underlying_asset", "date"))


def previous_asset_snapshot(
    session: Session,
    market_key: str,
    underlying_asset: str,
    before: date,
) -> AssetSnapshotRow | None:
    return session.execute(
        select(AssetSnapshotRow)
        .where(
            AssetSnapshotRow.market_key == market_key,
            AssetSnapshotRow.underlying_asset == underlying_asset,
            AssetSnapshotRow.date < before,
        )
        .order_by(AssetSnapshotRow.date.desc())
        .limit(1)
    ).scalar_one_or_none()


def existing_asset_dates(session: Session, market_key: str, underlying_asset: str, since: date) -> set[date]:
    rows = session.execute(
        select(AssetSnapshotRow.date).where(
            AssetSnapshotRow.market_key == market_key,
            AssetSnapshotRow.underlying_asset == underlying_asset,
            AssetSnapshotRow.date >= since,
        )
    )
    return {r[0] for r in rows}


def _to_daily(row: AssetSnapshotRow) -> DailySnapshot:
    return DailySnapshot(
        date=row.date.isoformat(),
        timestamp=int(row.timestamp),
        block_number=int(row.block_number) if row.block_number is not None else None,
        supply_apr=float(row.supply_apr),
        borrow_apr=float(row.borrow_apr),
        total_supplied_usd=float(row.total_supplied_usd),
        total_borrowed_usd=float(row.total_borrowed_usd),
        utilization_rate=float(row.utilization_rate),
        price=float(row.oracle_price),
        liquidity_index=row.liquidity_index,
        variable_borrow_index=row.variable_borrow_index,
    )


def get_daily_snapshots(
    session: Session,
    market_key: str,
    underlying_asset: str,
    since: date | None = None,
) -> list[DailySnapshot]:
    stmt = select(AssetSnapshotRow).where(
        AssetSnapshotRow.market_key == market_key,
        AssetSnapshotRow.underlying_asset == underlying_asset,
    )
    if since is not None:
        stmt = stmt.where(AssetSnapshotRow.date >= since)
    rows = session.execute(stmt.order_by(AssetSnapshotRow.date)).scalars()
    return [_to_daily(r) for r in rows]


def delete_asset_snapshots_before(session: Session, cutoff: date) -> int:
    result = session.execute(delete(AssetSnapshotRow).where(AssetSnapshotRow.date < cutoff))
    session.commit()
    return result.rowcount or 0
