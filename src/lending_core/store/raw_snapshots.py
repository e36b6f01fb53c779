"""Raw snapshot ledger: one upstream payload per (market, date, source)."""

from __future__ import annotations

from datetime import date

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from lending_core.db.tables import RawSnapshotRow
from lending_core.models.reserve import Reserve
from lending_core.store.upsert import upsert


def has_raw_snapshot(session: Session, market_key: str, day: date, data_source: str) -> bool:
    stmt = select(
        exists().where(
            RawSnapshotRow.market_key == market_key,
            RawSnapshotRow.date == day,
            RawSnapshotRow.data_source == data_source,
        )
    )
    return bool(session.execute(stmt).scalar())


def collected_dates(session: Session, market_key: str, data_source: str, since: date) -> set[date]:
    rows = session.execute(
        select(RawSnapshotRow.date).where(
            RawSnapshotRow.market_key == market_key,
            RawSnapshotRow.data_source == data_source,
            RawSnapshotRow.date >= since,
        )
    )
    return {r[0] for r in rows}


def save_raw_snapshot(
    session: Session,
    market_key: str,
    day: date,
    timestamp: int,
    reserves: list[Reserve],
    data_source: str,
    block_number: int | None = None,
) -> int:
    """Upsert the payload for (market, day, source) and commit; return the row id.

    A rewritten payload is pending again for both processors.
    """
    row_id = upsert(
        session,
        RawSnapshotRow,
        {
            "market_key": market_key,
            "date": day,
            "timestamp": timestamp,
            "raw_data": [r.to_payload() for r in reserves],
            "data_source": data_source,
            "block_number": block_number,
            "timeseries_processed_at": None,
            "assets_processed_at": None,
        },
        key=("market_key", "date", "data_source"),
    )
    session.commit()
    return row_id


def get_raw_snapshot(session: Session, market_key: str, day: date, data_source: str) -> RawSnapshotRow | None:
    return session.execute(
        select(RawSnapshotRow).where(
            RawSnapshotRow.market_key == market_key,
            RawSnapshotRow.date == day,
            RawSnapshotRow.data_source == data_source,
        )
    ).scalar_one_or_none()


def latest_raw_snapshot(session: Session, market_key: str) -> RawSnapshotRow | None:
    return session.execute(
        select(RawSnapshotRow)
        .where(RawSnapshotRow.market_key == market_key)
        .order_by(RawSnapshotRow.date.desc(), RawSnapshotRow.data_source.asc())
        .limit(1)
    ).scalar_one_or_none()


def pending_for_timeseries(
    session: Session, since: date | None = None, market_key: str | None = None
) -> list[RawSnapshotRow]:
    """Raw snapshots the market processor has not consumed yet, oldest first."""
    stmt = select(RawSnapshotRow).where(RawSnapshotRow.timeseries_processed_at.is_(None))
    if since is not None:
        stmt = stmt.where(RawSnapshotRow.date >= since)
    if market_key is not None:
        stmt = stmt.where(RawSnapshotRow.market_key == market_key)
    stmt = stmt.order_by(RawSnapshotRow.date, RawSnapshotRow.market_key).execution_options(populate_existing=True)
    return list(session.execute(stmt).scalars())


def pending_for_assets(
    session: Session,
    since: date,
    data_source: str,
    exclude_market: str | None = None,
    market_key: str | None = None,
) -> list[RawSnapshotRow]:
    """Raw snapshots since *since* the asset processor has not consumed yet, oldest first."""
    stmt = select(RawSnapshotRow).where(
        RawSnapshotRow.assets_processed_at.is_(None),
        RawSnapshotRow.date >= since,
        RawSnapshotRow.data_source == data_source,
    )
    if exclude_market is not None:
        stmt = stmt.where(RawSnapshotRow.market_key != exclude_market)
    if market_key is not None:
        stmt = stmt.where(RawSnapshotRow.market_key == market_key)
    stmt = stmt.order_by(RawSnapshotRow.date, RawSnapshotRow.market_key).execution_options(populate_existing=True)
    return list(session.execute(stmt).scalars())


def raw_snapshots_for_market(session: Session, market_key: str, since: date | None = None) -> list[RawSnapshotRow]:
    stmt = select(RawSnapshotRow).where(RawSnapshotRow.market_key == market_key)
    if since is not None:
        stmt = stmt.where(RawSnapshotRow.date >= since)
    return list(session.execute(stmt.order_by(RawSnapshotRow.date)).scalars())
