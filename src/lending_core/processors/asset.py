"""Asset processor: raw snapshots to per-reserve daily asset snapshots."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from lending_core.calculations.apr import SECONDS_PER_DAY, calculate_apr_from_indices
from lending_core.calculations.totals import DATA_SOURCE_AAVEKIT, reserve_totals
from lending_core.db.tables import AssetSnapshotRow, RawSnapshotRow
from lending_core.logging import get_logger
from lending_core.models.report import ProcessingReport
from lending_core.models.reserve import Reserve
from lending_core.store.asset_snapshots import previous_asset_snapshot, upsert_asset_snapshot
from lending_core.store.raw_snapshots import pending_for_assets, raw_snapshots_for_market
from lending_core.utils.address import normalize_address
from lending_core.utils.numeric import is_zero
from lending_core.utils.timeframes import utc_today

log = get_logger(__name__)


def derive_aprs(
    reserve: Reserve,
    timestamp: int,
    previous: AssetSnapshotRow | None,
    reported_supply: float,
    reported_borrow: float,
) -> tuple[float, float]:
    """Index-derived APRs against *previous* when both have indices, else the reported rates."""
    if previous is None or is_zero(reserve.liquidity_index) or is_zero(previous.liquidity_index):
        return reported_supply, reported_borrow
    days = (timestamp - int(previous.timestamp)) / SECONDS_PER_DAY
    if days <= 0:
        return reported_supply, reported_borrow
    supply = calculate_apr_from_indices(previous.liquidity_index, reserve.liquidity_index, days)
    if is_zero(reserve.variable_borrow_index) or is_zero(previous.variable_borrow_index):
        borrow = reported_borrow
    else:
        borrow = calculate_apr_from_indices(previous.variable_borrow_index, reserve.variable_borrow_index, days)
    return supply, borrow


def asset_snapshot_values(
    market_key: str,
    reserve: Reserve,
    data_source: str,
    day,
    timestamp: int,
    block_number: int | None,
    previous: AssetSnapshotRow | None,
    raw_data_id: int | None = None,
) -> dict:
    """Column values for one asset snapshot row."""
    t = reserve_totals(reserve, data_source)
    supply_apr, borrow_apr = derive_aprs(reserve, timestamp, previous, t.supply_rate, t.borrow_rate)
    return {
        "market_key": market_key,
        "underlying_asset": normalize_address(reserve.underlying_asset),
        "symbol": reserve.symbol,
        "date": day,
        "timestamp": timestamp,
        "block_number": block_number,
        "supplied_tokens": reserve.total_a_token_supply,
        "borrowed_tokens": reserve.total_current_variable_debt,
        "available_liquidity": reserve.available_liquidity,
        "supply_apr": supply_apr,
        "borrow_apr": borrow_apr,
        "total_supplied_usd": t.supplied_usd,
        "total_borrowed_usd": t.borrowed_usd,
        "utilization_rate": t.utilization_rate,
        "oracle_price": t.price_usd,
        "liquidity_index": reserve.liquidity_index or "0",
        "variable_borrow_index": reserve.variable_borrow_index or "0",
        "data_source": data_source,
        "raw_data_id": raw_data_id,
    }


class AssetProcessor:
    def __init__(self, canonical_subgraph_market: str = "ethereum-v3", retention_days: int = 365):
        self.canonical_subgraph_market = canonical_subgraph_market
        self.retention_days = retention_days

    def process_snapshot(self, session: Session, raw: RawSnapshotRow) -> int:
        """Upsert one asset snapshot per reserve; return how many were written."""
        raw.assets_processed_at = datetime.now(timezone.utc)
        if not raw.raw_data:
            log.warning("empty_snapshot", market=raw.market_key, date=raw.date.isoformat())
            session.commit()
            return 0
        written = 0
        for payload in raw.raw_data:
            try:
                reserve = Reserve.model_validate(payload)
                underlying = normalize_address(reserve.underlying_asset)
                previous = previous_asset_snapshot(session, raw.market_key, underlying, raw.date)
                values = asset_snapshot_values(
                    raw.market_key,
                    reserve,
                    raw.data_source,
                    raw.date,
                    int(raw.timestamp),
                    raw.block_number,
                    previous,
                    raw_data_id=raw.id,
                )
            except Exception:
                log.warning(
                    "reserve_skipped",
                    market=raw.market_key,
                    symbol=payload.get("symbol") if isinstance(payload, dict) else None,
                    exc_info=True,
                )
                continue
            upsert_asset_snapshot(session, values)
            written += 1
        session.commit()
        log.debug("asset_snapshots_written", market=raw.market_key, date=raw.date.isoformat(), count=written)
        return written

    def _process_many(self, session: Session, snapshots: list[RawSnapshotRow]) -> ProcessingReport:
        report = ProcessingReport()
        for raw in snapshots:
            try:
                written = self.process_snapshot(session, raw)
            except Exception:
                session.rollback()
                log.exception("asset_snapshot_failed", market=raw.market_key, date=raw.date.isoformat())
                report.failed += 1
                continue
            report.processed += 1
            report.rows_written += written
        return report

    def process_all_pending(self, session: Session, now: datetime | None = None) -> ProcessingReport:
        """AaveKit snapshots from the retention window not yet expanded into asset rows."""
        since = utc_today(now) - timedelta(days=self.retention_days)
        pending = pending_for_assets(
            session,
            since=since,
            data_source=DATA_SOURCE_AAVEKIT,
            exclude_market=self.canonical_subgraph_market,
        )
        log.info("asset_processing_started", pending=len(pending))
        report = self._process_many(session, pending)
        log.info("asset_processing_finished", **report.model_dump())
        return report

    def process_market(self, session: Session, market_key: str) -> ProcessingReport:
        """Reprocess every stored snapshot for *market_key*, oldest first."""
        return self._process_many(session, raw_snapshots_for_market(session, market_key))
