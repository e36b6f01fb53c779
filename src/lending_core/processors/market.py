"""Market processor: raw snapshots to canonical market timeseries rows."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from sqlalchemy.orm import Session

from lending_core.calculations.totals import MarketTotals, ReserveTotals, calculate_market_totals, reserve_totals
from lending_core.db.tables import RawSnapshotRow
from lending_core.logging import get_logger
from lending_core.models.report import ProcessingReport
from lending_core.models.reserve import Reserve
from lending_core.store.raw_snapshots import get_raw_snapshot, pending_for_timeseries, raw_snapshots_for_market
from lending_core.store.timeseries import upsert_market_point
from lending_core.utils.timeframes import utc_today

log = get_logger(__name__)


def totals_from_payload(raw_data: list[dict], data_source: str, market_key: str = "") -> list[ReserveTotals]:
    """Per-reserve USD totals; reserves that fail to parse are logged and dropped."""
    out: list[ReserveTotals] = []
    for payload in raw_data or []:
        try:
            out.append(reserve_totals(Reserve.model_validate(payload), data_source))
        except Exception:
            log.warning(
                "reserve_skipped",
                market=market_key,
                symbol=payload.get("symbol") if isinstance(payload, dict) else None,
                exc_info=True,
            )
    return out


class MarketProcessor:
    def __init__(self, retention_days: int = 365):
        self.retention_days = retention_days

    def process_snapshot(self, session: Session, raw: RawSnapshotRow) -> MarketTotals | None:
        """Sum the snapshot's reserves and upsert the market's row for that day."""
        reserves = totals_from_payload(raw.raw_data, raw.data_source, raw.market_key)
        raw.timeseries_processed_at = datetime.now(timezone.utc)
        if not reserves:
            log.warning("empty_snapshot", market=raw.market_key, date=raw.date.isoformat())
            session.commit()
            return None
        totals = calculate_market_totals(reserves)
        upsert_market_point(session, raw.market_key, raw.date, totals, raw.data_source, raw_data_id=raw.id)
        session.commit()
        log.debug(
            "market_point_written",
            market=raw.market_key,
            date=raw.date.isoformat(),
            supplied_usd=totals.total_supplied_usd,
            borrowed_usd=totals.total_borrowed_usd,
        )
        return totals

    def _process_many(self, session: Session, snapshots: list[RawSnapshotRow]) -> ProcessingReport:
        report = ProcessingReport()
        for raw in snapshots:
            try:
                totals = self.process_snapshot(session, raw)
            except Exception:
                session.rollback()
                log.exception("market_snapshot_failed", market=raw.market_key, date=raw.date.isoformat())
                report.failed += 1
                continue
            report.processed += 1
            if totals is not None:
                report.rows_written += 1
        return report

    def process_all_pending(self, session: Session, now: datetime | None = None) -> ProcessingReport:
        """Process unconsumed raw snapshots inside the retention window."""
        since = utc_today(now) - timedelta(days=self.retention_days)
        pending = pending_for_timeseries(session, since=since)
        log.info("market_processing_started", pending=len(pending))
        report = self._process_many(session, pending)
        log.info("market_processing_finished", **report.model_dump())
        return report

    def process_market(self, session: Session, market_key: str, day: date | None = None) -> ProcessingReport:
        """Reprocess one market (optionally one day), pending or not."""
        if day is not None:
            snapshots = [
                s for s in (get_raw_snapshot(session, market_key, day, src) for src in ("aavekit", "subgraph")) if s
            ]
        else:
            snapshots = raw_snapshots_for_market(session, market_key)
        return self._process_many(session, snapshots)
