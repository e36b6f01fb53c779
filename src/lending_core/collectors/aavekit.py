"""AaveKit daily collector: fills the raw snapshot ledger.

Every market except the canonical-subgraph one gets one AaveKit
snapshot per UTC day. Backfill only fetches dates that are missing;
AaveKit serves current state only, so a backfilled day stores the state
at collection time.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from lending_core.calculations.totals import DATA_SOURCE_AAVEKIT
from lending_core.logging import bound_context, get_logger
from lending_core.models.market import MarketConfig
from lending_core.models.report import CollectionReport
from lending_core.registry import Registry
from lending_core.store.raw_snapshots import collected_dates, has_raw_snapshot, save_raw_snapshot
from lending_core.upstream.aavekit import AaveKitClient
from lending_core.utils.timeframes import day_start, to_unix, utc_today

log = get_logger(__name__)


class EmptyReservesError(Exception):
    """AaveKit returned no reserves for a market."""


@dataclass
class CollectorSettings:
    canonical_subgraph_market: str = "ethereum-v3"
    pause_every: int = 10
    pause_s: float = 1.0
    market_delay_s: float = 0.5


class AaveKitCollector:
    def __init__(
        self,
        client: AaveKitClient,
        registry: Registry,
        settings: CollectorSettings | None = None,
    ):
        self.client = client
        self.registry = registry
        self.settings = settings or CollectorSettings()

    def markets_to_collect(self) -> list[MarketConfig]:
        return [m for m in self.registry.markets if m.market_key != self.settings.canonical_subgraph_market]

    async def collect_market_snapshot(
        self,
        session: Session,
        market_key: str,
        day: date | None = None,
        now: datetime | None = None,
    ) -> int:
        """Fetch current reserves and store them under *day*; return the row id.

        Raises on upstream failure or an empty reserve list.
        """
        market = self.registry.get_market(market_key)
        today = utc_today(now)
        day = day or today
        reserves = await self.client.query_reserves(market)
        if not reserves:
            raise EmptyReservesError(f"no reserves returned for {market_key}")
        ts = int(now.timestamp()) if now else int(time.time())
        if day != today:
            ts = to_unix(day_start(day))
        row_id = save_raw_snapshot(session, market_key, day, ts, reserves, DATA_SOURCE_AAVEKIT)
        log.info("snapshot_collected", market=market_key, date=day.isoformat(), reserves=len(reserves))
        return row_id

    async def collect_daily_snapshots(self, session: Session, now: datetime | None = None) -> CollectionReport:
        """Collect today's snapshot for every market that lacks one."""
        today = utc_today(now)
        report = CollectionReport()
        markets = self.markets_to_collect()
        log.info("daily_collection_started", markets=len(markets), date=today.isoformat())

        for market in markets:
            key = market.market_key
            if has_raw_snapshot(session, key, today, DATA_SOURCE_AAVEKIT):
                report.record(key, today, "skipped", "already collected")
                continue
            try:
                await self.collect_market_snapshot(session, key, today, now=now)
            except Exception as exc:
                session.rollback()
                log.exception("snapshot_collection_failed", market=key, date=today.isoformat())
                report.record(key, today, "failed", str(exc) or type(exc).__name__)
                continue
            report.record(key, today, "success")

        log.info("daily_collection_finished", **report.summary())
        return report

    @staticmethod
    def _window(days: int, now: datetime | None) -> list[date]:
        today = utc_today(now)
        return [today - timedelta(days=i) for i in range(days)]

    def find_missing_dates(
        self,
        session: Session,
        market_key: str,
        days: int = 365,
        now: datetime | None = None,
    ) -> list[date]:
        """Dates in the last *days* days (today included) with no AaveKit snapshot, newest first."""
        wanted = self._window(days, now)
        have = collected_dates(session, market_key, DATA_SOURCE_AAVEKIT, since=wanted[-1]) if wanted else set()
        return [d for d in wanted if d not in have]

    async def collect_missing_data(
        self,
        session: Session,
        market_key: str,
        days: int = 365,
        now: datetime | None = None,
    ) -> CollectionReport:
        report = CollectionReport()
        missing = self.find_missing_dates(session, market_key, days, now=now)
        pending = set(missing)
        for day in self._window(days, now):
            if day not in pending:
                report.record(market_key, day, "skipped", "already collected")
        if not missing:
            log.info("no_missing_data", market=market_key, days=days)
            return report

        log.info("missing_dates_found", market=market_key, count=len(missing))
        for i, day in enumerate(missing, start=1):
            try:
                await self.collect_market_snapshot(session, market_key, day, now=now)
            except Exception as exc:
                session.rollback()
                log.exception("backfill_failed", market=market_key, date=day.isoformat())
                report.record(market_key, day, "failed", str(exc) or type(exc).__name__)
            else:
                report.record(market_key, day, "success")
            if i % self.settings.pause_every == 0:
                await asyncio.sleep(self.settings.pause_s)
        return report

    async def collect_all_missing_data(
        self,
        session: Session,
        days: int = 365,
        now: datetime | None = None,
    ) -> CollectionReport:
        """Backfill every AaveKit market; one failure never stops the batch."""
        report = CollectionReport()
        markets = self.markets_to_collect()
        log.info("backfill_started", markets=len(markets), days=days)

        for idx, market in enumerate(markets):
            with bound_context(market=market.market_key):
                report.extend(await self.collect_missing_data(session, market.market_key, days, now=now))
            if idx < len(markets) - 1:
                await asyncio.sleep(self.settings.market_delay_s)

        log.info("backfill_finished", **report.summary())
        return report
