"""Sync pipeline: collection, processing and subgraph stages in order."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from lending_core.context import AppContext
from lending_core.logging import get_logger
from lending_core.orchestrator.subgraph_sync import cleanup_old_data, sync_all_asset_snapshots
from lending_core.processors.asset import AssetProcessor
from lending_core.processors.market import MarketProcessor

log = get_logger(__name__)


@dataclass
class StageResult:
    name: str
    ok: bool = True
    duration_s: float = 0.0
    result: Any = None
    error: str | None = None


@dataclass
class SyncReport:
    kind: str
    stages: list[StageResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.stages)

    def stage(self, name: str) -> StageResult | None:
        return next((s for s in self.stages if s.name == name), None)

    def summary(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "ok": self.ok,
            "stages": {s.name: {"ok": s.ok, "durationS": round(s.duration_s, 3)} for s in self.stages},
        }


class SyncPipeline:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self.collector = ctx.collector()
        self.market_processor = MarketProcessor(retention_days=ctx.config.sync.retention_days)
        self.asset_processor = AssetProcessor(
            canonical_subgraph_market=ctx.config.sync.canonical_subgraph_market,
            retention_days=ctx.config.sync.retention_days,
        )

    @contextmanager
    def _stage(self, report: SyncReport, name: str) -> Iterator[StageResult]:
        """Time and log one stage; failures are logged with context and re-raised."""
        stage = StageResult(name=name)
        report.stages.append(stage)
        log.info("stage_started", stage=name, run=report.kind)
        started = time.monotonic()
        try:
            yield stage
        except Exception as exc:
            stage.ok = False
            stage.error = str(exc)
            stage.duration_s = time.monotonic() - started
            log.exception("stage_failed", stage=name, run=report.kind)
            raise
        stage.duration_s = time.monotonic() - started
        log.info("stage_finished", stage=name, run=report.kind, duration_s=round(stage.duration_s, 3))

    async def run_daily(self, session: Session, now: datetime | None = None) -> SyncReport:
        """Today's snapshots, gap backfill, processors, canonical asset sync, cleanup."""
        sync = self.ctx.config.sync
        report = SyncReport(kind="daily")
        with self._stage(report, "collect_daily") as stage:
            stage.result = (await self.collector.collect_daily_snapshots(session, now=now)).summary()
        with self._stage(report, "collect_missing") as stage:
            stage.result = (
                await self.collector.collect_all_missing_data(session, days=sync.history_days, now=now)
            ).summary()
        with self._stage(report, "process_markets") as stage:
            stage.result = self.market_processor.process_all_pending(session, now=now).model_dump()
        with self._stage(report, "process_assets") as stage:
            stage.result = self.asset_processor.process_all_pending(session, now=now).model_dump()
        if self.ctx.registry.has_market(sync.canonical_subgraph_market):
            with self._stage(report, "subgraph_assets") as stage:
                stage.result = await sync_all_asset_snapshots(
                    self.ctx, session, markets=[sync.canonical_subgraph_market], days=sync.asset_sync_days, now=now
                )
        with self._stage(report, "cleanup") as stage:
            stage.result = cleanup_old_data(session, days_to_keep=sync.retention_days, now=now)
        return report

    async def run_historical(self, session: Session, days: int | None = None, now: datetime | None = None) -> SyncReport:
        """Backfill every missing day in the last *days*, then process."""
        days = days or self.ctx.config.sync.history_days
        report = SyncReport(kind="historical")
        with self._stage(report, "collect_missing") as stage:
            stage.result = (await self.collector.collect_all_missing_data(session, days=days, now=now)).summary()
        with self._stage(report, "process_markets") as stage:
            stage.result = self.market_processor.process_all_pending(session, now=now).model_dump()
        with self._stage(report, "process_assets") as stage:
            stage.result = self.asset_processor.process_all_pending(session, now=now).model_dump()
        return report
