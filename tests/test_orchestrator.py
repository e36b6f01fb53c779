"""Tests for subgraph sync, cleanup, the sync pipeline and the CLI parser."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest

from lending_core.calculations.totals import MarketTotals
from lending_core.db.tables import AssetSnapshotRow, MarketTimeseriesRow
from lending_core.errors import UpstreamError, ValidationError
from lending_core.models.reserve import Pool, Reserve
from lending_core.orchestrator.pipeline import SyncPipeline, SyncReport
from lending_core.orchestrator.runner import build_parser
from lending_core.orchestrator.subgraph_sync import (
    SyncTimeseriesOptions,
    cleanup_old_data,
    resolve_pool,
    sync_all_asset_snapshots,
    sync_asset_snapshots,
    sync_market_asset_snapshots,
    sync_market_timeseries,
)
from lending_core.processors import MarketProcessor
from lending_core.store.asset_snapshots import get_daily_snapshots, upsert_asset_snapshot
from lending_core.store.raw_snapshots import save_raw_snapshot
from lending_core.store.timeseries import get_market_timeseries, upsert_market_point

from conftest import RAY_ONE, USDC, WETH, FakeAaveKit, aavekit_payload, make_ctx, subgraph_payload

NOW = datetime(2026, 6, 30, 12, tzinfo=timezone.utc)
BLOCK_TIME_S = 12


class FakeSubgraph:
    """Pool lookup and block-pinned reserves; the liquidity index grows with the block."""

    def __init__(self, failing_blocks=(), pool_missing=False):
        self.failing_blocks = set(failing_blocks)
        self.pool_missing = pool_missing
        self.pool_calls = 0
        self.blocks: list[int] = []

    async def query_pool_by_address(self, subgraph_id, pool_address):
        self.pool_calls += 1
        if self.pool_missing:
            return None
        return Pool(id="pool-1", pool=pool_address)

    async def query_reserves_at_block(self, subgraph_id, pool_id, block_number):
        self.blocks.append(block_number)
        if block_number in self.failing_blocks:
            raise UpstreamError("subgraph", f"indexer error at {block_number}")
        index = str(RAY_ONE + block_number * 10**18)
        return [Reserve.model_validate(subgraph_payload(liquidityIndex=index, variableBorrowIndex=index))]


class FakeResolver:
    async def resolve_timestamp_to_block(self, ts):
        return ts // BLOCK_TIME_S


def _block(day: date) -> int:
    end = datetime(day.year, day.month, day.day, 23, 59, 59, 999000, tzinfo=timezone.utc)
    return int(end.timestamp()) // BLOCK_TIME_S


@pytest.fixture
def subgraph():
    return FakeSubgraph()


@pytest.fixture
def ctx(registry, subgraph):
    ctx = make_ctx(registry, subgraph=subgraph)
    ctx._resolvers["ethereum-v3"] = FakeResolver()
    return ctx


# ── Pool resolution ──────────────────────────────────────────


class TestResolvePool:
    def test_cached_after_first_lookup(self, ctx, subgraph, registry):
        market = registry.get_market("ethereum-v3")
        first = asyncio.run(resolve_pool(ctx, market))
        second = asyncio.run(resolve_pool(ctx, market))
        assert first.id == second.id == "pool-1"
        assert subgraph.pool_calls == 1

    def test_missing_pool_is_upstream_error(self, ctx, registry):
        ctx.subgraph.pool_missing = True
        with pytest.raises(UpstreamError):
            asyncio.run(resolve_pool(ctx, registry.get_market("ethereum-v3")))
        assert ctx.subgraph.pool_calls == 1


# ── Asset snapshots ──────────────────────────────────────────


class TestSyncAssetSnapshots:
    def test_writes_days_in_order(self, ctx, db_session):
        saved = asyncio.run(sync_asset_snapshots(ctx, db_session, "ethereum-v3", USDC, days=3, now=NOW))
        assert saved == 3

        rows = get_daily_snapshots(db_session, "ethereum-v3", USDC)
        assert [r.date for r in rows] == ["2026-06-28", "2026-06-29", "2026-06-30"]
        assert rows[0].block_number == _block(date(2026, 6, 28))
        assert rows[-1].timestamp == int(NOW.timestamp())
        assert rows[0].total_supplied_usd == pytest.approx(1000)
        # First day has no predecessor and keeps the reported ray rate.
        assert rows[0].supply_apr == pytest.approx(0.03)
        assert 0 < rows[1].supply_apr < 0.01
        assert db_session.query(AssetSnapshotRow).first().data_source == "subgraph"

    def test_skips_existing_days_but_refreshes_today(self, ctx, subgraph, db_session):
        asyncio.run(sync_asset_snapshots(ctx, db_session, "ethereum-v3", USDC, days=3, now=NOW))
        subgraph.blocks.clear()
        saved = asyncio.run(sync_asset_snapshots(ctx, db_session, "ethereum-v3", USDC, days=3, now=NOW))
        assert saved == 1
        assert subgraph.blocks == [int(NOW.timestamp()) // BLOCK_TIME_S]

    def test_failed_day_is_left_out(self, registry, db_session):
        subgraph = FakeSubgraph(failing_blocks={_block(date(2026, 6, 29))})
        ctx = make_ctx(registry, subgraph=subgraph)
        ctx._resolvers["ethereum-v3"] = FakeResolver()
        saved = asyncio.run(sync_asset_snapshots(ctx, db_session, "ethereum-v3", USDC, days=3, now=NOW))
        assert saved == 2
        dates = [r.date for r in get_daily_snapshots(db_session, "ethereum-v3", USDC)]
        assert dates == ["2026-06-28", "2026-06-30"]

    def test_unknown_reserve_writes_nothing(self, ctx, db_session):
        assert asyncio.run(sync_asset_snapshots(ctx, db_session, "ethereum-v3", WETH, days=2, now=NOW)) == 0

    def test_market_without_subgraph_rejected(self, ctx, db_session):
        with pytest.raises(ValidationError):
            asyncio.run(sync_asset_snapshots(ctx, db_session, "base-v3", USDC, days=2, now=NOW))

    def test_market_sync_covers_listed_reserves(self, registry, subgraph, db_session):
        aavekit = FakeAaveKit(reserves=[aavekit_payload(), aavekit_payload(symbol="WETH", address=WETH, decimals=18)])
        ctx = make_ctx(registry, aavekit=aavekit, subgraph=subgraph)
        ctx._resolvers["ethereum-v3"] = FakeResolver()
        saved = asyncio.run(sync_market_asset_snapshots(ctx, db_session, "ethereum-v3", days=2, now=NOW))
        assert saved == {"USDC": 2, "WETH": 0}
        # One subgraph read per day, shared by every listed reserve.
        assert len(subgraph.blocks) == 2

    def test_market_sync_fetches_union_of_missing_days(self, registry, subgraph, db_session):
        aavekit = FakeAaveKit(reserves=[aavekit_payload(), aavekit_payload(symbol="WETH", address=WETH, decimals=18)])
        ctx = make_ctx(registry, aavekit=aavekit, subgraph=subgraph)
        ctx._resolvers["ethereum-v3"] = FakeResolver()
        asyncio.run(sync_asset_snapshots(ctx, db_session, "ethereum-v3", USDC, days=3, now=NOW))
        subgraph.blocks.clear()

        saved = asyncio.run(sync_market_asset_snapshots(ctx, db_session, "ethereum-v3", days=3, now=NOW))
        # USDC only refreshes today; WETH still wants all three days.
        assert saved == {"USDC": 1, "WETH": 0}
        today = int(NOW.timestamp()) // BLOCK_TIME_S
        assert sorted(subgraph.blocks) == [_block(date(2026, 6, 28)), _block(date(2026, 6, 29)), today]

    def test_market_failure_is_logged_per_market(self, ctx, db_session):
        ctx.subgraph.pool_missing = True
        assert asyncio.run(sync_all_asset_snapshots(ctx, db_session, days=1, now=NOW)) == {}

    def test_all_markets_defaults_to_subgraph_markets(self, ctx, db_session):
        out = asyncio.run(sync_all_asset_snapshots(ctx, db_session, days=1, now=NOW))
        assert list(out) == ["ethereum-v3"]
        assert out["ethereum-v3"] == {"USDC": 1}


# ── Market timeseries ──────────────────────────────────────────


class TestSyncMarketTimeseries:
    def test_rebuilds_series(self, ctx, db_session):
        options = SyncTimeseriesOptions(days=5, batch_size=2)
        result = asyncio.run(sync_market_timeseries(ctx, db_session, "ethereum-v3", options, now=NOW))
        assert (result.saved, result.requested, result.deleted) == (5, 5, 0)

        points = get_market_timeseries(db_session, "ethereum-v3", now=NOW)
        assert len(points) == 5
        assert points[-1].total_supplied_usd == pytest.approx(1000)
        assert points[-1].available_liquidity_usd == pytest.approx(600)
        assert points[-1].data_source == "subgraph"

    def test_delete_old_data_first(self, ctx, db_session):
        upsert_market_point(db_session, "ethereum-v3", date(2026, 1, 1), MarketTotals(1, 0, 1), "aavekit")
        db_session.commit()
        options = SyncTimeseriesOptions(days=2, delete_old_data=True)
        result = asyncio.run(sync_market_timeseries(ctx, db_session, "ethereum-v3", options, now=NOW))
        assert result.deleted == 1
        assert db_session.query(MarketTimeseriesRow).count() == 2

    def test_compare_with_aavekit(self, ctx, db_session):
        options = SyncTimeseriesOptions(days=1, compare_with_aavekit=True)
        result = asyncio.run(sync_market_timeseries(ctx, db_session, "ethereum-v3", options, now=NOW))
        assert result.live_deviation == pytest.approx(0.0)

    def test_comparison_flags_mismatch(self, registry, subgraph, db_session):
        ctx = make_ctx(registry, aavekit=FakeAaveKit(reserves=[aavekit_payload(supplied="2000")]), subgraph=subgraph)
        ctx._resolvers["ethereum-v3"] = FakeResolver()
        options = SyncTimeseriesOptions(days=1, compare_with_aavekit=True)
        result = asyncio.run(sync_market_timeseries(ctx, db_session, "ethereum-v3", options, now=NOW))
        assert result.live_deviation == pytest.approx(0.5)

    def test_comparison_failure_is_not_fatal(self, registry, subgraph, db_session):
        ctx = make_ctx(registry, aavekit=FakeAaveKit(failing={"ethereum-v3"}), subgraph=subgraph)
        ctx._resolvers["ethereum-v3"] = FakeResolver()
        options = SyncTimeseriesOptions(days=1, compare_with_aavekit=True)
        result = asyncio.run(sync_market_timeseries(ctx, db_session, "ethereum-v3", options, now=NOW))
        assert result.saved == 1
        assert result.live_deviation is None


class TestCleanup:
    def test_removes_rows_past_retention(self, db_session):
        upsert_market_point(db_session, "base-v3", date(2025, 6, 1), MarketTotals(1, 0, 1), "aavekit")
        upsert_market_point(db_session, "base-v3", date(2026, 6, 1), MarketTotals(1, 0, 1), "aavekit")
        upsert_asset_snapshot(db_session, {
            "market_key": "base-v3",
            "underlying_asset": USDC,
            "date": date(2025, 6, 1),
            "timestamp": 0,
            "supply_apr": 0,
            "borrow_apr": 0,
            "total_supplied_usd": 0,
            "total_borrowed_usd": 0,
            "utilization_rate": 0,
            "oracle_price": 1,
            "data_source": "aavekit",
        })
        db_session.commit()
        assert cleanup_old_data(db_session, days_to_keep=365, now=NOW) == 2
        assert db_session.query(MarketTimeseriesRow).count() == 1

    def test_cleaned_rows_are_not_rebuilt(self, db_session, usdc_payload):
        reserves = [Reserve.model_validate(usdc_payload)]
        save_raw_snapshot(db_session, "base-v3", date(2026, 6, 1), 1780272000, reserves, "aavekit")
        processor = MarketProcessor(retention_days=365)
        processed = []
        for _ in range(3):
            processed.append(processor.process_all_pending(db_session, now=NOW).processed)
            cleanup_old_data(db_session, days_to_keep=7, now=NOW)
        assert processed == [1, 0, 0]
        assert db_session.query(MarketTimeseriesRow).count() == 0


# ── Pipeline ──────────────────────────────────────────


class TestSyncPipeline:
    def test_historical_runs_all_stages(self, registry, db_engine, db_session):
        ctx = make_ctx(registry, engine=db_engine)
        ctx.config.sync.market_delay_s = 0
        report = asyncio.run(SyncPipeline(ctx).run_historical(db_session, days=2, now=NOW))
        assert report.ok
        assert [s.name for s in report.stages] == ["collect_missing", "process_markets", "process_assets"]
        assert report.stage("collect_missing").result == {"collected": 4, "skipped": 0, "failed": 0}
        assert report.stage("process_markets").result["rows_written"] == 4
        assert report.summary()["kind"] == "historical"

    def test_failed_stage_is_marked_and_raised(self, registry):
        pipeline = SyncPipeline(make_ctx(registry))
        report = SyncReport(kind="daily")
        with pytest.raises(RuntimeError):
            with pipeline._stage(report, "process_markets"):
                raise RuntimeError("boom")
        stage = report.stage("process_markets")
        assert not stage.ok
        assert stage.error == "boom"
        assert not report.ok


class TestRunnerParser:
    def test_timeseries_flags(self):
        args = build_parser().parse_args(
            ["timeseries", "ethereum-v3", "--days", "30", "--delete-old-data", "--compare-with-aavekit"]
        )
        assert args.command == "timeseries"
        assert args.market == "ethereum-v3"
        assert args.days == 30
        assert args.delete_old_data and args.compare_with_aavekit
        assert not args.progress

    def test_assets_repeatable_market(self):
        args = build_parser().parse_args(["assets", "--market", "ethereum-v3", "--market", "base-v3"])
        assert args.markets == ["ethereum-v3", "base-v3"]
        assert args.days is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
