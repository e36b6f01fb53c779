"""Tests for the market and asset processors."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from lending_core.db.tables import AssetSnapshotRow, MarketTimeseriesRow, RawSnapshotRow
from lending_core.models.reserve import Reserve
from lending_core.processors import AssetProcessor, MarketProcessor
from lending_core.processors.asset import derive_aprs
from lending_core.processors.market import totals_from_payload
from lending_core.store.asset_snapshots import get_daily_snapshots
from lending_core.store.raw_snapshots import get_raw_snapshot, save_raw_snapshot
from lending_core.store.timeseries import get_market_timeseries

from conftest import USDC, WETH, aavekit_payload

NOW = datetime(2026, 6, 30, 12, tzinfo=timezone.utc)
RAY = 10**27


def _ts(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())


def _seed(session, market_key, day, payloads, source="aavekit"):
    reserves = [Reserve.model_validate(p) for p in payloads]
    return save_raw_snapshot(session, market_key, day, _ts(day), reserves, source)


# ── Market processor ──────────────────────────────────────────


class TestMarketProcessor:
    def test_sums_reserves(self, db_session, usdc_payload, weth_payload):
        _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload, weth_payload])
        report = MarketProcessor().process_all_pending(db_session, now=NOW)
        assert report.model_dump() == {"processed": 1, "failed": 0, "rows_written": 1}

        [point] = get_market_timeseries(db_session, "base-v3", now=NOW)
        assert point.total_supplied_usd == pytest.approx(21000)
        assert point.total_borrowed_usd == pytest.approx(10400)
        assert point.available_liquidity_usd == pytest.approx(10600)
        assert point.data_source == "aavekit"

    def test_available_is_supplied_minus_borrowed(self, db_session):
        # Upstream availableLiquidity disagrees; the stored value ignores it.
        payload = aavekit_payload(supplied="100", borrowed="30", availableLiquidity="5")
        _seed(db_session, "base-v3", date(2026, 6, 30), [payload])
        MarketProcessor().process_all_pending(db_session, now=NOW)
        [point] = get_market_timeseries(db_session, "base-v3", now=NOW)
        assert point.available_liquidity_usd == pytest.approx(70)

    def test_bad_reserve_is_skipped(self, db_session, usdc_payload):
        bad = {"symbol": "BROKEN"}
        totals = totals_from_payload([usdc_payload, bad], "aavekit", "base-v3")
        assert [t.symbol for t in totals] == ["USDC"]

    def test_empty_snapshot_writes_nothing(self, db_session):
        _seed(db_session, "base-v3", date(2026, 6, 30), [])
        report = MarketProcessor().process_all_pending(db_session, now=NOW)
        assert report.processed == 1
        assert report.rows_written == 0
        assert db_session.query(MarketTimeseriesRow).count() == 0

    def test_pending_processed_once(self, db_session, usdc_payload):
        _seed(db_session, "base-v3", date(2026, 6, 29), [usdc_payload])
        _seed(db_session, "arbitrum-v3", date(2026, 6, 30), [usdc_payload])
        processor = MarketProcessor()
        assert processor.process_all_pending(db_session, now=NOW).processed == 2
        assert processor.process_all_pending(db_session, now=NOW).processed == 0

    def test_empty_snapshot_is_consumed_once(self, db_session):
        _seed(db_session, "base-v3", date(2026, 6, 30), [])
        _seed(db_session, "arbitrum-v3", date(2026, 6, 30), [aavekit_payload()])
        raw = get_raw_snapshot(db_session, "arbitrum-v3", date(2026, 6, 30), "aavekit")
        raw.raw_data = [{"symbol": "BROKEN"}]
        db_session.commit()
        processor = MarketProcessor()
        assert processor.process_all_pending(db_session, now=NOW).processed == 2
        assert processor.process_all_pending(db_session, now=NOW).processed == 0

    def test_snapshots_past_retention_are_not_pending(self, db_session, usdc_payload):
        _seed(db_session, "base-v3", date(2025, 5, 1), [usdc_payload])
        _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload])
        report = MarketProcessor(retention_days=365).process_all_pending(db_session, now=NOW)
        assert report.processed == 1
        assert db_session.query(MarketTimeseriesRow).one().date == date(2026, 6, 30)

    def test_rewritten_snapshot_is_pending_again(self, db_session, usdc_payload):
        _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload])
        processor = MarketProcessor()
        processor.process_all_pending(db_session, now=NOW)
        _seed(db_session, "base-v3", date(2026, 6, 30), [aavekit_payload(supplied="5000")])
        assert processor.process_all_pending(db_session, now=NOW).processed == 1
        [point] = get_market_timeseries(db_session, "base-v3", now=NOW)
        assert point.total_supplied_usd == pytest.approx(5000)

    def test_reprocess_market_is_idempotent(self, db_session, usdc_payload):
        _seed(db_session, "base-v3", date(2026, 6, 29), [usdc_payload])
        _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload])
        processor = MarketProcessor()
        processor.process_market(db_session, "base-v3")
        processor.process_market(db_session, "base-v3")
        processor.process_market(db_session, "base-v3", day=date(2026, 6, 30))
        assert db_session.query(MarketTimeseriesRow).count() == 2

    def test_subgraph_snapshot_uses_onchain_encoding(self, db_session):
        payload = aavekit_payload(
            supplied=str(1000 * 10**6), borrowed=str(400 * 10**6), price=str(10**10)
        )
        _seed(db_session, "ethereum-v3", date(2026, 6, 30), [payload], source="subgraph")
        MarketProcessor().process_all_pending(db_session, now=NOW)
        [point] = get_market_timeseries(db_session, "ethereum-v3", now=NOW)
        assert point.total_supplied_usd == pytest.approx(100_000)
        assert point.data_source == "subgraph"


# ── Asset processor ──────────────────────────────────────────


class TestDeriveAprs:
    def _reserve(self, liquidity_index, borrow_index):
        return Reserve.model_validate(
            aavekit_payload(liquidityIndex=liquidity_index, variableBorrowIndex=borrow_index)
        )

    def _previous(self, liquidity_index, borrow_index, ts):
        return AssetSnapshotRow(liquidity_index=liquidity_index, variable_borrow_index=borrow_index, timestamp=ts)

    def test_from_indices(self):
        reserve = self._reserve(str(int(RAY * 1.001)), str(int(RAY * 1.002)))
        previous = self._previous(str(RAY), str(RAY), 0)
        supply, borrow = derive_aprs(reserve, 86400, previous, 0.5, 0.5)
        assert supply == pytest.approx(0.365, rel=1e-6)
        assert borrow == pytest.approx(0.73, rel=1e-6)

    def test_reported_without_previous(self):
        reserve = self._reserve(str(RAY), str(RAY))
        assert derive_aprs(reserve, 86400, None, 0.03, 0.05) == (0.03, 0.05)

    def test_reported_when_indices_missing(self):
        reserve = self._reserve("0", "0")
        previous = self._previous(str(RAY), str(RAY), 0)
        assert derive_aprs(reserve, 86400, previous, 0.03, 0.05) == (0.03, 0.05)

    def test_borrow_falls_back_alone(self):
        reserve = self._reserve(str(int(RAY * 1.001)), "0")
        previous = self._previous(str(RAY), str(RAY), 0)
        supply, borrow = derive_aprs(reserve, 86400, previous, 0.03, 0.05)
        assert supply == pytest.approx(0.365, rel=1e-6)
        assert borrow == 0.05

    def test_same_timestamp_uses_reported(self):
        reserve = self._reserve(str(int(RAY * 1.001)), str(RAY))
        previous = self._previous(str(RAY), str(RAY), 86400)
        assert derive_aprs(reserve, 86400, previous, 0.03, 0.05) == (0.03, 0.05)


class TestAssetProcessor:
    def test_writes_one_row_per_reserve(self, db_session, usdc_payload, weth_payload):
        _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload, weth_payload])
        report = AssetProcessor().process_all_pending(db_session, now=NOW)
        assert report.model_dump() == {"processed": 1, "failed": 0, "rows_written": 2}

        [usdc] = get_daily_snapshots(db_session, "base-v3", USDC)
        assert usdc.supply_apr == pytest.approx(0.03)
        assert usdc.total_supplied_usd == pytest.approx(1000)
        assert usdc.utilization_rate == pytest.approx(0.4)
        [weth] = get_daily_snapshots(db_session, "base-v3", WETH)
        assert weth.price == pytest.approx(2000)

    def test_index_apr_against_previous_day(self, db_session):
        day1 = aavekit_payload(liquidityIndex=str(RAY), variableBorrowIndex=str(RAY))
        day2 = aavekit_payload(liquidityIndex=str(int(RAY * 1.001)), variableBorrowIndex=str(RAY))
        _seed(db_session, "base-v3", date(2026, 6, 29), [day1])
        _seed(db_session, "base-v3", date(2026, 6, 30), [day2])
        AssetProcessor().process_all_pending(db_session, now=NOW)

        first, second = get_daily_snapshots(db_session, "base-v3", USDC)
        assert first.supply_apr == pytest.approx(0.03)
        assert second.supply_apr == pytest.approx(0.365, rel=1e-6)
        assert second.borrow_apr == pytest.approx(0.0)

    def test_excludes_canonical_and_old_snapshots(self, db_session, usdc_payload):
        _seed(db_session, "ethereum-v3", date(2026, 6, 30), [usdc_payload])
        _seed(db_session, "base-v3", date(2025, 1, 1), [usdc_payload])
        report = AssetProcessor().process_all_pending(db_session, now=NOW)
        assert report.processed == 0
        assert db_session.query(AssetSnapshotRow).count() == 0

    def test_bad_reserve_skipped_rest_written(self, db_session, usdc_payload):
        _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload])
        raw = get_raw_snapshot(db_session, "base-v3", date(2026, 6, 30), "aavekit")
        raw.raw_data = [{"symbol": "BROKEN"}, usdc_payload]
        assert AssetProcessor().process_snapshot(db_session, raw) == 1

    def test_links_raw_snapshot(self, db_session, usdc_payload):
        raw_id = _seed(db_session, "base-v3", date(2026, 6, 30), [usdc_payload])
        AssetProcessor().process_market(db_session, "base-v3")
        row = db_session.query(AssetSnapshotRow).one()
        assert row.raw_data_id == raw_id
        assert row.underlying_asset == USDC

    def test_reprocessing_leaves_rows_unchanged(self, db_session):
        day1 = aavekit_payload(liquidityIndex=str(RAY), variableBorrowIndex=str(RAY))
        day2 = aavekit_payload(liquidityIndex=str(int(RAY * 1.001)), variableBorrowIndex=str(int(RAY * 1.002)))
        _seed(db_session, "base-v3", date(2026, 6, 29), [day1])
        _seed(db_session, "base-v3", date(2026, 6, 30), [day2])
        processor = AssetProcessor()

        def rows():
            db_session.expire_all()
            return [
                {c.name: getattr(r, c.name) for c in AssetSnapshotRow.__table__.columns if c.name != "updated_at"}
                for r in db_session.query(AssetSnapshotRow).order_by(AssetSnapshotRow.date)
            ]

        assert processor.process_all_pending(db_session, now=NOW).rows_written == 2
        first = rows()
        assert processor.process_all_pending(db_session, now=NOW).processed == 0
        processor.process_market(db_session, "base-v3")
        assert rows() == first

    def test_empty_snapshot_is_consumed_once(self, db_session):
        _seed(db_session, "base-v3", date(2026, 6, 30), [])
        processor = AssetProcessor()
        assert processor.process_all_pending(db_session, now=NOW).processed == 1
        assert processor.process_all_pending(db_session, now=NOW).processed == 0
        raw = db_session.query(RawSnapshotRow).one()
        assert raw.assets_processed_at is not None
        assert raw.timeseries_processed_at is None
