"""Subgraph-backed history: per-asset daily snapshots and market timeseries.

Each historical day is resolved to the last block mined before its end
(23:59:59.999 UTC) and the pool's reserves are read at that block. Day
fetches run concurrently in batches; writes happen afterwards in date
order so every row sees its predecessor.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from lending_core.cache import with_stale_if_error
from lending_core.calculations.totals import (
    DATA_SOURCE_SUBGRAPH,
    MarketTotals,
    calculate_market_totals,
    reserve_totals,
)
from lending_core.context import AppContext
from lending_core.errors import ConfigurationError, ErrorCode, UpstreamError, ValidationError
from lending_core.logging import bound_context, get_logger
from lending_core.models.market import MarketConfig
from lending_core.models.reserve import Pool, Reserve
from lending_core.processors.asset import asset_snapshot_values
from lending_core.store.asset_snapshots import (
    delete_asset_snapshots_before,
    existing_asset_dates,
    previous_asset_snapshot,
    upsert_asset_snapshot,
)
from lending_core.store.timeseries import delete_market_timeseries, delete_timeseries_before, upsert_market_point
from lending_core.utils.address import normalize_address
from lending_core.utils.retry import with_retry
from lending_core.utils.timeframes import day_end, last_n_days, to_unix, utc_today, utcnow

log = get_logger(__name__)

# Live totals further than this from the subgraph's latest point are flagged.
COMPARISON_TOLERANCE = 0.05


def _subgraph_market(ctx: AppContext, market_key: str) -> MarketConfig:
    market = ctx.registry.get_market(market_key)
    if not market.subgraph_id:
        raise ValidationError(ErrorCode.INVALID_MARKET, f"Market {market_key} has no subgraph deployment")
    return market


async def resolve_pool(ctx: AppContext, market: MarketConfig) -> Pool:
    """Subgraph pool entity for *market*, cached in the mappings tier."""

    async def fetch() -> Pool:
        pool = await with_retry(
            lambda: ctx.subgraph.query_pool_by_address(market.subgraph_id, market.pool_address),
            on_retry=lambda attempt, exc: log.warning(
                "pool_lookup_retry", market=market.market_key, attempt=attempt, error=str(exc)
            ),
        )
        if pool is None:
            raise UpstreamError("subgraph", f"pool {market.pool_address} not found for {market.market_key}")
        return pool

    return await with_stale_if_error(ctx.caches.mappings, f"pool:{market.market_key}", fetch)


def _snapshot_ts(day: date, now: datetime) -> int:
    return min(to_unix(day_end(day)), to_unix(now))


async def _reserves_for_day(
    ctx: AppContext, market: MarketConfig, pool: Pool, day: date, now: datetime
) -> tuple[int, list[Reserve]]:
    block = await ctx.resolver_for(market).resolve_timestamp_to_block(_snapshot_ts(day, now))
    reserves = await ctx.subgraph.query_reserves_at_block(market.subgraph_id, pool.id, block)
    return block, reserves


async def _fetch_days(
    ctx: AppContext,
    market: MarketConfig,
    pool: Pool,
    days: list[date],
    batch_size: int,
    now: datetime,
    show_progress: bool = False,
) -> dict[date, tuple[int, list[Reserve]]]:
    """Reserve lists keyed by day; failed days are logged and left out."""
    fetched: dict[date, tuple[int, list[Reserve]]] = {}
    for start in range(0, len(days), batch_size):
        batch = days[start:start + batch_size]
        results = await asyncio.gather(
            *(_reserves_for_day(ctx, market, pool, d, now) for d in batch),
            return_exceptions=True,
        )
        for day, result in zip(batch, results):
            if isinstance(result, BaseException):
                log.warning("subgraph_day_failed", market=market.market_key, date=day.isoformat(), error=str(result))
                continue
            fetched[day] = result
        if show_progress:
            log.info("subgraph_progress", market=market.market_key, done=min(start + batch_size, len(days)), total=len(days))
    return fetched


def _wanted_days(
    session: Session, market_key: str, underlying: str, days: int, now: datetime, skip_existing: bool
) -> list[date]:
    wanted = last_n_days(days, now)
    if skip_existing:
        have = existing_asset_dates(session, market_key, underlying, wanted[0])
        # Today's row is always refreshed.
        today = utc_today(now)
        wanted = [d for d in wanted if d not in have or d == today]
    return wanted


def _write_asset_days(
    session: Session,
    market_key: str,
    underlying: str,
    wanted: list[date],
    fetched: dict[date, tuple[int, list[Reserve]]],
    now: datetime,
) -> int:
    """Upsert *underlying*'s row for each wanted day that was fetched, oldest first."""
    saved = 0
    for day in sorted(d for d in wanted if d in fetched):
        block, reserves = fetched[day]
        reserve = next((r for r in reserves if r.underlying_asset.lower() == underlying), None)
        if reserve is None:
            continue
        previous = previous_asset_snapshot(session, market_key, underlying, day)
        values = asset_snapshot_values(
            market_key, reserve, DATA_SOURCE_SUBGRAPH, day, _snapshot_ts(day, now), block, previous
        )
        upsert_asset_snapshot(session, values)
        session.commit()
        saved += 1
    return saved


async def sync_asset_snapshots(
    ctx: AppContext,
    session: Session,
    market_key: str,
    underlying_asset: str,
    days: int | None = None,
    now: datetime | None = None,
    skip_existing: bool = True,
) -> int:
    """Backfill subgraph asset snapshots for one reserve. Returns rows written."""
    now = now or utcnow()
    days = days or ctx.config.sync.asset_sync_days
    underlying = normalize_address(underlying_asset)
    market = _subgraph_market(ctx, market_key)
    pool = await resolve_pool(ctx, market)

    wanted = _wanted_days(session, market_key, underlying, days, now, skip_existing)
    log.info("asset_sync_started", market=market_key, asset=underlying, days=len(wanted))
    fetched = await _fetch_days(ctx, market, pool, wanted, ctx.config.sync.subgraph_batch_size, now)
    saved = _write_asset_days(session, market_key, underlying, wanted, fetched, now)
    log.info("asset_sync_finished", market=market_key, asset=underlying, saved=saved, requested=len(wanted))
    return saved


async def sync_market_asset_snapshots(
    ctx: AppContext,
    session: Session,
    market_key: str,
    days: int | None = None,
    now: datetime | None = None,
    skip_existing: bool = True,
) -> dict[str, int]:
    """Backfill every reserve currently listed for *market_key*.

    Each day's block is resolved and its reserves fetched once for the whole
    market; rows are then written per asset. A reserve whose values fail to
    parse is logged and skipped.
    """
    now = now or utcnow()
    days = days or ctx.config.sync.asset_sync_days
    market = _subgraph_market(ctx, market_key)
    listed = await with_retry(lambda: ctx.aavekit.query_reserves(market))
    pool = await resolve_pool(ctx, market)

    wanted: dict[str, list[date]] = {}
    for reserve in listed:
        underlying = normalize_address(reserve.underlying_asset)
        wanted[underlying] = _wanted_days(session, market_key, underlying, days, now, skip_existing)
    all_days = sorted(set().union(*wanted.values()))
    log.info("market_asset_sync_started", market=market_key, assets=len(listed), days=len(all_days))
    fetched = await _fetch_days(ctx, market, pool, all_days, ctx.config.sync.subgraph_batch_size, now)

    saved: dict[str, int] = {}
    for reserve in listed:
        underlying = normalize_address(reserve.underlying_asset)
        try:
            saved[reserve.symbol] = _write_asset_days(
                session, market_key, underlying, wanted[underlying], fetched, now
            )
        except ValueError:
            session.rollback()
            log.exception("asset_sync_failed", market=market_key, symbol=reserve.symbol)
    log.info("market_asset_sync_finished", market=market_key, saved=sum(saved.values()), requested=len(all_days))
    return saved


async def sync_all_asset_snapshots(
    ctx: AppContext,
    session: Session,
    markets: list[str] | None = None,
    days: int | None = None,
    now: datetime | None = None,
) -> dict[str, dict[str, int]]:
    """Run :func:`sync_market_asset_snapshots` for each subgraph-backed market."""
    keys = markets or [m.market_key for m in ctx.registry.markets if m.subgraph_id]
    out: dict[str, dict[str, int]] = {}
    for key in keys:
        with bound_context(market=key):
            try:
                out[key] = await sync_market_asset_snapshots(ctx, session, key, days=days, now=now)
            except (UpstreamError, ConfigurationError, ValidationError):
                session.rollback()
                log.exception("market_asset_sync_failed")
    return out


@dataclass
class SyncTimeseriesOptions:
    delete_old_data: bool = False
    compare_with_aavekit: bool = False
    show_progress: bool = False
    batch_size: int = 10
    days: int = 365


@dataclass
class TimeseriesSyncResult:
    market_key: str
    saved: int = 0
    requested: int = 0
    deleted: int = 0
    live_deviation: float | None = None


def _deviation(a: float, b: float) -> float:
    if b == 0:
        return 0.0 if a == 0 else 1.0
    return abs(a - b) / abs(b)


async def compare_latest_with_aavekit(ctx: AppContext, market: MarketConfig, latest: MarketTotals) -> float:
    """Largest relative gap between *latest* and live AaveKit totals; warns above tolerance."""
    reserves = await ctx.aavekit.query_reserves(market)
    live = calculate_market_totals(reserve_totals(r, "aavekit") for r in reserves)
    deviation = max(
        _deviation(latest.total_supplied_usd, live.total_supplied_usd),
        _deviation(latest.total_borrowed_usd, live.total_borrowed_usd),
    )
    if deviation > COMPARISON_TOLERANCE:
        log.warning(
            "aavekit_mismatch",
            market=market.market_key,
            deviation=round(deviation, 4),
            subgraph_supplied_usd=latest.total_supplied_usd,
            aavekit_supplied_usd=live.total_supplied_usd,
            subgraph_borrowed_usd=latest.total_borrowed_usd,
            aavekit_borrowed_usd=live.total_borrowed_usd,
        )
    return deviation


async def sync_market_timeseries(
    ctx: AppContext,
    session: Session,
    market_key: str,
    options: SyncTimeseriesOptions | None = None,
    now: datetime | None = None,
) -> TimeseriesSyncResult:
    """Rebuild a market's canonical timeseries from subgraph block history."""
    options = options or SyncTimeseriesOptions()
    now = now or utcnow()
    market = _subgraph_market(ctx, market_key)
    result = TimeseriesSyncResult(market_key=market_key)

    with bound_context(market=market_key):
        pool = await resolve_pool(ctx, market)
        if options.delete_old_data:
            result.deleted = delete_market_timeseries(session, market_key)
            log.info("timeseries_deleted", rows=result.deleted)

        days = last_n_days(options.days, now)
        result.requested = len(days)
        fetched = await _fetch_days(ctx, market, pool, days, options.batch_size, now, options.show_progress)

        latest: MarketTotals | None = None
        for day in sorted(fetched):
            _, reserves = fetched[day]
            if not reserves:
                continue
            totals = calculate_market_totals(reserve_totals(r, DATA_SOURCE_SUBGRAPH) for r in reserves)
            upsert_market_point(session, market_key, day, totals, DATA_SOURCE_SUBGRAPH)
            result.saved += 1
            latest = totals
        session.commit()
        log.info("timeseries_synced", saved=result.saved, requested=result.requested)

        if options.compare_with_aavekit and latest is not None:
            try:
                result.live_deviation = await compare_latest_with_aavekit(ctx, market, latest)
            except UpstreamError as exc:
                log.warning("aavekit_comparison_failed", error=str(exc))
    return result


def cleanup_old_data(session: Session, days_to_keep: int = 365, now: datetime | None = None) -> int:
    """Delete timeseries and asset rows older than *days_to_keep*. Returns rows removed."""
    cutoff = utc_today(now) - timedelta(days=days_to_keep)
    deleted = delete_timeseries_before(session, cutoff) + delete_asset_snapshots_before(session, cutoff)
    log.info("old_data_cleaned", cutoff=cutoff.isoformat(), rows=deleted)
    return deleted
