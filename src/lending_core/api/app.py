"""FastAPI application: read API over stored lending data plus cron triggers."""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from lending_core.api.ratelimit import FixedWindowRateLimiter, RateLimitExceeded, client_id
from lending_core.cache import with_stale_if_error
from lending_core.calculations.apr import (
    IndexSnapshot,
    calculate_30d_apr_series,
    calculate_30d_apr_stats,
    calculate_average_lending_rates,
)
from lending_core.calculations.liquidity_impact import (
    RateCurveParams,
    ReserveState,
    Scenario,
    calculate_liquidity_impact,
)
from lending_core.calculations.snapshots import aggregate_monthly_snapshots
from lending_core.calculations.stablecoins import aggregate_stablecoins
from lending_core.calculations.totals import DATA_SOURCE_AAVEKIT, MarketTotals, reserve_totals
from lending_core.calculations.trends import compute_trend_changes
from lending_core.context import AppContext
from lending_core.errors import ErrorCode, LendingError, UpstreamError, ValidationError, error_response
from lending_core.logging import get_logger
from lending_core.models.snapshot import ReserveSummary
from lending_core.orchestrator.pipeline import SyncPipeline
from lending_core.store.queries import (
    get_asset_daily_snapshots,
    get_data_coverage,
    get_market_reserves,
    get_market_timeseries,
    get_reserve,
    summarize_reserve,
)
from lending_core.utils.address import normalize_address
from lending_core.utils.timeframes import ALL_TIME_WINDOWS, WINDOW_DAYS, utc_today

logger = get_logger(__name__)


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency to get DB session."""
    session = get_ctx(request).session()
    try:
        yield session
    finally:
        session.close()


def rate_limited(request: Request) -> None:
    allowed, retry_after = request.app.state.limiter.hit(client_id(request))
    if not allowed:
        raise RateLimitExceeded(retry_after)


class UnauthorizedCron(Exception):
    pass


def _summary_totals(reserves: list[ReserveSummary]) -> MarketTotals:
    return MarketTotals(
        total_supplied_usd=sum(r.total_supplied_usd for r in reserves),
        total_borrowed_usd=sum(r.total_borrowed_usd for r in reserves),
        asset_count=len(reserves),
    )


def _check_window(window: str) -> str:
    if window not in WINDOW_DAYS:
        raise ValidationError(
            ErrorCode.INVALID_PARAMETER, f"window must be one of {', '.join(ALL_TIME_WINDOWS)}"
        )
    return window


def create_app(ctx: AppContext) -> FastAPI:
    app = FastAPI(
        title="Lending Analytics API",
        description="Read API over collected lending market data",
        version="0.1.0",
    )
    app.state.ctx = ctx
    app.state.limiter = FixedWindowRateLimiter(ctx.config.api.rate_limit, ctx.config.api.rate_window_s)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        status = 400 if exc.code == ErrorCode.INVALID_PARAMETER else 404
        return JSONResponse(error_response(exc.code, exc.message), status_code=status)

    @app.exception_handler(UpstreamError)
    async def _upstream_error(request: Request, exc: UpstreamError):
        logger.warning("upstream_unavailable", path=request.url.path, source=exc.source, error=exc.message)
        return JSONResponse(
            error_response(ErrorCode.UPSTREAM_ERROR, "Upstream data source unavailable", {"source": exc.source}),
            status_code=503,
        )

    @app.exception_handler(LendingError)
    async def _lending_error(request: Request, exc: LendingError):
        logger.error("request_failed", path=request.url.path, error=str(exc))
        return JSONResponse(error_response(ErrorCode.INTERNAL_ERROR, "Internal error"), status_code=500)

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            error_response(ErrorCode.RATE_LIMIT_EXCEEDED, "Rate limit exceeded"),
            status_code=429,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    # ═══════════════════════════════════════════════════════════════
    # Markets
    # ═══════════════════════════════════════════════════════════════

    @app.get("/api/v1/markets", dependencies=[Depends(rate_limited)])
    def list_markets(session: Session = Depends(get_db)):
        """Configured markets with totals from their latest stored snapshot."""
        cached = ctx.caches.snapshots.get("markets")
        if cached is not None:
            return cached
        coverage = {c.market_key: c for c in get_data_coverage(session, "raw")}
        markets = []
        for m in ctx.registry.markets:
            totals = _summary_totals(get_market_reserves(session, m.market_key))
            cov = coverage.get(m.market_key)
            markets.append({
                "marketKey": m.market_key,
                "displayName": m.display_name,
                "chainId": m.chain_id,
                "poolAddress": m.pool_address,
                "totalSuppliedUSD": totals.total_supplied_usd,
                "totalBorrowedUSD": totals.total_borrowed_usd,
                "availableLiquidityUSD": totals.available_liquidity_usd,
                "assetCount": totals.asset_count,
                "lastSnapshotDate": cov.last_date.isoformat() if cov and cov.last_date else None,
            })
        result = {"markets": markets}
        ctx.caches.snapshots.set("markets", result)
        return result

    @app.get("/api/v1/market/{market_key}", dependencies=[Depends(rate_limited)])
    async def market_detail(market_key: str):
        """Live reserves for one market, served stale when AaveKit is down."""
        market = ctx.registry.get_market(market_key)

        async def fetch():
            reserves = await ctx.aavekit.query_reserves(market)
            today = utc_today()
            return [summarize_reserve(market_key, r, DATA_SOURCE_AAVEKIT, today) for r in reserves]

        reserves = await with_stale_if_error(ctx.caches.live, f"market:{market_key}", fetch)
        totals = _summary_totals(reserves)
        return {
            "marketKey": market_key,
            "displayName": market.display_name,
            "totalSuppliedUSD": totals.total_supplied_usd,
            "totalBorrowedUSD": totals.total_borrowed_usd,
            "availableLiquidityUSD": totals.available_liquidity_usd,
            "reserves": reserves,
        }

    @app.get("/api/v1/market/{market_key}/timeseries", dependencies=[Depends(rate_limited)])
    def market_timeseries(market_key: str, window: str = Query("30d"), session: Session = Depends(get_db)):
        ctx.registry.get_market(market_key)
        _check_window(window)
        key = f"timeseries:{market_key}:{window}"
        cached = ctx.caches.snapshots.get(key)
        if cached is not None:
            return cached
        points = get_market_timeseries(session, market_key, window)
        result = {
            "marketKey": market_key,
            "window": window,
            "data": points,
            "trends": compute_trend_changes(points),
        }
        ctx.caches.snapshots.set(key, result)
        return result

    # ═══════════════════════════════════════════════════════════════
    # Reserves
    # ═══════════════════════════════════════════════════════════════

    @app.get("/api/v1/reserve/{market_key}/{underlying}", dependencies=[Depends(rate_limited)])
    def reserve_detail(market_key: str, underlying: str, session: Session = Depends(get_db)):
        """Latest stored reserve state plus trailing lending rates."""
        ctx.registry.get_market(market_key)
        address = normalize_address(underlying)
        reserve = get_reserve(session, market_key, address)
        daily = get_asset_daily_snapshots(session, market_key, address, window="1y")
        index_points = [
            IndexSnapshot(s.liquidity_index, s.variable_borrow_index, s.timestamp) for s in daily
        ]
        series = calculate_30d_apr_series([(s.date, s.timestamp, s.borrow_apr) for s in daily])
        return {
            "reserve": reserve,
            "lendingRates": calculate_average_lending_rates(index_points),
            "apr30d": calculate_30d_apr_stats(series),
            "isStablecoin": ctx.registry.is_stablecoin(address),
        }

    @app.get("/api/v1/reserve/{market_key}/{underlying}/snapshots/daily", dependencies=[Depends(rate_limited)])
    def reserve_daily(
        market_key: str,
        underlying: str,
        window: str = Query("1y"),
        session: Session = Depends(get_db),
    ):
        ctx.registry.get_market(market_key)
        address = normalize_address(underlying)
        _check_window(window)
        return {
            "marketKey": market_key,
            "underlyingAsset": address,
            "window": window,
            "snapshots": get_asset_daily_snapshots(session, market_key, address, window=window),
        }

    @app.get("/api/v1/reserve/{market_key}/{underlying}/snapshots/monthly", dependencies=[Depends(rate_limited)])
    def reserve_monthly(market_key: str, underlying: str, session: Session = Depends(get_db)):
        ctx.registry.get_market(market_key)
        address = normalize_address(underlying)
        daily = get_asset_daily_snapshots(session, market_key, address)
        return {
            "marketKey": market_key,
            "underlyingAsset": address,
            "snapshots": aggregate_monthly_snapshots(daily),
        }

    @app.get("/api/v1/reserve/{market_key}/{underlying}/liquidity-impact", dependencies=[Depends(rate_limited)])
    async def reserve_liquidity_impact(
        market_key: str,
        underlying: str,
        action: str | None = Query(None),
        amount: float | None = Query(None, gt=0),
    ):
        """Utilization and rate changes for the default or one given scenario."""
        market = ctx.registry.get_market(market_key)
        address = normalize_address(underlying)
        if (action is None) != (amount is None):
            raise ValidationError(ErrorCode.INVALID_PARAMETER, "action and amount must be given together")

        async def fetch():
            reserve = await ctx.aavekit.query_reserve(market, address)
            if reserve is None:
                raise ValidationError(ErrorCode.RESERVE_NOT_FOUND, f"Reserve {address} not found in {market_key}")
            return reserve

        reserve = await with_stale_if_error(ctx.caches.live, f"reserve:{market_key}:{address}", fetch)
        t = reserve_totals(reserve, DATA_SOURCE_AAVEKIT)
        state = ReserveState(
            borrowed_usd=t.borrowed_usd,
            available_usd=t.available_usd,
            supply_apr=t.supply_rate,
            borrow_apr=t.borrow_rate,
        )
        if action is not None:
            scenarios = [Scenario(action=action, amount_usd=amount)]
        else:
            scenarios = ctx.registry.scenarios_for(address)
        params = RateCurveParams.from_reserve(reserve)
        try:
            results = [calculate_liquidity_impact(state, s, params) for s in scenarios]
        except ValueError as exc:
            raise ValidationError(ErrorCode.INVALID_PARAMETER, str(exc)) from exc
        return {
            "marketKey": market_key,
            "underlyingAsset": address,
            "symbol": reserve.symbol,
            "current": {
                "utilizationRate": t.utilization_rate,
                "supplyAPR": t.supply_rate,
                "borrowAPR": t.borrow_rate,
            },
            "rateParams": params,
            "scenarios": results,
        }

    # ═══════════════════════════════════════════════════════════════
    # Stablecoins
    # ═══════════════════════════════════════════════════════════════

    @app.get("/api/v1/stablecoins", dependencies=[Depends(rate_limited)])
    def stablecoins(session: Session = Depends(get_db)):
        cached = ctx.caches.snapshots.get("stablecoins")
        if cached is not None:
            return cached
        reserves = {m.market_key: get_market_reserves(session, m.market_key) for m in ctx.registry.markets}
        rows = aggregate_stablecoins(ctx.registry, reserves)
        result = {
            "stablecoins": rows,
            "totalSuppliedUSD": sum(r.total_supplied_usd for r in rows),
            "totalBorrowedUSD": sum(r.total_borrowed_usd for r in rows),
        }
        ctx.caches.snapshots.set("stablecoins", result)
        return result

    # ═══════════════════════════════════════════════════════════════
    # Cron triggers
    # ═══════════════════════════════════════════════════════════════

    def require_cron_secret(authorization: str | None = Header(None)) -> None:
        secret = ctx.config.api.cron_secret
        if secret and authorization != f"Bearer {secret}":
            raise UnauthorizedCron()

    @app.exception_handler(UnauthorizedCron)
    async def _unauthorized(request: Request, exc: UnauthorizedCron):
        return JSONResponse(error_response(ErrorCode.UNAUTHORIZED, "Unauthorized"), status_code=401)

    @app.post("/api/cron/sync-daily", dependencies=[Depends(require_cron_secret)])
    async def cron_sync_daily(session: Session = Depends(get_db)):
        report = await SyncPipeline(ctx).run_daily(session)
        ctx.caches.snapshots.clear()
        return report.summary()

    @app.post("/api/cron/sync-historical", dependencies=[Depends(require_cron_secret)])
    async def cron_sync_historical(days: int | None = Query(None, gt=0, le=365), session: Session = Depends(get_db)):
        report = await SyncPipeline(ctx).run_historical(session, days=days)
        ctx.caches.snapshots.clear()
        return report.summary()

    return app
