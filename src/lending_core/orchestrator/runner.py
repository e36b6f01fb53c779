"""Orchestrator runner: one-shot sync commands for cron or the shell."""

from __future__ import annotations

import argparse
import asyncio
import json

from lending_core.config.loader import load_config
from lending_core.context import AppContext
from lending_core.logging import get_logger, setup_logging
from lending_core.orchestrator.pipeline import SyncPipeline
from lending_core.orchestrator.subgraph_sync import (
    SyncTimeseriesOptions,
    sync_all_asset_snapshots,
    sync_market_timeseries,
)

log = get_logger("orchestrator")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lending-sync", description="Lending market data sync")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("daily", help="Collect today, backfill gaps, process, clean up")

    hist = sub.add_parser("historical", help="Backfill missing AaveKit days and process")
    hist.add_argument("--days", type=int, default=None)

    assets = sub.add_parser("assets", help="Subgraph asset snapshots")
    assets.add_argument("--market", action="append", dest="markets", help="Market key (repeatable)")
    assets.add_argument("--days", type=int, default=None)

    ts = sub.add_parser("timeseries", help="Rebuild a market timeseries from the subgraph")
    ts.add_argument("market")
    ts.add_argument("--days", type=int, default=365)
    ts.add_argument("--batch-size", type=int, default=10)
    ts.add_argument("--delete-old-data", action="store_true")
    ts.add_argument("--compare-with-aavekit", action="store_true")
    ts.add_argument("--progress", action="store_true")
    return parser


async def run_command(ctx: AppContext, args: argparse.Namespace) -> dict:
    """Dispatch one parsed command against *ctx*; returns a JSON-able summary."""
    with ctx.session() as session:
        if args.command == "daily":
            return (await SyncPipeline(ctx).run_daily(session)).summary()
        if args.command == "historical":
            return (await SyncPipeline(ctx).run_historical(session, days=args.days)).summary()
        if args.command == "assets":
            return await sync_all_asset_snapshots(ctx, session, markets=args.markets, days=args.days)
        if args.command == "timeseries":
            options = SyncTimeseriesOptions(
                delete_old_data=args.delete_old_data,
                compare_with_aavekit=args.compare_with_aavekit,
                show_progress=args.progress,
                batch_size=args.batch_size,
                days=args.days,
            )
            result = await sync_market_timeseries(ctx, session, args.market, options)
            return {"market": result.market_key, "saved": result.saved, "requested": result.requested}
    raise ValueError(f"unknown command {args.command!r}")


async def _run(ctx: AppContext, args: argparse.Namespace) -> dict:
    try:
        return await run_command(ctx, args)
    finally:
        await ctx.aclose()


def main(argv: list[str] | None = None) -> None:
    """Entry point: load config, set up logging, run one command."""
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    ctx = AppContext.from_config(config)
    log.info("sync_started", command=args.command)
    summary = asyncio.run(_run(ctx, args))
    log.info("sync_finished", command=args.command)
    print(json.dumps(summary, indent=2, default=str))
