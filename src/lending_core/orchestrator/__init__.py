"""Sync orchestration: pipeline stages, subgraph history, CLI."""

from lending_core.orchestrator.pipeline import SyncPipeline, SyncReport
from lending_core.orchestrator.subgraph_sync import (
    SyncTimeseriesOptions,
    cleanup_old_data,
    sync_all_asset_snapshots,
    sync_asset_snapshots,
    sync_market_asset_snapshots,
    sync_market_timeseries,
)

__all__ = [
    "SyncPipeline",
    "SyncReport",
    "SyncTimeseriesOptions",
    "cleanup_old_data",
    "sync_all_asset_snapshots",
    "sync_asset_snapshots",
    "sync_market_asset_snapshots",
    "sync_market_timeseries",
]
