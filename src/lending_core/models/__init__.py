"""Pydantic domain models."""

from lending_core.models.market import MarketConfig, ScenarioConfig, ScenarioEntry, StablecoinConfig
from lending_core.models.report import CollectionOutcome, CollectionReport, ProcessingReport
from lending_core.models.reserve import AaveKitChain, AaveKitMarket, Pool, Reserve, ReservePrice
from lending_core.models.snapshot import (
    DailySnapshot,
    MarketTimeseriesPoint,
    MonthlySnapshot,
    ReserveSummary,
)

__all__ = [
    "AaveKitChain",
    "AaveKitMarket",
    "CollectionOutcome",
    "CollectionReport",
    "DailySnapshot",
    "MarketConfig",
    "MarketTimeseriesPoint",
    "MonthlySnapshot",
    "Pool",
    "ProcessingReport",
    "Reserve",
    "ReservePrice",
    "ReserveSummary",
    "ScenarioConfig",
    "ScenarioEntry",
    "StablecoinConfig",
]
