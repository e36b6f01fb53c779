"""Collectors that populate the raw snapshot ledger."""

from lending_core.collectors.aavekit import AaveKitCollector, CollectorSettings

__all__ = ["AaveKitCollector", "CollectorSettings"]
