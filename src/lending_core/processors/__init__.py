"""Raw snapshot processors."""

from lending_core.processors.asset import AssetProcessor
from lending_core.processors.market import MarketProcessor

__all__ = ["AssetProcessor", "MarketProcessor"]
