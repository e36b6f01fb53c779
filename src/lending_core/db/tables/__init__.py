"""Import all table modules so Base.metadata knows about them."""

from lending_core.db.tables.snapshots import AssetSnapshotRow, MarketTimeseriesRow, RawSnapshotRow

__all__ = [
    "AssetSnapshotRow",
    "MarketTimeseriesRow",
    "RawSnapshotRow",
]
