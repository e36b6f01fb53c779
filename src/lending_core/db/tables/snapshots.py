"""SQLAlchemy ORM models for the lending_data schema."""

import datetime as dt

from sqlalchemy import BigInteger, Date, Numeric, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from lending_core.db.base import Base

SCHEMA = "lending_data"


class RawSnapshotRow(Base):
    """One upstream payload per (market, day, source)."""

    __tablename__ = "raw_snapshots"
    __table_args__ = (
        UniqueConstraint("market_key", "date", "data_source"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    market_key: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    raw_data: Mapped[list] = mapped_column(JSONB, nullable=False)
    data_source: Mapped[str] = mapped_column(Text, nullable=False)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Null until the matching processor has consumed this payload.
    timeseries_processed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assets_processed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class MarketTimeseriesRow(Base):
    """Market-level USD totals for one day and one retention window."""

    __tablename__ = "market_timeseries"
    __table_args__ = (
        UniqueConstraint("market_key", "date", "time_window"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    market_key: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time_window: Mapped[str] = mapped_column(Text, nullable=False)
    total_supplied_usd: Mapped[float] = mapped_column(Numeric, nullable=False)
    total_borrowed_usd: Mapped[float] = mapped_column(Numeric, nullable=False)
    available_liquidity_usd: Mapped[float] = mapped_column(Numeric, nullable=False)
    data_source: Mapped[str] = mapped_column(Text, nullable=False)
    raw_data_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AssetSnapshotRow(Base):
    """Per-reserve daily state: totals, rates, indices."""

    __tablename__ = "asset_snapshots"
    __table_args__ = (
        UniqueConstraint("market_key", "underlying_asset", "date"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    market_key: Mapped[str] = mapped_column(Text, nullable=False)
    underlying_asset: Mapped[str] = mapped_column(Text, nullable=False)
    symbol: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    supplied_tokens: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    borrowed_tokens: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    available_liquidity: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    supply_apr: Mapped[float] = mapped_column(Numeric, nullable=False)
    borrow_apr: Mapped[float] = mapped_column(Numeric, nullable=False)
    total_supplied_usd: Mapped[float] = mapped_column(Numeric, nullable=False)
    total_borrowed_usd: Mapped[float] = mapped_column(Numeric, nullable=False)
    utilization_rate: Mapped[float] = mapped_column(Numeric, nullable=False)
    oracle_price: Mapped[float] = mapped_column(Numeric, nullable=False)
    liquidity_index: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    variable_borrow_index: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    data_source: Mapped[str] = mapped_column(Text, nullable=False)
    raw_data_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
