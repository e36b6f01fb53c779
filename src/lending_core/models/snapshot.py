"""Daily and monthly per-reserve snapshot models."""

from __future__ import annotations

from pydantic import BaseModel


class DailySnapshot(BaseModel):
    """One reserve on one day, as read back from asset snapshots."""

    date: str  # YYYY-MM-DD
    timestamp: int
    block_number: int | None = None
    supply_apr: float
    borrow_apr: float
    total_supplied_usd: float
    total_borrowed_usd: float
    utilization_rate: float
    price: float
    liquidity_index: str = "0"
    variable_borrow_index: str = "0"


class MonthlySnapshot(BaseModel):
    month: str  # YYYY-MM
    start_date: str
    end_date: str
    avg_supply_apr: float
    avg_borrow_apr: float
    start_total_supplied_usd: float
    end_total_supplied_usd: float
    start_total_borrowed_usd: float
    end_total_borrowed_usd: float
    start_utilization_rate: float
    end_utilization_rate: float
    avg_price: float


class MarketTimeseriesPoint(BaseModel):
    date: str
    total_supplied_usd: float
    total_borrowed_usd: float
    available_liquidity_usd: float
    data_source: str | None = None


class ReserveSummary(BaseModel):
    """Latest known state of one reserve in one market."""

    market_key: str
    underlying_asset: str
    symbol: str
    name: str = ""
    decimals: int = 18
    image_url: str | None = None
    date: str
    supplied_tokens: str = "0"
    borrowed_tokens: str = "0"
    available_liquidity: str = "0"
    supply_apr: float
    borrow_apr: float
    utilization_rate: float
    oracle_price: float
    total_supplied_usd: float
    total_borrowed_usd: float
    data_source: str
