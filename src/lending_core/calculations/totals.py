"""USD totals, price conversion and utilization."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from lending_core.models.reserve import Reserve
from lending_core.utils.numeric import DECIMAL_CTX, from_onchain, ray_to_decimal, to_decimal

PRICE_BASE = Decimal(10) ** 8

DATA_SOURCE_AAVEKIT = "aavekit"
DATA_SOURCE_SUBGRAPH = "subgraph"


def price_to_usd(usd_exchange_rate: str | float) -> float:
    """Convert an AaveKit ``usdExchangeRate`` to a USD price.

    Values >= 1 are already USD. Values below 1 are USD / 1e8 and get
    scaled back up. A genuine price just under 1 is indistinguishable
    from the scaled encoding; the boundary is kept as-is.
    """
    value = to_decimal(usd_exchange_rate)
    if value >= 1:
        return float(value)
    return float(DECIMAL_CTX.multiply(value, PRICE_BASE))


def price_from_subgraph_to_usd(price_in_eth: str | float) -> float:
    """Subgraph prices are USD * 1e8 on mainnet and plain USD on some L2s."""
    value = to_decimal(price_in_eth)
    if value >= Decimal("1e10"):
        return float(DECIMAL_CTX.divide(value, PRICE_BASE))
    return float(value)


def calculate_total_supplied_usd(supplied_tokens: str, decimals: int, price_usd: float) -> float:
    """AaveKit amounts are human-readable; *decimals* is not applied."""
    return float(DECIMAL_CTX.multiply(to_decimal(supplied_tokens), to_decimal(price_usd)))


def calculate_total_borrowed_usd(borrowed_tokens: str, decimals: int, price_usd: float) -> float:
    return float(DECIMAL_CTX.multiply(to_decimal(borrowed_tokens), to_decimal(price_usd)))


def calculate_available_liquidity_usd(available: str, decimals: int, price_usd: float) -> float:
    return float(DECIMAL_CTX.multiply(to_decimal(available), to_decimal(price_usd)))


def calculate_total_supplied_usd_from_subgraph(supplied_tokens: str, decimals: int, price_usd: float) -> float:
    """Subgraph amounts are on-chain integers scaled by ``10 ** decimals``."""
    tokens = from_onchain(supplied_tokens, decimals)
    return float(DECIMAL_CTX.multiply(tokens, to_decimal(price_usd)))


def calculate_total_borrowed_usd_from_subgraph(borrowed_tokens: str, decimals: int, price_usd: float) -> float:
    tokens = from_onchain(borrowed_tokens, decimals)
    return float(DECIMAL_CTX.multiply(tokens, to_decimal(price_usd)))


def calculate_utilization_rate(borrowed: str | float, available: str | float) -> float:
    """borrowed / (borrowed + available), 0 when both are zero."""
    b = to_decimal(borrowed)
    total = b + to_decimal(available)
    if total == 0:
        return 0.0
    return float(DECIMAL_CTX.divide(b, total))


def utilization_from_usd(borrowed_usd: float, supplied_usd: float) -> float:
    if supplied_usd <= 0:
        return 0.0
    return borrowed_usd / supplied_usd


@dataclass
class ReserveTotals:
    """USD view of one reserve, independent of the upstream encoding."""

    underlying_asset: str
    symbol: str
    price_usd: float
    supplied_usd: float
    borrowed_usd: float
    supply_rate: float
    borrow_rate: float

    @property
    def available_usd(self) -> float:
        return self.supplied_usd - self.borrowed_usd

    @property
    def utilization_rate(self) -> float:
        return utilization_from_usd(self.borrowed_usd, self.supplied_usd)


def reserve_totals(reserve: Reserve, data_source: str) -> ReserveTotals:
    """Convert a reserve to USD using the encoding its *data_source* implies."""
    if data_source == DATA_SOURCE_SUBGRAPH:
        price = price_from_subgraph_to_usd(reserve.price.price_in_eth)
        supplied = calculate_total_supplied_usd_from_subgraph(reserve.total_a_token_supply, reserve.decimals, price)
        borrowed = calculate_total_borrowed_usd_from_subgraph(
            reserve.total_current_variable_debt, reserve.decimals, price
        )
        supply_rate = float(ray_to_decimal(reserve.current_liquidity_rate))
        borrow_rate = float(ray_to_decimal(reserve.current_variable_borrow_rate))
    else:
        price = price_to_usd(reserve.price.price_in_eth)
        supplied = calculate_total_supplied_usd(reserve.total_a_token_supply, reserve.decimals, price)
        borrowed = calculate_total_borrowed_usd(reserve.total_current_variable_debt, reserve.decimals, price)
        supply_rate = float(to_decimal(reserve.current_liquidity_rate))
        borrow_rate = float(to_decimal(reserve.current_variable_borrow_rate))
    return ReserveTotals(
        underlying_asset=reserve.underlying_asset.lower(),
        symbol=reserve.symbol,
        price_usd=price,
        supplied_usd=supplied,
        borrowed_usd=borrowed,
        supply_rate=supply_rate,
        borrow_rate=borrow_rate,
    )


@dataclass
class MarketTotals:
    total_supplied_usd: float = 0.0
    total_borrowed_usd: float = 0.0
    asset_count: int = 0

    @property
    def available_liquidity_usd(self) -> float:
        """Always supplied minus borrowed, never an independently summed field."""
        return self.total_supplied_usd - self.total_borrowed_usd


def calculate_market_totals(reserves: Iterable[ReserveTotals]) -> MarketTotals:
    totals = MarketTotals()
    for r in reserves:
        totals.total_supplied_usd += r.supplied_usd
        totals.total_borrowed_usd += r.borrowed_usd
        totals.asset_count += 1
    return totals
