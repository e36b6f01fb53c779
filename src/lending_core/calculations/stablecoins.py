"""Cross-market stablecoin aggregation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lending_core.logging import get_logger
from lending_core.models.snapshot import ReserveSummary

if TYPE_CHECKING:
    from lending_core.registry import Registry

log = get_logger(__name__)


@dataclass
class StablecoinMarketRow:
    market_key: str
    market_name: str
    supplied_tokens: str
    borrowed_tokens: str
    supply_apr: float
    borrow_apr: float
    utilization_rate: float
    total_supplied_usd: float
    total_borrowed_usd: float


@dataclass
class AggregatedStablecoin:
    symbol: str
    address: str
    name: str = ""
    decimals: int = 18
    image_url: str | None = None
    markets: list[StablecoinMarketRow] = field(default_factory=list)
    total_supplied_usd: float = 0.0
    total_borrowed_usd: float = 0.0

    @property
    def market_keys(self) -> list[str]:
        return [m.market_key for m in self.markets]


def aggregate_stablecoins(
    registry: Registry,
    reserves_by_market: Mapping[str, Sequence[ReserveSummary]],
) -> list[AggregatedStablecoin]:
    """One row per distinct (symbol, address) with per-market breakdown.

    Markets unknown to the registry, absent from *reserves_by_market*, or
    not listing the coin are skipped with a warning.
    """
    rows: dict[tuple[str, str], AggregatedStablecoin] = {}
    for coin in registry.stablecoins:
        address = coin.address.lower()
        agg = rows.setdefault((coin.symbol, address), AggregatedStablecoin(symbol=coin.symbol, address=address))

        for market_key in coin.markets:
            if not registry.has_market(market_key):
                log.warning("stablecoin_market_unknown", symbol=coin.symbol, market=market_key)
                continue
            reserve = next(
                (r for r in reserves_by_market.get(market_key, ()) if r.underlying_asset.lower() == address),
                None,
            )
            if reserve is None:
                log.warning("stablecoin_reserve_missing", symbol=coin.symbol, market=market_key)
                continue

            agg.markets.append(
                StablecoinMarketRow(
                    market_key=market_key,
                    market_name=registry.get_market(market_key).display_name,
                    supplied_tokens=reserve.supplied_tokens,
                    borrowed_tokens=reserve.borrowed_tokens,
                    supply_apr=reserve.supply_apr,
                    borrow_apr=reserve.borrow_apr,
                    utilization_rate=reserve.utilization_rate,
                    total_supplied_usd=reserve.total_supplied_usd,
                    total_borrowed_usd=reserve.total_borrowed_usd,
                )
            )
            agg.total_supplied_usd += reserve.total_supplied_usd
            agg.total_borrowed_usd += reserve.total_borrowed_usd
            if not agg.name:
                agg.name = reserve.name
                agg.decimals = reserve.decimals
                agg.image_url = reserve.image_url
    return list(rows.values())
