"""AaveKit GraphQL client: current reserve state per market."""

from __future__ import annotations

import re

import httpx

from lending_core.errors import UpstreamError
from lending_core.logging import get_logger
from lending_core.models.market import MarketConfig
from lending_core.models.reserve import AaveKitChain, AaveKitMarket, Reserve, ReservePrice
from lending_core.upstream.graphql import post_graphql
from lending_core.upstream.schemas import (
    AaveKitReserveWire,
    ChainsData,
    MarketsData,
    ReserveParamsData,
    ReservesData,
)

log = get_logger(__name__)

SOURCE = "aavekit"

CHAINS_QUERY = """
query Chains($filter: ChainsFilter!) {
  chains(filter: $filter) { name chainId icon explorerUrl isTestnet }
}
"""

MARKETS_QUERY = """
query Markets($request: MarketsRequest!) {
  markets(request: $request) { name address chain { chainId name } }
}
"""

RESERVES_QUERY = """
query Reserves($request: MarketRequest!) {
  market(request: $request) {
    reserves {
      underlyingToken { address symbol name decimals imageUrl }
      supplyInfo { apy { value } total { value } }
      borrowInfo {
        apy { value }
        total { amount { value } }
        availableLiquidity { amount { value } }
      }
      size { amount { value } }
      usdExchangeRate
    }
  }
}
"""

RESERVE_PARAMS_QUERY = """
query ReserveParams($reserveRequest: ReserveRequest!) {
  reserve(request: $reserveRequest) {
    borrowInfo {
      optimalUsageRate { value }
      baseVariableBorrowRate { value }
      variableRateSlope1 { value }
      variableRateSlope2 { value }
      reserveFactor { value }
    }
  }
}
"""


def market_id_for_chain(chain_name: str) -> str:
    """'Arbitrum One' -> 'arbitrum-one-v3'."""
    return re.sub(r"\s+", "-", chain_name.lower()) + "-v3"


def _to_reserve(wire: AaveKitReserveWire) -> Reserve:
    borrow = wire.borrow_info
    return Reserve(
        underlying_asset=wire.underlying_token.address,
        symbol=wire.underlying_token.symbol,
        name=wire.underlying_token.name,
        decimals=wire.underlying_token.decimals,
        image_url=wire.underlying_token.image_url,
        current_liquidity_rate=wire.supply_info.apy.value,
        current_variable_borrow_rate=borrow.apy.value if borrow else "0",
        total_a_token_supply=wire.supply_info.total.value,
        total_current_variable_debt=borrow.total.amount.value if borrow else "0",
        available_liquidity=(borrow.available_liquidity.amount.value if borrow else wire.size.amount.value),
        # AaveKit does not expose indices or an update timestamp.
        liquidity_index="0",
        variable_borrow_index="0",
        price=ReservePrice(price_in_eth=wire.usd_exchange_rate),
        last_update_timestamp=0,
    )


class AaveKitClient:
    """Async client for the AaveKit aggregation API."""

    def __init__(
        self,
        base_url: str = "https://api.v3.aave.com/graphql",
        timeout_s: float = 15.0,
        http: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._http = http

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def _query(self, query: str, variables: dict, schema):
        http = await self._get_http()
        return await post_graphql(http, self.base_url, query, variables, schema, SOURCE)

    async def query_chains(self, filter: str = "MAINNET_ONLY") -> list[AaveKitChain]:
        data = await self._query(CHAINS_QUERY, {"filter": filter}, ChainsData)
        return [AaveKitChain.model_validate(c.model_dump()) for c in data.chains]

    async def query_markets(self, chain_ids: list[int] | None = None) -> list[AaveKitMarket]:
        """List v3 markets; all mainnet chains when *chain_ids* is empty."""
        if not chain_ids:
            chain_ids = [c.chain_id for c in await self.query_chains("MAINNET_ONLY")]
        data = await self._query(MARKETS_QUERY, {"request": {"chainIds": chain_ids}}, MarketsData)
        return [
            AaveKitMarket(
                id=market_id_for_chain(m.chain.name),
                name=m.name,
                pool_address=m.address,
                chain_id=m.chain.chain_id,
            )
            for m in data.markets
        ]

    async def query_reserves(self, market: MarketConfig) -> list[Reserve]:
        """Current reserves of *market*; empty when AaveKit returns no market."""
        variables = {"request": {"address": market.pool_address, "chainId": market.chain_id}}
        data = await self._query(RESERVES_QUERY, variables, ReservesData)
        if data.market is None:
            return []
        return [_to_reserve(r) for r in data.market.reserves]

    async def query_reserve(self, market: MarketConfig, underlying_asset: str) -> Reserve | None:
        """One reserve with its interest-rate curve parameters.

        A failed parameter lookup is logged and the reserve is returned
        without parameters.
        """
        wanted = underlying_asset.lower()
        reserve = next(
            (r for r in await self.query_reserves(market) if r.underlying_asset.lower() == wanted),
            None,
        )
        if reserve is None:
            return None

        variables = {
            "reserveRequest": {
                "market": market.pool_address,
                "underlyingToken": underlying_asset,
                "chainId": market.chain_id,
            }
        }
        try:
            params = await self._query(RESERVE_PARAMS_QUERY, variables, ReserveParamsData)
        except UpstreamError:
            log.warning("reserve_params_failed", market=market.market_key, asset=wanted, exc_info=True)
            return reserve

        info = params.reserve.borrow_info if params.reserve else None
        if info is None:
            log.warning("reserve_params_missing", market=market.market_key, asset=wanted)
            return reserve
        return reserve.model_copy(
            update={
                "optimal_usage_rate": info.optimal_usage_rate.value,
                "base_variable_borrow_rate": info.base_variable_borrow_rate.value,
                "variable_rate_slope1": info.variable_rate_slope1.value,
                "variable_rate_slope2": info.variable_rate_slope2.value,
                "reserve_factor": info.reserve_factor.value,
            }
        )
