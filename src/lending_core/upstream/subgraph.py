"""Aave subgraph client: historical reserve state at a block."""

from __future__ import annotations

import httpx

from lending_core.errors import ConfigurationError
from lending_core.models.reserve import Pool, Reserve, ReservePrice
from lending_core.upstream.graphql import post_graphql
from lending_core.upstream.schemas import SubgraphPoolsData, SubgraphReservesData, SubgraphReserveWire

SOURCE = "subgraph"

POOL_BY_ADDRESS_QUERY = """
query PoolByAddress($poolAddress: String!) {
  pools(where: { pool: $poolAddress }, first: 1) { id pool }
}
"""

RESERVES_AT_BLOCK_QUERY = """
query ReservesAtBlock($poolId: ID!, $block: Block_height!) {
  reserves(where: { pool: $poolId }, block: $block) {
    underlyingAsset
    symbol
    name
    decimals
    totalATokenSupply
    availableLiquidity
    totalCurrentVariableDebt
    totalPrincipalStableDebt
    liquidityIndex
    variableBorrowIndex
    liquidityRate
    variableBorrowRate
    price { priceInEth }
  }
}
"""


def _to_reserve(wire: SubgraphReserveWire) -> Reserve:
    return Reserve(
        underlying_asset=wire.underlying_asset,
        symbol=wire.symbol,
        name=wire.name,
        decimals=wire.decimals,
        current_liquidity_rate=wire.liquidity_rate,
        current_variable_borrow_rate=wire.variable_borrow_rate,
        total_a_token_supply=wire.total_a_token_supply,
        total_current_variable_debt=wire.total_current_variable_debt,
        total_principal_stable_debt=wire.total_principal_stable_debt,
        available_liquidity=wire.available_liquidity,
        liquidity_index=wire.liquidity_index,
        variable_borrow_index=wire.variable_borrow_index,
        price=ReservePrice(price_in_eth=wire.price.price_in_eth),
    )


class SubgraphClient:
    """Async client for subgraph deployments behind The Graph gateway."""

    def __init__(
        self,
        api_key: str | None,
        gateway_url: str = "https://gateway.thegraph.com",
        timeout_s: float = 15.0,
        http: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout_s = timeout_s
        self._http = http

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    def _key(self) -> str:
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError("Graph API key is not set (upstream.graph_api_key / LENDING_GRAPH_API_KEY)")
        return self.api_key.strip()

    def url_for(self, subgraph_id: str) -> str:
        return f"{self.gateway_url}/api/{self._key()}/subgraphs/id/{subgraph_id}"

    async def _query(self, subgraph_id: str, query: str, variables: dict, schema):
        url = self.url_for(subgraph_id)
        http = await self._get_http()
        headers = {"Authorization": f"Bearer {self._key()}"}
        return await post_graphql(http, url, query, variables, schema, SOURCE, headers=headers)

    async def query_pool_by_address(self, subgraph_id: str, pool_address: str) -> Pool | None:
        data = await self._query(
            subgraph_id, POOL_BY_ADDRESS_QUERY, {"poolAddress": pool_address.lower()}, SubgraphPoolsData
        )
        if not data.pools:
            return None
        p = data.pools[0]
        return Pool(id=p.id, pool=p.pool)

    async def query_reserves_at_block(self, subgraph_id: str, pool_id: str, block_number: int) -> list[Reserve]:
        variables = {"poolId": pool_id, "block": {"number": block_number}}
        data = await self._query(subgraph_id, RESERVES_AT_BLOCK_QUERY, variables, SubgraphReservesData)
        return [_to_reserve(r) for r in data.reserves]

    async def query_reserve_at_block(
        self,
        subgraph_id: str,
        pool_id: str,
        underlying_asset: str,
        block_number: int,
    ) -> Reserve | None:
        wanted = underlying_asset.lower()
        for reserve in await self.query_reserves_at_block(subgraph_id, pool_id, block_number):
            if reserve.underlying_asset.lower() == wanted:
                return reserve
        return None
