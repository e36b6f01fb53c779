"""Normalized reserve state as stored in raw snapshot payloads.

Both upstream clients produce this shape. AaveKit amounts are
human-readable decimals and its prices are USD; subgraph amounts are
on-chain integers, its rates are ray-scaled and its prices go through
``price_from_subgraph_to_usd``. The ``data_source`` on the owning
snapshot says which encoding applies.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReservePrice(_Camel):
    price_in_eth: str


class Reserve(_Camel):
    underlying_asset: str
    symbol: str
    name: str
    decimals: int
    image_url: str | None = None
    current_liquidity_rate: str = "0"
    current_variable_borrow_rate: str = "0"
    total_a_token_supply: str
    total_current_variable_debt: str = "0"
    total_principal_stable_debt: str = "0"
    available_liquidity: str = "0"
    liquidity_index: str = "0"
    variable_borrow_index: str = "0"
    price: ReservePrice
    last_update_timestamp: int = 0
    # Interest-rate curve, only filled by AaveKitClient.query_reserve.
    optimal_usage_rate: str | None = None
    base_variable_borrow_rate: str | None = None
    variable_rate_slope1: str | None = None
    variable_rate_slope2: str | None = None
    reserve_factor: str | None = None

    def to_payload(self) -> dict:
        """Camel-case dict for the raw snapshot ``raw_data`` column."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Pool(_Camel):
    """Subgraph pool entity."""

    id: str
    pool: str


class AaveKitChain(_Camel):
    name: str
    chain_id: int
    icon: str | None = None
    explorer_url: str | None = None
    is_testnet: bool = False


class AaveKitMarket(_Camel):
    id: str
    name: str
    pool_address: str
    chain_id: int
