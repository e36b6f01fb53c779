"""Wire schemas for upstream GraphQL responses.

Each response is validated here, at the client boundary, and then
mapped onto ``lending_core.models.reserve.Reserve``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Wire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


# --- AaveKit ---


class Value(_Wire):
    value: str


class Amount(_Wire):
    amount: Value


class UnderlyingToken(_Wire):
    address: str
    symbol: str
    name: str
    decimals: int
    image_url: str | None = None


class SupplyInfo(_Wire):
    apy: Value
    total: Value


class BorrowInfo(_Wire):
    apy: Value
    total: Amount
    available_liquidity: Amount


class AaveKitReserveWire(_Wire):
    underlying_token: UnderlyingToken
    supply_info: SupplyInfo
    borrow_info: BorrowInfo | None = None
    size: Amount
    usd_exchange_rate: str


class MarketReserves(_Wire):
    reserves: list[AaveKitReserveWire]


class ReservesData(_Wire):
    market: MarketReserves | None = None


class ChainWire(_Wire):
    name: str
    chain_id: int
    icon: str | None = None
    explorer_url: str | None = None
    is_testnet: bool = False


class ChainsData(_Wire):
    chains: list[ChainWire]


class MarketChain(_Wire):
    chain_id: int
    name: str


class MarketWire(_Wire):
    name: str
    address: str
    chain: MarketChain


class MarketsData(_Wire):
    markets: list[MarketWire]


class RateParams(_Wire):
    optimal_usage_rate: Value
    base_variable_borrow_rate: Value
    variable_rate_slope1: Value
    variable_rate_slope2: Value
    reserve_factor: Value


class ReserveParamsBody(_Wire):
    borrow_info: RateParams | None = None


class ReserveParamsData(_Wire):
    reserve: ReserveParamsBody | None = None


# --- Subgraph ---


class SubgraphPrice(_Wire):
    price_in_eth: str


class SubgraphReserveWire(_Wire):
    underlying_asset: str
    symbol: str
    name: str
    decimals: int
    total_a_token_supply: str
    available_liquidity: str = "0"
    total_current_variable_debt: str = "0"
    total_principal_stable_debt: str = "0"
    liquidity_index: str = "0"
    variable_borrow_index: str = "0"
    liquidity_rate: str = "0"
    variable_borrow_rate: str = "0"
    price: SubgraphPrice


class SubgraphReservesData(_Wire):
    reserves: list[SubgraphReserveWire] = []


class SubgraphPoolWire(_Wire):
    id: str
    pool: str


class SubgraphPoolsData(_Wire):
    pools: list[SubgraphPoolWire] = []


# --- JSON-RPC ---


class RpcBlock(_Wire):
    number: str
    timestamp: str

    @property
    def block_number(self) -> int:
        return int(self.number, 16)

    @property
    def unix_timestamp(self) -> int:
        return int(self.timestamp, 16)
