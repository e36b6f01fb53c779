"""Reference data: market and stablecoin registry entries."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MarketConfig(BaseModel):
    """One lending market (a pool deployment on one chain)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    market_key: str
    display_name: str
    pool_address: str
    subgraph_id: str
    chain_id: int
    rpc_urls: list[str] = Field(default_factory=list)
    url: str | None = None


class StablecoinConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    address: str
    markets: list[str]


class ScenarioEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["Deposit", "Borrow", "Repay", "Withdraw"]
    # USD notional; the file stores it as a decimal string.
    amount: float = Field(gt=0)


class ScenarioConfig(BaseModel):
    """Liquidity-impact scenarios: a default list plus per-reserve overrides keyed by address."""

    default: list[ScenarioEntry] = Field(default_factory=list)
    overrides: dict[str, list[ScenarioEntry]] = Field(default_factory=dict)
