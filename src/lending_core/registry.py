"""Market, stablecoin and liquidity-scenario reference data, loaded once at startup."""

from __future__ import annotations

from pathlib import Path

from pydantic import TypeAdapter

from lending_core.calculations.liquidity_impact import Scenario, default_scenarios
from lending_core.errors import ErrorCode, ValidationError
from lending_core.models.market import MarketConfig, ScenarioConfig, StablecoinConfig

_markets_adapter = TypeAdapter(list[MarketConfig])
_stablecoins_adapter = TypeAdapter(list[StablecoinConfig])


class Registry:
    """Read-only lookup over the configured markets, stablecoins and scenarios."""

    def __init__(
        self,
        markets: list[MarketConfig],
        stablecoins: list[StablecoinConfig] | None = None,
        scenarios: ScenarioConfig | None = None,
    ) -> None:
        self._markets = {m.market_key: m for m in markets}
        self.stablecoins: list[StablecoinConfig] = list(stablecoins or [])
        self.scenarios = scenarios or ScenarioConfig()
        self._scenario_overrides = {k.lower(): v for k, v in self.scenarios.overrides.items()}

    @classmethod
    def from_files(
        cls,
        markets_path: str | Path,
        stablecoins_path: str | Path | None = None,
        scenarios_path: str | Path | None = None,
    ) -> Registry:
        markets = _markets_adapter.validate_json(Path(markets_path).read_bytes())
        stablecoins: list[StablecoinConfig] = []
        if stablecoins_path is not None and Path(stablecoins_path).exists():
            stablecoins = _stablecoins_adapter.validate_json(Path(stablecoins_path).read_bytes())
        scenarios = None
        if scenarios_path is not None and Path(scenarios_path).exists():
            scenarios = ScenarioConfig.model_validate_json(Path(scenarios_path).read_bytes())
        return cls(markets, stablecoins, scenarios)

    @property
    def markets(self) -> list[MarketConfig]:
        return list(self._markets.values())

    def market_keys(self) -> list[str]:
        return list(self._markets)

    def has_market(self, market_key: str) -> bool:
        return market_key in self._markets

    def get_market(self, market_key: str) -> MarketConfig:
        """Return the market or raise ValidationError(INVALID_MARKET)."""
        market = self._markets.get(market_key)
        if market is None:
            raise ValidationError(ErrorCode.INVALID_MARKET, f"Unknown market: {market_key!r}")
        return market

    def stablecoin_by_address(self, address: str) -> StablecoinConfig | None:
        address = address.lower()
        for coin in self.stablecoins:
            if coin.address.lower() == address:
                return coin
        return None

    def stablecoins_for_market(self, market_key: str) -> list[StablecoinConfig]:
        return [s for s in self.stablecoins if market_key in s.markets]

    def is_stablecoin(self, address: str) -> bool:
        return self.stablecoin_by_address(address) is not None

    def scenarios_for(self, address: str) -> list[Scenario]:
        """The reserve's override list, else the configured default, else the built-in amounts."""
        entries = self._scenario_overrides.get(address.lower()) or self.scenarios.default
        if not entries:
            return default_scenarios()
        return [Scenario(action=e.action, amount_usd=e.amount) for e in entries]
