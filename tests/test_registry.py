"""Tests for the market / stablecoin registry."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from lending_core.errors import ErrorCode, ValidationError
from lending_core.models.market import ScenarioConfig, ScenarioEntry
from lending_core.registry import Registry

from conftest import USDC

DATA = Path(__file__).resolve().parent.parent / "data"


class TestRegistry:
    def test_lookup(self, registry):
        assert registry.market_keys() == ["ethereum-v3", "arbitrum-v3", "base-v3"]
        assert registry.has_market("base-v3")
        assert registry.get_market("ethereum-v3").subgraph_id == "sg-eth"

    def test_unknown_market(self, registry):
        with pytest.raises(ValidationError) as exc:
            registry.get_market("moon-v9")
        assert exc.value.code == ErrorCode.INVALID_MARKET

    def test_stablecoins(self, registry):
        assert registry.is_stablecoin(USDC.upper().replace("0X", "0x"))
        assert not registry.is_stablecoin("0x" + "1" * 40)
        assert [s.symbol for s in registry.stablecoins_for_market("arbitrum-v3")] == ["USDC"]
        assert registry.stablecoins_for_market("base-v3") == []

    def test_from_files(self, tmp_path):
        markets = tmp_path / "markets.json"
        markets.write_text(json.dumps([
            {
                "marketKey": "test-v3",
                "displayName": "Test V3",
                "poolAddress": "0x" + "a" * 40,
                "subgraphId": "",
                "chainId": 10,
            }
        ]))
        reg = Registry.from_files(markets, tmp_path / "missing.json")
        assert reg.get_market("test-v3").chain_id == 10
        assert reg.stablecoins == []

    def test_from_files_with_scenarios(self, tmp_path):
        markets = tmp_path / "markets.json"
        markets.write_text("[]")
        scenarios = tmp_path / "scenarios.json"
        scenarios.write_text(json.dumps({
            "default": [{"action": "Deposit", "amount": "5000000"}],
            "overrides": {USDC: [{"action": "Withdraw", "amount": "1000"}]},
        }))
        reg = Registry.from_files(markets, None, scenarios)
        [scenario] = reg.scenarios_for(USDC)
        assert (scenario.action, scenario.amount_usd) == ("Withdraw", 1000)
        [fallback] = reg.scenarios_for("0x" + "1" * 40)
        assert (fallback.action, fallback.amount_usd) == ("Deposit", 5_000_000)

    def test_missing_scenarios_file_uses_builtin_amounts(self, tmp_path):
        markets = tmp_path / "markets.json"
        markets.write_text("[]")
        reg = Registry.from_files(markets, None, tmp_path / "missing.json")
        scenarios = reg.scenarios_for(USDC)
        assert len(scenarios) == 8
        assert (scenarios[0].action, scenarios[0].amount_usd) == ("Deposit", 100_000_000)
        assert (scenarios[1].action, scenarios[1].amount_usd) == ("Borrow", 100_000_000)

    def test_override_lookup_ignores_address_case(self):
        mixed_case = USDC.upper().replace("0X", "0x")
        overrides = {mixed_case: [ScenarioEntry(action="Borrow", amount=1)]}
        reg = Registry([], scenarios=ScenarioConfig(overrides=overrides))
        assert [s.action for s in reg.scenarios_for(USDC)] == ["Borrow"]

    def test_bad_scenario_action_rejected(self):
        with pytest.raises(ValueError):
            ScenarioConfig.model_validate({"default": [{"action": "Stake", "amount": "1"}]})

    def test_shipped_data_loads(self):
        reg = Registry.from_files(DATA / "markets.json", DATA / "stablecoins.json")
        assert reg.has_market("ethereum-v3")
        assert reg.get_market("ethereum-v3").subgraph_id
        for coin in reg.stablecoins:
            for key in coin.markets:
                assert reg.has_market(key), f"{coin.symbol} lists unknown market {key}"
        reg = Registry.from_files(
            DATA / "markets.json", DATA / "stablecoins.json", DATA / "liquidity_impact_scenarios.json"
        )
        assert {s.action for s in reg.scenarios_for(USDC)} == {"Deposit", "Borrow"}
