"""What-if utilization and rate changes under a two-slope rate curve."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from lending_core.calculations.totals import calculate_utilization_rate
from lending_core.models.reserve import Reserve

Action = Literal["Deposit", "Borrow", "Repay", "Withdraw"]

ACTIONS: tuple[str, ...] = ("Deposit", "Borrow", "Repay", "Withdraw")

DEFAULT_SCENARIO_AMOUNTS_USD = (100_000_000, 250_000_000, 500_000_000, 1_000_000_000)


@dataclass(frozen=True)
class RateCurveParams:
    optimal_utilization: float = 0.8
    base_rate: float = 0.0
    slope1: float = 0.04
    slope2: float = 0.75

    @classmethod
    def from_reserve(cls, reserve: Reserve) -> RateCurveParams:
        """Curve from AaveKit reserve parameters, defaults for missing fields."""
        defaults = cls()

        def pick(value: str | None, default: float) -> float:
            return float(value) if value not in (None, "") else default

        return cls(
            optimal_utilization=pick(reserve.optimal_usage_rate, defaults.optimal_utilization),
            base_rate=pick(reserve.base_variable_borrow_rate, defaults.base_rate),
            slope1=pick(reserve.variable_rate_slope1, defaults.slope1),
            slope2=pick(reserve.variable_rate_slope2, defaults.slope2),
        )


@dataclass
class ReserveState:
    borrowed_usd: float
    available_usd: float
    supply_apr: float | None = None
    borrow_apr: float | None = None


@dataclass
class Scenario:
    action: Action
    amount_usd: float


@dataclass
class LiquidityImpactResult:
    action: str
    amount_usd: float
    new_utilization: float
    new_supply_apr: float
    new_borrow_apr: float
    delta_utilization: float
    delta_supply_apr: float
    delta_borrow_apr: float


def rates_at_utilization(utilization: float, params: RateCurveParams) -> tuple[float, float]:
    """Return ``(supply_apr, borrow_apr)`` at *utilization*.

    Supply APR is borrow APR times utilization; no reserve factor is applied.
    """
    opt = params.optimal_utilization
    if utilization <= opt:
        borrow = params.base_rate + params.slope1 * (utilization / opt if opt > 0 else 0.0)
    else:
        excess = (utilization - opt) / (1 - opt) if opt < 1 else 0.0
        borrow = params.base_rate + params.slope1 + params.slope2 * excess
    return borrow * utilization, borrow


def apply_action(borrowed: float, available: float, scenario: Scenario) -> tuple[float, float]:
    amount = scenario.amount_usd
    if scenario.action == "Deposit":
        return borrowed, available + amount
    if scenario.action == "Borrow":
        return borrowed + amount, available - amount
    if scenario.action == "Repay":
        return borrowed - amount, available + amount
    if scenario.action == "Withdraw":
        return borrowed, available - amount
    raise ValueError(f"unknown action {scenario.action!r}; expected one of {ACTIONS}")


def _clamp(u: float) -> float:
    return max(0.0, min(1.0, u))


def calculate_liquidity_impact(
    current: ReserveState,
    scenario: Scenario,
    params: RateCurveParams | None = None,
) -> LiquidityImpactResult:
    params = params or RateCurveParams()
    current_u = _clamp(calculate_utilization_rate(current.borrowed_usd, current.available_usd))
    if current.supply_apr is None or current.borrow_apr is None:
        curve_supply, curve_borrow = rates_at_utilization(current_u, params)
        current_supply = curve_supply if current.supply_apr is None else current.supply_apr
        current_borrow = curve_borrow if current.borrow_apr is None else current.borrow_apr
    else:
        current_supply, current_borrow = current.supply_apr, current.borrow_apr

    new_borrowed, new_available = apply_action(current.borrowed_usd, current.available_usd, scenario)
    new_u = _clamp(calculate_utilization_rate(new_borrowed, new_available))
    supply, borrow = rates_at_utilization(new_u, params)

    return LiquidityImpactResult(
        action=scenario.action,
        amount_usd=scenario.amount_usd,
        new_utilization=new_u,
        new_supply_apr=supply,
        new_borrow_apr=borrow,
        delta_utilization=new_u - current_u,
        delta_supply_apr=supply - current_supply,
        delta_borrow_apr=borrow - current_borrow,
    )


def default_scenarios() -> list[Scenario]:
    """Deposit and Borrow at each default amount, smallest first."""
    return [
        Scenario(action=action, amount_usd=amount)
        for amount in DEFAULT_SCENARIO_AMOUNTS_USD
        for action in ("Deposit", "Borrow")
    ]
