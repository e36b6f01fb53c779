"""Pure calculation functions: no DB, no network."""

from lending_core.calculations.apr import (
    calculate_30d_apr_series,
    calculate_30d_apr_stats,
    calculate_apr_from_indices,
    calculate_average_apr,
    calculate_average_lending_rates,
)
from lending_core.calculations.liquidity_impact import (
    RateCurveParams,
    ReserveState,
    Scenario,
    calculate_liquidity_impact,
)
from lending_core.calculations.snapshots import aggregate_monthly_snapshots
from lending_core.calculations.stablecoins import aggregate_stablecoins
from lending_core.calculations.totals import (
    calculate_market_totals,
    calculate_total_borrowed_usd,
    calculate_total_borrowed_usd_from_subgraph,
    calculate_total_supplied_usd,
    calculate_total_supplied_usd_from_subgraph,
    calculate_utilization_rate,
    price_from_subgraph_to_usd,
    price_to_usd,
)
from lending_core.calculations.trends import compute_trend_changes

__all__ = [
    "RateCurveParams",
    "ReserveState",
    "Scenario",
    "aggregate_monthly_snapshots",
    "aggregate_stablecoins",
    "calculate_30d_apr_series",
    "calculate_30d_apr_stats",
    "calculate_apr_from_indices",
    "calculate_average_apr",
    "calculate_average_lending_rates",
    "calculate_liquidity_impact",
    "calculate_market_totals",
    "calculate_total_borrowed_usd",
    "calculate_total_borrowed_usd_from_subgraph",
    "calculate_total_supplied_usd",
    "calculate_total_supplied_usd_from_subgraph",
    "calculate_utilization_rate",
    "compute_trend_changes",
    "price_from_subgraph_to_usd",
    "price_to_usd",
]
