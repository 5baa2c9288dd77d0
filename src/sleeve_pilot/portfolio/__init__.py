"""
Portfolio module for the sleeve allocation system.

Provides NAV and budget computation plus holdings aggregation helpers.
"""

from sleeve_pilot.portfolio.capital import (
    clamp_buy_orders_to_budget,
    compute_budgets,
    compute_confidence_scale,
    compute_nav,
    lookup_exposure_cap,
)
from sleeve_pilot.portfolio.holdings import (
    aggregate_by_parent,
    calculate_market_values,
    calculate_position_weights,
    holdings_by_symbol,
    round_shares,
)

__all__ = [
    "clamp_buy_orders_to_budget",
    "compute_budgets",
    "compute_confidence_scale",
    "compute_nav",
    "lookup_exposure_cap",
    "aggregate_by_parent",
    "calculate_market_values",
    "calculate_position_weights",
    "holdings_by_symbol",
    "round_shares",
]
