"""
Trading module for the sleeve allocation system.

Provides whole-share target planning and the drift-gated core rebalance.
"""

from sleeve_pilot.trading.planner import normalize_weights, plan_whole_share_execution
from sleeve_pilot.trading.rebalance import RebalanceRequest, rebalance_portfolio

__all__ = [
    "normalize_weights",
    "plan_whole_share_execution",
    "RebalanceRequest",
    "rebalance_portfolio",
]
