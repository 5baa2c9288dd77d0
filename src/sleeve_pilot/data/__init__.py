"""
Data ingestion module for the sleeve allocation system.

Provides functionality for loading holdings, quotes, target weights, option
positions and regime snapshots, and for saving run outputs.
"""

from sleeve_pilot.data.loaders import (
    DataLoadError,
    load_holdings,
    load_option_positions,
    load_quotes,
    load_regimes,
    load_sleeve_positions,
    load_targets,
    save_orders,
    save_simulation_weeks,
    save_sleeve_positions,
)
from sleeve_pilot.data.schemas import (
    HOLDINGS_SCHEMA,
    OPTION_POSITIONS_SCHEMA,
    QUOTES_SCHEMA,
    TARGETS_SCHEMA,
)

__all__ = [
    "DataLoadError",
    "load_holdings",
    "load_option_positions",
    "load_quotes",
    "load_regimes",
    "load_sleeve_positions",
    "load_targets",
    "save_orders",
    "save_simulation_weeks",
    "save_sleeve_positions",
    "HOLDINGS_SCHEMA",
    "OPTION_POSITIONS_SCHEMA",
    "QUOTES_SCHEMA",
    "TARGETS_SCHEMA",
]
