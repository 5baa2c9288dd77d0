"""
Option sleeves module for the sleeve allocation system.

Provides the insurance/growth arbitrator, the option sleeve state machine,
contract selection, sleeve state persistence and the dislocation overlay
hooks.
"""

from sleeve_pilot.sleeves.arbitration import arbitrate_sleeves
from sleeve_pilot.sleeves.contracts import OptionChainError, OptionChainProvider
from sleeve_pilot.sleeves.dislocation import (
    derive_lifecycle_permissions,
    reconcile_sleeve_positions,
)
from sleeve_pilot.sleeves.planner import (
    GROWTH_PROFILE,
    INSURANCE_PROFILE,
    OptionSleevePlanner,
    SleevePlanInputs,
    plan_growth_sleeve,
    plan_insurance_sleeve,
)
from sleeve_pilot.sleeves.state import (
    InMemoryStateStore,
    JsonFileStateStore,
    SleeveStateStore,
)
from sleeve_pilot.sleeves.underlying import select_options_underlying

__all__ = [
    "arbitrate_sleeves",
    "OptionChainError",
    "OptionChainProvider",
    "derive_lifecycle_permissions",
    "reconcile_sleeve_positions",
    "GROWTH_PROFILE",
    "INSURANCE_PROFILE",
    "OptionSleevePlanner",
    "SleevePlanInputs",
    "plan_growth_sleeve",
    "plan_insurance_sleeve",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "SleeveStateStore",
    "select_options_underlying",
]
