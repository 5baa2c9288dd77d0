"""
Simulation module for the sleeve allocation system.

Steps scripted weekly scenarios through the allocation cycle.
"""

from sleeve_pilot.simulation.engine import (
    PRESET_SCENARIOS,
    ScenarioWeek,
    SimulationConfig,
    SimulationEngine,
    SimulationResult,
    build_scenario,
)
from sleeve_pilot.simulation.metrics import SimulationMetrics, calculate_metrics

__all__ = [
    "PRESET_SCENARIOS",
    "ScenarioWeek",
    "SimulationConfig",
    "SimulationEngine",
    "SimulationResult",
    "build_scenario",
    "SimulationMetrics",
    "calculate_metrics",
]
