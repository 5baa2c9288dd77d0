"""
Analytics module for the sleeve allocation system.

Provides drift measurement and regime change detection for the rebalance.
"""

from sleeve_pilot.analytics.drift import (
    calculate_drift,
    confidence_bucket,
    detect_regime_changes,
    target_values_by_parent,
)

__all__ = [
    "calculate_drift",
    "confidence_bucket",
    "detect_regime_changes",
    "target_values_by_parent",
]
