"""
Decision logging module for the sleeve allocation system.

Provides append-only decision logging for audit and reproducibility.
"""

from sleeve_pilot.logging.decision_log import DecimalEncoder, DecisionLogger

__all__ = [
    "DecimalEncoder",
    "DecisionLogger",
]
