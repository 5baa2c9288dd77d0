"""
Risk module for the sleeve allocation system.

Validates proposed orders against per-run limits.
"""

from sleeve_pilot.risk.engine import evaluate_risk
from sleeve_pilot.risk.rules import DEFAULT_RULES, RiskContext

__all__ = [
    "evaluate_risk",
    "DEFAULT_RULES",
    "RiskContext",
]
