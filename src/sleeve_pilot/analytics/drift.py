"""
Drift analysis of the core sleeve against its execution plan.

Positions are compared per proxy parent, so holding QQQ against a plan that
buys QQQM counts as on target. Also detects regime changes between runs.
"""

from decimal import Decimal
from typing import Any, Optional

from sleeve_pilot.config import ProxyMap
from sleeve_pilot.models import (
    DriftSnapshot,
    ExecutionPlan,
    ParentDrift,
    RegimeContext,
)
from sleeve_pilot.portfolio.holdings import aggregate_by_parent


def target_values_by_parent(
    plan: ExecutionPlan,
    proxy_map: Optional[ProxyMap] = None,
) -> dict[str, Decimal]:
    """
    Planned notional per proxy parent.

    Args:
        plan: Execution plan with whole-share positions
        proxy_map: Parent/proxy lookup

    Returns:
        Dictionary mapping parent symbol to planned value
    """
    values = {}
    for position in plan.positions:
        values[position.symbol] = values.get(position.symbol, Decimal("0")) + position.est_notional
    return aggregate_by_parent(values, proxy_map)


def calculate_drift(
    current_values: dict[str, Decimal],
    target_values: dict[str, Decimal],
    cash: Decimal,
) -> DriftSnapshot:
    """
    Measure portfolio- and position-level drift.

    Weights are fractions of total equity (cash plus current invested value).

    Args:
        current_values: Current market value per parent
        target_values: Target value per parent
        cash: Cash balance

    Returns:
        DriftSnapshot with positions sorted by drift magnitude, largest first
    """
    invested = sum(current_values.values(), Decimal("0"))
    target_invested = sum(target_values.values(), Decimal("0"))
    total_equity = cash + invested

    if total_equity <= 0:
        return DriftSnapshot(
            total_equity=total_equity,
            current_invested_pct=Decimal("0"),
            target_invested_pct=Decimal("0"),
            portfolio_drift=Decimal("0"),
        )

    current_pct = invested / total_equity
    target_pct = target_invested / total_equity

    positions = []
    for parent in set(current_values) | set(target_values):
        positions.append(
            ParentDrift(
                parent=parent,
                current_weight=current_values.get(parent, Decimal("0")) / total_equity,
                target_weight=target_values.get(parent, Decimal("0")) / total_equity,
            )
        )
    positions.sort(key=lambda p: (-p.drift, p.parent))

    return DriftSnapshot(
        total_equity=total_equity,
        current_invested_pct=current_pct,
        target_invested_pct=target_pct,
        portfolio_drift=abs(current_pct - target_pct),
        positions=positions,
    )


def confidence_bucket(confidence: float) -> str:
    """Coarse bucket of an equity confidence: low, mid or high."""
    if confidence < 0.35:
        return "low"
    if confidence < 0.6:
        return "mid"
    return "high"


def _lookup(data: dict[str, Any], dotted_key: str) -> Any:
    value: Any = data
    for part in dotted_key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def detect_regime_changes(
    regimes: Optional[RegimeContext],
    prior_regimes: Optional[RegimeContext],
    keys: list[str],
) -> list[str]:
    """
    List the regime keys whose value changed since the prior run.

    The equity confidence bucket is always compared as well. Nothing is
    reported when either side is missing.

    Args:
        regimes: Current regime context
        prior_regimes: Regime context of the previous run
        keys: Dotted paths into RegimeContext.to_dict()

    Returns:
        Changed keys (plus "equity_regime.confidence_bucket" when it moved)
    """
    if regimes is None or prior_regimes is None:
        return []

    current = regimes.to_dict()
    prior = prior_regimes.to_dict()
    changed = [key for key in keys if _lookup(current, key) != _lookup(prior, key)]

    if confidence_bucket(regimes.equity_regime.confidence) != confidence_bucket(
        prior_regimes.equity_regime.confidence
    ):
        changed.append("equity_regime.confidence_bucket")
    return changed
