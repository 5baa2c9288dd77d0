"""
Arbitration between the insurance (puts) and growth (calls) sleeves.

At most one of the two option sleeves may be allowed in a run. Insurance
takes priority: it is allowed under a dislocation or a risk-off equity
regime, while growth needs a calm, confident risk-on market with no
dislocation.
"""

from decimal import Decimal
from typing import Optional

from sleeve_pilot.config import ArbitrationConfig
from sleeve_pilot.models import (
    RegimeContext,
    SleeveAllowance,
    SleeveArbitrationResult,
)


def arbitrate_sleeves(
    dislocation_active: bool,
    regimes: RegimeContext,
    config: Optional[ArbitrationConfig] = None,
) -> SleeveArbitrationResult:
    """
    Decide which option sleeve may operate this run.

    Args:
        dislocation_active: Whether the dislocation overlay is engaged
        regimes: Current regime context
        config: Arbitration settings (defaults used when omitted)

    Returns:
        SleeveArbitrationResult; insurance and growth are never both allowed
    """
    config = config or ArbitrationConfig()
    equity = regimes.equity_regime
    vol = regimes.vol_regime
    reasons: list[str] = []

    if dislocation_active:
        reasons.append("Dislocation active: insurance allowed, growth blocked")
    if equity.label == "risk_off":
        reasons.append("Equity regime risk_off: insurance allowed")

    stressed_vol = config.insurance_on_stressed_vol and vol.label == "stressed"
    if stressed_vol:
        reasons.append("Volatility stressed: insurance allowed")

    insurance = dislocation_active or equity.label == "risk_off" or stressed_vol

    confident = Decimal(str(equity.confidence)) >= config.growth_min_confidence
    growth = (
        not dislocation_active
        and equity.label == "risk_on"
        and vol.label == "low"
        and confident
    )
    if growth:
        reasons.append(
            f"Risk-on with low volatility (confidence {equity.confidence:.2f}): growth allowed"
        )
    elif not dislocation_active and equity.label == "risk_on":
        if vol.label != "low":
            reasons.append(f"Growth blocked: volatility {vol.label}")
        if not confident:
            reasons.append(
                f"Growth blocked: equity confidence {equity.confidence:.2f} "
                f"< {config.growth_min_confidence}"
            )

    if insurance and growth:
        growth = False
        reasons.append("Insurance has priority over growth")

    if not insurance and not growth:
        reasons.append("No option sleeve allowed")

    return SleeveArbitrationResult(
        allowed=SleeveAllowance(growth_convexity=growth, insurance=insurance),
        reasons=tuple(reasons),
    )
