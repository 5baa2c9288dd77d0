"""
Risk engine: validates a trade intent against the configured limits.

Every rule is evaluated (no short-circuit) so the report lists all
violations at once.
"""

from typing import Iterable, Optional

from sleeve_pilot.config import RiskLimits
from sleeve_pilot.models import (
    ExposureSummary,
    PortfolioState,
    RiskReport,
    RiskState,
    TradeIntent,
)
from sleeve_pilot.risk.rules import DEFAULT_RULES, RiskContext, RiskRule


def evaluate_risk(
    intent: TradeIntent,
    limits: RiskLimits,
    portfolio: PortfolioState,
    risk_state: Optional[RiskState] = None,
    options_underlyings: Iterable[str] = (),
    rules: Iterable[RiskRule] = DEFAULT_RULES,
) -> RiskReport:
    """
    Run the full risk battery over a trade intent.

    Args:
        intent: Orders with the universe they must stay inside
        limits: Risk limits
        portfolio: Current broker snapshot
        risk_state: Drawdown and related inputs (defaults to no drawdown)
        options_underlyings: Symbols option BUYs may reference
        rules: Rules to evaluate, in order

    Returns:
        RiskReport with one blocked reason per violation
    """
    ctx = RiskContext(
        intent=intent,
        limits=limits,
        portfolio=portfolio,
        risk_state=risk_state or RiskState(),
        options_underlyings=tuple(options_underlyings),
    )

    blocked_reasons: list[str] = []
    for rule in rules:
        blocked_reasons.extend(rule(ctx))

    approved = not blocked_reasons
    return RiskReport(
        approved=approved,
        blocked_reasons=blocked_reasons,
        approved_orders=list(intent.orders) if approved else [],
        exposure_summary=ExposureSummary(
            current_cash=portfolio.cash,
            total_buy_notional=ctx.buy_total,
            total_sell_notional=ctx.sell_total,
            projected_cash=ctx.projected_cash,
            drawdown=ctx.risk_state.drawdown,
        ),
    )
