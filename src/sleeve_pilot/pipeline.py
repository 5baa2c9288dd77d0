"""
One allocation cycle for a single account.

Wires the pure planners together in data-flow order:

    NAV -> budgets -> whole-share target plan -> core rebalance (clamped to
    the deploy budget) -> sleeve arbitration -> insurance / growth sleeves
    -> risk battery

Every step is recorded in the decision log when a logger is supplied. The
only side effects are sleeve state writes through the store.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sleeve_pilot.config import BotConfig, ProxyMap
from sleeve_pilot.logging.decision_log import DecisionLogger
from sleeve_pilot.models import (
    CapitalBudgets,
    DislocationPermissions,
    DislocationPhase,
    ExecutionPlan,
    Flag,
    OptionMark,
    OptionPosition,
    PortfolioState,
    RebalanceResult,
    RegimeContext,
    RiskReport,
    RiskState,
    SleeveArbitrationResult,
    SleevePlanResult,
    SleevePosition,
    TargetWeight,
    TradeIntent,
    TradeOrder,
    TradeSide,
)
from sleeve_pilot.portfolio.capital import (
    clamp_buy_orders_to_budget,
    compute_budgets,
    compute_nav,
)
from sleeve_pilot.risk.engine import evaluate_risk
from sleeve_pilot.sleeves.arbitration import arbitrate_sleeves
from sleeve_pilot.sleeves.contracts import OptionChainProvider
from sleeve_pilot.sleeves.dislocation import (
    derive_lifecycle_permissions,
    reconcile_sleeve_positions,
)
from sleeve_pilot.sleeves.planner import (
    SleevePlanInputs,
    plan_growth_sleeve,
    plan_insurance_sleeve,
)
from sleeve_pilot.sleeves.state import SleeveStateStore
from sleeve_pilot.trading.planner import plan_whole_share_execution
from sleeve_pilot.trading.rebalance import RebalanceRequest, rebalance_portfolio


logger = logging.getLogger(__name__)


@dataclass
class RunInputs:
    """
    Snapshot of everything a cycle consumes.

    Attributes:
        as_of: Run timestamp
        portfolio: Broker equity/cash snapshot
        quotes: Latest price per symbol (ETFs and options underlyings)
        targets: Core sleeve target weights
        regimes: Current regime context
        prior_regimes: Regime context of the previous run, if any
        dislocation_active: Dislocation overlay engaged (forces insurance)
        dislocation_phase: Overlay lifecycle phase
        tier_engaged: Whether a dislocation tier is engaged
        sleeve_positions: Previously recorded base/dislocation split
        option_positions: Broker option positions; None when unknown
        option_marks: Broker marks keyed by position id
        drawdown: Weekly drawdown fed to the risk battery
        run_id: Run identifier (generated when omitted)
        confidence_scale: Externally supplied deploy scale
    """
    as_of: datetime
    portfolio: PortfolioState
    quotes: dict[str, Decimal]
    targets: list[TargetWeight]
    regimes: RegimeContext
    prior_regimes: Optional[RegimeContext] = None
    dislocation_active: bool = False
    dislocation_phase: DislocationPhase = DislocationPhase.INACTIVE
    tier_engaged: bool = False
    sleeve_positions: Optional[dict[str, SleevePosition]] = None
    option_positions: Optional[list[OptionPosition]] = None
    option_marks: dict[str, OptionMark] = field(default_factory=dict)
    drawdown: Decimal = Decimal("0")
    run_id: Optional[str] = None
    confidence_scale: Optional[Decimal] = None


@dataclass
class RunReport:
    """
    Everything a cycle decided.

    Attributes:
        run_id: Run identifier
        as_of: Run timestamp
        budgets: Capital partition
        target_plan: Whole-share plan for the core sleeve
        permissions: Dislocation overlay permissions
        sleeve_positions: Reconciled base/dislocation split
        rebalance: Core rebalance result (before clamping)
        core_orders: Core orders after clamping to the deploy budget
        arbitration: Sleeve arbitration verdict
        insurance: Insurance sleeve result
        growth: Growth sleeve result
        orders: All orders submitted to risk
        risk: Risk verdict
        flags: Diagnostics from every step
    """
    run_id: str
    as_of: datetime
    budgets: CapitalBudgets
    target_plan: ExecutionPlan
    permissions: DislocationPermissions
    sleeve_positions: dict[str, SleevePosition]
    rebalance: RebalanceResult
    core_orders: list[TradeOrder]
    arbitration: SleeveArbitrationResult
    insurance: SleevePlanResult
    growth: SleevePlanResult
    orders: list[TradeOrder]
    risk: RiskReport
    flags: list[Flag] = field(default_factory=list)

    @property
    def approved(self) -> bool:
        return self.risk.approved

    def summary(self) -> dict:
        """Compact summary for the decision log and CLI output."""
        return {
            "nav": self.budgets.nav,
            "deploy_budget_usd": self.budgets.deploy_budget_usd,
            "reserve_budget": self.budgets.reserve_budget,
            "rebalance_status": self.rebalance.status.value,
            "core_order_count": len(self.core_orders),
            "insurance_action": self.insurance.planned_action.value,
            "insurance_status": self.insurance.state.status.value,
            "growth_action": self.growth.planned_action.value,
            "growth_status": self.growth.state.status.value,
            "order_count": len(self.orders),
            "approved": self.risk.approved,
            "blocked_reasons": self.risk.blocked_reasons,
        }


def new_run_id(as_of: datetime) -> str:
    """Timestamped run identifier."""
    return f"{as_of:%Y%m%dT%H%M%S}-{uuid.uuid4().hex[:8]}"


def run_cycle(
    inputs: RunInputs,
    config: BotConfig,
    store: SleeveStateStore,
    chain_provider: Optional[OptionChainProvider] = None,
    decision_logger: Optional[DecisionLogger] = None,
) -> RunReport:
    """
    Run one allocation cycle.

    Args:
        inputs: Portfolio, quotes, regimes and overlay snapshot
        config: Bot configuration
        store: Sleeve state store
        chain_provider: Optional option chain source
        decision_logger: Optional decision log

    Returns:
        RunReport with every intermediate decision

    Raises:
        ConfigurationError: If the proxy map is malformed
    """
    # Built first so a malformed proxy map aborts before any planning
    proxy_map = ProxyMap(config.proxies)
    run_id = inputs.run_id or new_run_id(inputs.as_of)
    portfolio = inputs.portfolio
    fractional = config.fractional_shares_supported
    flags: list[Flag] = []

    option_value = sum(
        (p.marked_value for p in inputs.option_positions or []), Decimal("0")
    )
    nav = compute_nav(portfolio.holdings, portfolio.cash, inputs.quotes) + option_value
    budgets = compute_budgets(
        nav, config.capital, inputs.regimes, inputs.confidence_scale
    )
    if decision_logger:
        decision_logger.log_budgets_computed(run_id, budgets)

    target_plan = plan_whole_share_execution(
        inputs.targets,
        inputs.quotes,
        budgets.deploy_budget_usd,
        proxy_map=proxy_map,
        fractional=fractional,
    )
    flags.extend(target_plan.flags)
    if decision_logger:
        decision_logger.log_target_plan_built(run_id, target_plan)

    permissions = derive_lifecycle_permissions(
        inputs.dislocation_phase,
        inputs.tier_engaged,
        config.dislocation.freeze_base_rebalance_during_add_hold,
    )
    sleeve_positions, sleeve_flags = reconcile_sleeve_positions(
        portfolio.holdings, inputs.sleeve_positions, inputs.as_of
    )
    flags.extend(sleeve_flags)

    rebalance = rebalance_portfolio(RebalanceRequest(
        as_of=inputs.as_of,
        portfolio=portfolio,
        prices=inputs.quotes,
        target_plan=target_plan,
        config=config.rebalance,
        proxy_map=proxy_map,
        regimes=inputs.regimes,
        prior_regimes=inputs.prior_regimes,
        fractional_shares=fractional,
        protect_from_sells=(
            permissions.protect_from_sells and config.dislocation.protect_from_sells
        ),
        sleeve_positions=sleeve_positions,
        freeze_base_rebalance=permissions.freeze_base_rebalance,
    ))
    flags.extend(rebalance.flags)
    if decision_logger:
        decision_logger.log_rebalance_planned(run_id, rebalance)

    core_orders = clamp_buy_orders_to_budget(
        rebalance.combined_orders, budgets.deploy_budget_usd, fractional
    )

    dislocation_active = inputs.dislocation_active or permissions.active
    arbitration = arbitrate_sleeves(dislocation_active, inputs.regimes, config.arbitration)
    if decision_logger:
        decision_logger.log_sleeves_arbitrated(run_id, dislocation_active, arbitration)

    cash = portfolio.cash + _net_cash_flow(core_orders)
    confidence = inputs.regimes.equity_regime.confidence

    insurance = plan_insurance_sleeve(
        SleevePlanInputs(
            run_id=run_id,
            as_of=inputs.as_of,
            allowed=arbitration.allowed.insurance,
            reserve_pool_usd=budgets.reserve_budget,
            quotes=inputs.quotes,
            cash_available=cash,
            option_positions=inputs.option_positions,
            option_marks=inputs.option_marks,
            confidence=confidence,
        ),
        config,
        store,
        chain_provider,
    )
    flags.extend(insurance.flags)
    if decision_logger:
        decision_logger.log_sleeve_planned(run_id, insurance)
    if insurance.order is not None:
        cash += _net_cash_flow([insurance.order])

    growth = plan_growth_sleeve(
        SleevePlanInputs(
            run_id=run_id,
            as_of=inputs.as_of,
            allowed=arbitration.allowed.growth_convexity,
            reserve_pool_usd=budgets.reserve_budget,
            quotes=inputs.quotes,
            cash_available=cash,
            option_positions=inputs.option_positions,
            option_marks=inputs.option_marks,
            confidence=confidence,
        ),
        config,
        store,
        chain_provider,
    )
    flags.extend(growth.flags)
    if decision_logger:
        decision_logger.log_sleeve_planned(run_id, growth)

    orders = list(core_orders)
    orders.extend(r.order for r in (insurance, growth) if r.order is not None)

    risk = evaluate_risk(
        TradeIntent(as_of=inputs.as_of, universe=_tradable_universe(config, proxy_map), orders=orders),
        config.risk,
        portfolio,
        RiskState(drawdown=inputs.drawdown, as_of=inputs.as_of),
        options_underlyings=_options_underlyings(config),
    )
    if decision_logger:
        decision_logger.log_risk_evaluated(run_id, risk)

    report = RunReport(
        run_id=run_id,
        as_of=inputs.as_of,
        budgets=budgets,
        target_plan=target_plan,
        permissions=permissions,
        sleeve_positions=sleeve_positions,
        rebalance=rebalance,
        core_orders=core_orders,
        arbitration=arbitration,
        insurance=insurance,
        growth=growth,
        orders=orders,
        risk=risk,
        flags=flags,
    )

    logger.info(
        "Run %s: nav=%.2f orders=%d approved=%s insurance=%s growth=%s",
        run_id, nav, len(orders), risk.approved,
        insurance.state.status.value, growth.state.status.value,
    )
    if decision_logger:
        decision_logger.log_run_completed(run_id, report.summary())

    return report


def _net_cash_flow(orders: list[TradeOrder]) -> Decimal:
    flow = Decimal("0")
    for order in orders:
        if order.side == TradeSide.BUY:
            flow -= order.notional_usd
        else:
            flow += order.notional_usd
    return flow


def _tradable_universe(config: BotConfig, proxy_map: ProxyMap) -> list[str]:
    """Configured universe plus every proxy that may stand in for a member."""
    symbols = list(config.universe)
    for symbol in config.universe:
        for member in proxy_map.family(symbol):
            if member not in symbols:
                symbols.append(member)
    return symbols


def _options_underlyings(config: BotConfig) -> list[str]:
    symbols: list[str] = []
    for symbol in config.options_underlyings + config.hedge_preferred + config.growth_preferred:
        if symbol not in symbols:
            symbols.append(symbol)
    return symbols
