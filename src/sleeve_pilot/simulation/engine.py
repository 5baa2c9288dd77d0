"""
Weekly scenario simulation of the allocation cycle.

Steps a scripted sequence of regimes and returns through run_cycle with an
in-memory sleeve store, fills approved orders at their estimated prices,
marks and expires option positions, and records reserve accounting for each
week.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import pandas as pd

from sleeve_pilot.config import (
    BotConfig,
    OptionSleeveConfig,
    RiskLimits,
    default_growth_config,
)
from sleeve_pilot.models import (
    EquityRegime,
    Holding,
    OptionAction,
    OptionMark,
    OptionPosition,
    OptionType,
    PortfolioState,
    RegimeContext,
    TargetWeight,
    TradeOrder,
    TradeSide,
    VolRegime,
    option_position_id,
)
from sleeve_pilot.pipeline import RunInputs, RunReport, run_cycle
from sleeve_pilot.simulation.metrics import trailing_drawdown
from sleeve_pilot.sleeves.state import InMemoryStateStore


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class ScenarioWeek:
    """
    One scripted week.

    Attributes:
        equity_label: risk_on | risk_off | neutral
        equity_confidence: Equity regime confidence
        vol_label: low | rising | stressed
        dislocation_active: Dislocation overlay engaged this week
        market_return: Return applied to every symbol without its own entry
        returns: Per-symbol weekly return overrides
    """
    equity_label: str
    equity_confidence: float = 0.5
    vol_label: str = "low"
    dislocation_active: bool = False
    market_return: Decimal = Decimal("0")
    returns: dict[str, Decimal] = field(default_factory=dict)

    def regimes(self) -> RegimeContext:
        return RegimeContext(
            equity_regime=EquityRegime(self.equity_label, self.equity_confidence),
            vol_regime=VolRegime(self.vol_label),
        )

    def return_for(self, symbol: str) -> Decimal:
        return self.returns.get(symbol, self.market_return)


def default_simulation_bot_config() -> BotConfig:
    """
    Bot configuration used by simulations.

    Risk limits are loose so every week's plan fills, and the two option
    sleeves together stay inside the reserve pool.
    """
    return BotConfig(
        universe=["SPY", "QQQ", "IWM", "AGG"],
        environment="simulation",
        account_key="sim",
        options_underlyings=["SPY", "QQQ"],
        risk=RiskLimits(
            max_trades_per_run=20,
            max_positions=20,
            max_position_pct=Decimal("1"),
            max_weekly_drawdown_pct=Decimal("1"),
            min_cash_pct=Decimal("0"),
            max_notional_traded_pct_per_run=Decimal("0"),
        ),
        insurance=OptionSleeveConfig(spend_pct=Decimal("0.5")),
        growth=default_growth_config(),
    )


def _default_prices() -> dict[str, Decimal]:
    return {
        "SPY": Decimal("500"),
        "QQQ": Decimal("430"),
        "IWM": Decimal("210"),
        "AGG": Decimal("98"),
    }


def _default_targets() -> list[TargetWeight]:
    return [
        TargetWeight("SPY", Decimal("0.45")),
        TargetWeight("QQQ", Decimal("0.25")),
        TargetWeight("IWM", Decimal("0.15")),
        TargetWeight("AGG", Decimal("0.15")),
    ]


@dataclass
class SimulationConfig:
    """Configuration for simulation runs."""
    initial_cash: Decimal = Decimal("100000")
    start: datetime = datetime(2025, 1, 6, 15, 0)
    prices: dict[str, Decimal] = field(default_factory=_default_prices)
    targets: list[TargetWeight] = field(default_factory=_default_targets)
    bot: BotConfig = field(default_factory=default_simulation_bot_config)


@dataclass
class WeekRecord:
    """Per-week outcome with reserve accounting after fills."""
    week: int
    as_of: str
    nav: Decimal
    drawdown: Decimal
    reserve_budget: Decimal
    reserve_used_insurance: Decimal
    reserve_used_growth: Decimal
    reserve_used_total: Decimal
    reserve_remaining: Decimal
    insurance_status: str
    growth_status: str
    insurance_action: str
    growth_action: str
    order_count: int
    approved: bool


@dataclass
class SimulationResult:
    """Records of a completed simulation."""
    weeks: list[WeekRecord] = field(default_factory=list)
    run_ids: list[str] = field(default_factory=list)
    final_cash: Decimal = Decimal("0")

    def to_dataframe(self) -> pd.DataFrame:
        """One row per week, with Decimal columns converted to float."""
        rows = []
        for w in self.weeks:
            rows.append({
                "week": w.week,
                "as_of": w.as_of,
                "nav": float(w.nav),
                "drawdown": float(w.drawdown),
                "reserve_budget": float(w.reserve_budget),
                "reserve_used_insurance": float(w.reserve_used_insurance),
                "reserve_used_growth": float(w.reserve_used_growth),
                "reserve_used_total": float(w.reserve_used_total),
                "reserve_remaining": float(w.reserve_remaining),
                "insurance_status": w.insurance_status,
                "growth_status": w.growth_status,
                "insurance_action": w.insurance_action,
                "growth_action": w.growth_action,
                "order_count": w.order_count,
                "approved": w.approved,
            })
        return pd.DataFrame(rows)


@dataclass
class _OpenOption:
    position: OptionPosition
    open_days: int


class SimulationEngine:
    """
    Weekly simulation driver.

    Args:
        config: Simulation configuration
        scenario: Scripted weeks, in order
    """

    def __init__(self, config: SimulationConfig, scenario: list[ScenarioWeek]):
        self.config = config
        self.scenario = scenario
        self.store = InMemoryStateStore()
        self.prices = dict(config.prices)
        self.cash = config.initial_cash
        self.holdings: dict[str, Holding] = {}
        self.options: list[_OpenOption] = []
        self.navs: list[float] = []

    def run(self) -> SimulationResult:
        """Run every scenario week and return the records."""
        result = SimulationResult()
        prior: Optional[RegimeContext] = None

        for i, week in enumerate(self.scenario):
            as_of = self.config.start + timedelta(weeks=i)
            if i > 0:
                self._apply_returns(week)
            marks = self._mark_options(as_of)

            nav = self._nav()
            self.navs.append(float(nav))
            drawdown = Decimal(str(round(trailing_drawdown(self.navs), 6)))

            regimes = week.regimes()
            report = run_cycle(
                RunInputs(
                    as_of=as_of,
                    portfolio=PortfolioState(
                        cash=self.cash,
                        equity=nav,
                        holdings=list(self.holdings.values()),
                    ),
                    quotes=dict(self.prices),
                    targets=self.config.targets,
                    regimes=regimes,
                    prior_regimes=prior,
                    dislocation_active=week.dislocation_active,
                    option_positions=[o.position for o in self.options],
                    option_marks=marks,
                    drawdown=drawdown,
                ),
                self.config.bot,
                self.store,
            )
            if report.approved:
                self._fill(report.orders, as_of)
            else:
                logger.info("Week %d blocked: %s", i, "; ".join(report.risk.blocked_reasons))

            result.weeks.append(self._record(i, as_of, nav, drawdown, report))
            result.run_ids.append(report.run_id)
            prior = regimes

        result.final_cash = self.cash
        return result

    # ------------------------------------------------------------------
    # Market
    # ------------------------------------------------------------------

    def _apply_returns(self, week: ScenarioWeek) -> None:
        for symbol, price in self.prices.items():
            new_price = price * (Decimal("1") + week.return_for(symbol))
            self.prices[symbol] = new_price.quantize(CENT, rounding=ROUND_HALF_UP)

    def _mark_options(self, as_of: datetime) -> dict[str, OptionMark]:
        """Mark open options at max(intrinsic, linearly decayed premium); settle expired ones."""
        marks: dict[str, OptionMark] = {}
        still_open: list[_OpenOption] = []
        for opt in self.options:
            p = opt.position
            dte = (p.expiry - as_of.date()).days if p.expiry else opt.open_days
            intrinsic = _intrinsic(p, self.prices.get(p.underlying, Decimal("0")))
            if dte <= 0:
                self.cash += intrinsic * p.multiplier * p.contracts
                logger.debug("Option %s expired", p.position_id)
                continue
            time_value = (p.avg_open_price or Decimal("0")) * Decimal(dte) / Decimal(max(opt.open_days, 1))
            mark = max(intrinsic, time_value).quantize(CENT, rounding=ROUND_HALF_UP)
            opt.position = replace(p, market_price=mark)
            marks[p.position_id] = OptionMark(p.position_id, mark, dte)
            still_open.append(opt)
        self.options = still_open
        return marks

    def _nav(self) -> Decimal:
        nav = self.cash
        for h in self.holdings.values():
            nav += h.quantity * self.prices.get(h.symbol, Decimal("0"))
        for opt in self.options:
            nav += opt.position.marked_value
        return nav

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------

    def _fill(self, orders: list[TradeOrder], as_of: datetime) -> None:
        for order in orders:
            if order.option is not None:
                self._fill_option(order, as_of)
            else:
                self._fill_equity(order, as_of)

    def _fill_equity(self, order: TradeOrder, as_of: datetime) -> None:
        qty = order.quantity or Decimal("0")
        price = order.est_price or self.prices[order.symbol]
        if qty <= 0:
            return
        held = self.holdings.get(order.symbol)
        if order.side == TradeSide.BUY:
            self.cash -= qty * price
            if held is None:
                self.holdings[order.symbol] = Holding(order.symbol, qty, price, as_of)
            else:
                total = held.quantity + qty
                avg = (held.avg_price * held.quantity + price * qty) / total
                self.holdings[order.symbol] = Holding(order.symbol, total, avg, held.hold_since)
            return

        if held is None:
            return
        qty = min(qty, held.quantity)
        self.cash += qty * price
        remaining = held.quantity - qty
        if remaining > 0:
            self.holdings[order.symbol] = replace(held, quantity=remaining)
        else:
            del self.holdings[order.symbol]

    def _fill_option(self, order: TradeOrder, as_of: datetime) -> None:
        leg = order.option
        if leg.action == OptionAction.BUY_TO_OPEN:
            premium = order.est_price
            self.cash -= premium * leg.multiplier * leg.contracts
            open_days = (leg.expiry - as_of.date()).days if leg.expiry else 0
            self.options.append(_OpenOption(
                position=OptionPosition(
                    underlying=order.symbol,
                    option_type=leg.option_type,
                    strike=leg.strike,
                    expiry=leg.expiry,
                    contracts=leg.contracts,
                    multiplier=leg.multiplier,
                    avg_open_price=premium,
                    market_price=premium,
                ),
                open_days=open_days,
            ))
            return

        pid = option_position_id(order.symbol, leg.option_type, leg.strike, leg.expiry)
        for opt in self.options:
            if opt.position.position_id == pid:
                self.cash += opt.position.marked_value
                self.options.remove(opt)
                return
        logger.warning("Close order for unknown option position %s", pid)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _reserve_used(self, option_type: OptionType) -> Decimal:
        """Reserve consumed at cost by open positions of one option type."""
        used = Decimal("0")
        for opt in self.options:
            p = opt.position
            if p.option_type == option_type and p.avg_open_price is not None:
                used += p.avg_open_price * p.multiplier * p.contracts
        return used

    def _record(
        self,
        week: int,
        as_of: datetime,
        nav: Decimal,
        drawdown: Decimal,
        report: RunReport,
    ) -> WeekRecord:
        used_insurance = self._reserve_used(OptionType.PUT)
        used_growth = self._reserve_used(OptionType.CALL)
        used_total = used_insurance + used_growth
        reserve_budget = report.budgets.reserve_budget
        return WeekRecord(
            week=week,
            as_of=as_of.date().isoformat(),
            nav=nav,
            drawdown=drawdown,
            reserve_budget=reserve_budget,
            reserve_used_insurance=used_insurance,
            reserve_used_growth=used_growth,
            reserve_used_total=used_total,
            reserve_remaining=reserve_budget - used_total,
            insurance_status=report.insurance.state.status.value,
            growth_status=report.growth.state.status.value,
            insurance_action=report.insurance.planned_action.value,
            growth_action=report.growth.planned_action.value,
            order_count=len(report.orders),
            approved=report.approved,
        )


def _intrinsic(position: OptionPosition, price: Decimal) -> Decimal:
    if position.option_type == OptionType.PUT:
        return max(position.strike - price, Decimal("0"))
    return max(price - position.strike, Decimal("0"))


def mild_scenario() -> list[ScenarioWeek]:
    """
    Half a year: calm rally, wobble, a short dislocation, then recovery.
    """
    weeks: list[ScenarioWeek] = []
    weeks += [ScenarioWeek("risk_on", 0.8, "low", market_return=Decimal("0.005"))] * 8
    weeks += [ScenarioWeek("neutral", 0.5, "rising", market_return=Decimal("-0.005"))] * 4
    weeks += [ScenarioWeek("risk_off", 0.7, "rising", market_return=Decimal("-0.01"))] * 2
    weeks += [
        ScenarioWeek("risk_off", 0.8, "stressed", dislocation_active=True,
                     market_return=Decimal("-0.02"), returns={"AGG": Decimal("0.003")})
    ] * 3
    weeks += [ScenarioWeek("neutral", 0.55, "rising", market_return=Decimal("0.01"))] * 3
    weeks += [ScenarioWeek("risk_on", 0.7, "low", market_return=Decimal("0.006"))] * 6
    return weeks


def flat_scenario(weeks: int = 20) -> list[ScenarioWeek]:
    """Unchanging risk-on market; exercises opening, holding and the near-expiry close."""
    return [ScenarioWeek("risk_on", 0.8, "low")] * weeks


PRESET_SCENARIOS = {
    "mild": mild_scenario,
    "flat": flat_scenario,
}


def build_scenario(name: str) -> list[ScenarioWeek]:
    """
    Look up a preset scenario by name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return PRESET_SCENARIOS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown scenario {name!r}; choose from {', '.join(sorted(PRESET_SCENARIOS))}"
        )
