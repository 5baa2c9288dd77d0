"""
Tests for the end-to-end allocation cycle.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from sleeve_pilot.config import ConfigurationError
from sleeve_pilot.logging.decision_log import DecisionLogger
from sleeve_pilot.models import (
    ActionType,
    DislocationPhase,
    OptionPosition,
    OptionType,
    PlannedAction,
    Sleeve,
    SleeveStatus,
    TradeSide,
)
from sleeve_pilot.pipeline import RunInputs, new_run_id, run_cycle


@pytest.fixture
def inputs_factory(as_of, cash_portfolio, quotes, targets, risk_on_regimes):
    def make(**kwargs):
        params = dict(
            as_of=as_of,
            portfolio=cash_portfolio,
            quotes=quotes,
            targets=targets,
            regimes=risk_on_regimes,
            run_id="run-1",
        )
        params.update(kwargs)
        return RunInputs(**params)
    return make


class TestRunCycle:
    """Tests for run_cycle."""

    def test_risk_on_cycle(self, inputs_factory, bot_config, store):
        """A confident risk-on run buys the core sleeve and opens growth calls."""
        report = run_cycle(inputs_factory(), bot_config, store)

        assert report.budgets.deploy_budget_usd == Decimal("70000")
        buys = {o.symbol: o.quantity for o in report.core_orders}
        assert buys == {"SPY": Decimal("70"), "QQQ": Decimal("52"), "AGG": Decimal("140")}
        assert report.arbitration.allowed.growth_convexity
        assert report.insurance.planned_action == PlannedAction.NONE
        assert report.growth.planned_action == PlannedAction.OPEN
        assert report.growth.order.option.contracts == 3
        assert len(report.orders) == 4
        assert report.approved
        assert report.risk.approved_orders == report.orders

    def test_risk_off_cycle_opens_insurance(self, inputs_factory, bot_config, store, risk_off_regimes):
        report = run_cycle(inputs_factory(regimes=risk_off_regimes), bot_config, store)

        assert report.budgets.base_exposure_cap_pct == Decimal("0.7")
        assert sum(o.notional_usd for o in report.core_orders) <= report.budgets.deploy_budget_usd
        assert report.insurance.planned_action == PlannedAction.OPEN
        assert report.insurance.order.option.contracts == 9
        assert report.growth.planned_action == PlannedAction.NONE
        assert report.approved
        assert store.load(Sleeve.INSURANCE, "paper", "test").status == SleeveStatus.DEPLOYED

    def test_dislocation_phase_forces_insurance(self, inputs_factory, bot_config, store):
        report = run_cycle(
            inputs_factory(dislocation_phase=DislocationPhase.ADD, tier_engaged=True),
            bot_config,
            store,
        )

        assert report.permissions.active
        assert report.arbitration.allowed.insurance
        assert not report.arbitration.allowed.growth_convexity

    def test_option_positions_count_toward_nav(self, inputs_factory, bot_config, store, as_of):
        put = OptionPosition(
            underlying="SPY",
            option_type=OptionType.PUT,
            strike=Decimal("475"),
            expiry=as_of.date() + timedelta(days=90),
            contracts=2,
            avg_open_price=Decimal("25"),
            market_price=Decimal("20"),
        )

        report = run_cycle(inputs_factory(option_positions=[put]), bot_config, store)

        assert report.budgets.nav == Decimal("104000")

    def test_drawdown_blocks_buys(self, inputs_factory, bot_config, store):
        """Risk rejects the intent, but sleeve state is already persisted."""
        report = run_cycle(inputs_factory(drawdown=Decimal("0.2")), bot_config, store)

        assert not report.approved
        assert report.risk.approved_orders == []
        assert any(r.startswith("Drawdown limit breached") for r in report.risk.blocked_reasons)
        assert store.load(Sleeve.GROWTH, "paper", "test").status == SleeveStatus.DEPLOYED

    def test_growth_cash_is_net_of_core_buys(self, inputs_factory, bot_config, store, cash_portfolio):
        cash_portfolio.cash = Decimal("71000")
        cash_portfolio.equity = Decimal("71000")

        report = run_cycle(inputs_factory(portfolio=cash_portfolio), bot_config, store)

        spent = sum(o.notional_usd for o in report.core_orders if o.side == TradeSide.BUY)
        assert report.growth.order.notional_usd <= Decimal("71000") - spent

    def test_malformed_proxies_abort(self, inputs_factory, bot_config, store):
        bot_config.proxies = {"SPY": ["SPY"]}

        with pytest.raises(ConfigurationError):
            run_cycle(inputs_factory(), bot_config, store)

        assert store.load(Sleeve.INSURANCE, "paper", "test").status == SleeveStatus.INACTIVE

    def test_every_step_logged(self, inputs_factory, bot_config, store, tmp_path):
        decision_logger = DecisionLogger(tmp_path / "decision_log.jsonl", account_key="test")

        run_cycle(inputs_factory(), bot_config, store, decision_logger=decision_logger)

        entries = decision_logger.filter_by_run("run-1")
        assert [e.action_type for e in entries] == [
            ActionType.BUDGETS_COMPUTED,
            ActionType.TARGET_PLAN_BUILT,
            ActionType.REBALANCE_PLANNED,
            ActionType.SLEEVES_ARBITRATED,
            ActionType.SLEEVE_PLANNED,
            ActionType.SLEEVE_PLANNED,
            ActionType.RISK_EVALUATED,
            ActionType.RUN_COMPLETED,
        ]
        assert entries[-1].details["approved"] is True

    def test_generated_run_id(self, inputs_factory, bot_config, store, as_of):
        report = run_cycle(inputs_factory(run_id=None), bot_config, store)

        assert report.run_id.startswith("20250303T150000-")
        assert new_run_id(as_of) != new_run_id(as_of)
