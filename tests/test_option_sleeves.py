"""
Tests for the insurance and growth option sleeve state machines.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from sleeve_pilot.models import (
    FlagCode,
    OptionAction,
    OptionMark,
    OptionPosition,
    OptionSleeveState,
    OptionType,
    OrderType,
    PlannedAction,
    Sleeve,
    SleeveStatus,
    option_position_id,
)
from sleeve_pilot.sleeves.contracts import OptionChainError, OptionChainProvider
from sleeve_pilot.sleeves.planner import (
    SleevePlanInputs,
    plan_growth_sleeve,
    plan_insurance_sleeve,
)


@pytest.fixture
def inputs_factory(as_of, quotes):
    def make(allowed=True, reserve="30000", **kwargs):
        return SleevePlanInputs(
            run_id="run-1",
            as_of=kwargs.pop("as_of", as_of),
            allowed=allowed,
            reserve_pool_usd=Decimal(reserve),
            quotes=quotes,
            **kwargs,
        )
    return make


@pytest.fixture
def deployed_put(as_of) -> OptionSleeveState:
    """Insurance puts opened ten days before the run."""
    return OptionSleeveState(
        status=SleeveStatus.DEPLOYED,
        opened_run_id="run-0",
        opened_as_of=as_of - timedelta(days=10),
        underlying="SPY",
        strike=Decimal("475.00"),
        expiry=as_of.date() + timedelta(days=120),
        contracts=2,
        premium_usd=Decimal("5526.00"),
    )


def _seed(store, sleeve, state):
    store.save(sleeve, state, "paper", "test")


def _broker_put(state: OptionSleeveState, market_price: str = "20") -> OptionPosition:
    return OptionPosition(
        underlying=state.underlying,
        option_type=OptionType.PUT,
        strike=state.strike,
        expiry=state.expiry,
        contracts=state.contracts,
        avg_open_price=Decimal("27.63"),
        market_price=Decimal(market_price),
    )


def _codes(result):
    return [f.code for f in result.flags]


class TestOpening:
    """Tests for opening a sleeve position."""

    def test_insurance_opens_synthetic_puts(self, bot_config, store, inputs_factory, as_of):
        """85% of a 30000 reserve buys 9 synthetic SPY puts at 27.63."""
        result = plan_insurance_sleeve(inputs_factory(), bot_config, store)

        assert result.planned_action == PlannedAction.OPEN
        assert result.order.option.action == OptionAction.BUY_TO_OPEN
        assert result.order.option.option_type == OptionType.PUT
        assert result.order.option.contracts == 9
        assert result.order.notional_usd == Decimal("24867.00")
        assert result.reserve_context.sleeve_budget_usd == Decimal("25500")
        assert result.underlyings_tried == ["SPY"]
        assert _codes(result) == [FlagCode.INSURANCE_OPEN_PLANNED]

        persisted = store.load(Sleeve.INSURANCE, "paper", "test")
        assert persisted.status == SleeveStatus.DEPLOYED
        assert persisted.opened_run_id == "run-1"
        assert persisted.opened_as_of == as_of
        assert persisted.contracts == 9

    def test_growth_opens_synthetic_calls(self, bot_config, store, inputs_factory):
        result = plan_growth_sleeve(inputs_factory(), bot_config, store)

        assert result.planned_action == PlannedAction.OPEN
        assert result.order.sleeve == Sleeve.GROWTH
        assert result.order.option.option_type == OptionType.CALL
        assert result.order.option.contracts == 3
        assert _codes(result) == [FlagCode.GROWTH_OPEN_PLANNED]

    def test_not_allowed_does_nothing(self, bot_config, store, inputs_factory):
        result = plan_insurance_sleeve(inputs_factory(allowed=False), bot_config, store)

        assert result.planned_action == PlannedAction.NONE
        assert result.order is None
        assert result.reason == "Insurance not allowed"
        assert store.load(Sleeve.INSURANCE, "paper", "test").status == SleeveStatus.INACTIVE

    def test_budget_too_small(self, bot_config, store, inputs_factory):
        result = plan_insurance_sleeve(inputs_factory(reserve="1000"), bot_config, store)

        assert result.planned_action == PlannedAction.NONE
        assert result.reason == "Budget insufficient for 1 contract"

    def test_cash_limits_contracts(self, bot_config, store, inputs_factory):
        result = plan_insurance_sleeve(
            inputs_factory(cash_available=Decimal("3000")), bot_config, store
        )

        assert result.order.option.contracts == 1

    def test_disabled_sleeve(self, bot_config, store, inputs_factory):
        bot_config.insurance.enabled = False

        result = plan_insurance_sleeve(inputs_factory(), bot_config, store)

        assert result.planned_action == PlannedAction.NONE
        assert result.reason == "Insurance sleeve disabled"

    def test_missing_quote(self, bot_config, store, inputs_factory):
        bot_config.options_underlyings = ["DIA"]

        result = plan_insurance_sleeve(inputs_factory(), bot_config, store)

        assert result.reason == "Underlying price unavailable"
        assert result.underlyings_tried == ["DIA"]

    def test_chain_failure_is_flagged(self, bot_config, store, inputs_factory):
        """A failing chain provider yields no contract and a chain flag, not an exception."""
        provider = Mock(spec=OptionChainProvider)
        provider.get_put_candidates.side_effect = OptionChainError("timeout")

        result = plan_insurance_sleeve(inputs_factory(), bot_config, store, chain_provider=provider)

        assert result.planned_action == PlannedAction.NONE
        assert result.reason == "No contract available"
        assert _codes(result) == [FlagCode.INSURANCE_CHAIN_UNAVAILABLE]
        provider.get_put_candidates.assert_called_once()

    def test_open_budget_net_of_existing_positions(self, bot_config, store, inputs_factory, deployed_put):
        """Marked value of open puts is consumed from the sleeve budget."""
        _seed(store, Sleeve.INSURANCE, deployed_put)
        position = _broker_put(deployed_put)

        result = plan_insurance_sleeve(
            inputs_factory(option_positions=[position]), bot_config, store
        )

        assert result.reserve_context.consumed_usd == Decimal("4000")
        assert result.reserve_context.available_usd == Decimal("21500")


class TestDeployed:
    """Tests for a sleeve holding a position."""

    def test_arbitrator_veto_closes(self, bot_config, store, inputs_factory, deployed_put):
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(inputs_factory(allowed=False), bot_config, store)

        assert result.planned_action == PlannedAction.CLOSE
        assert result.order.option.action == OptionAction.SELL_TO_CLOSE
        assert result.order.option.contracts == 2
        assert _codes(result) == [FlagCode.INSURANCE_UNWIND_DUE_TO_ARBITRATOR]
        assert store.load(Sleeve.INSURANCE, "paper", "test").status == SleeveStatus.UNWINDING

    def test_no_same_day_close(self, bot_config, store, inputs_factory, deployed_put, as_of):
        """A position opened today is held even when permission is withdrawn."""
        deployed_put.opened_as_of = as_of.replace(hour=10)
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(inputs_factory(allowed=False), bot_config, store)

        assert result.planned_action == PlannedAction.HOLD
        assert result.order is None
        assert store.load(Sleeve.INSURANCE, "paper", "test").status == SleeveStatus.DEPLOYED

    def test_allowed_far_from_expiry_holds(self, bot_config, store, inputs_factory, deployed_put):
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(inputs_factory(), bot_config, store)

        assert result.planned_action == PlannedAction.HOLD
        assert result.order is None

    def test_near_expiry_closes(self, bot_config, store, inputs_factory, deployed_put, as_of):
        deployed_put.expiry = as_of.date() + timedelta(days=10)
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(inputs_factory(), bot_config, store)

        assert result.planned_action == PlannedAction.CLOSE
        assert result.order.order_type == OrderType.MARKET
        assert _codes(result) == [FlagCode.INSURANCE_NEAR_EXPIRY_CLOSE]
        assert result.flags[0].observed.days_to_expiry == 10

    def test_near_expiry_held_when_expiry_allowed(self, bot_config, store, inputs_factory, deployed_put, as_of):
        bot_config.insurance.allow_expire = True
        deployed_put.expiry = as_of.date() + timedelta(days=10)
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(inputs_factory(), bot_config, store)

        assert result.planned_action == PlannedAction.HOLD
        assert _codes(result) == [FlagCode.INSURANCE_NEAR_EXPIRY]

    def test_broker_days_to_expiry_preferred(self, bot_config, store, inputs_factory, deployed_put):
        """Marks carrying days-to-expiry override the calendar computation."""
        _seed(store, Sleeve.INSURANCE, deployed_put)
        pid = option_position_id("SPY", OptionType.PUT, deployed_put.strike, deployed_put.expiry)
        marks = {pid: OptionMark(position_id=pid, mark_price=Decimal("12"), days_to_expiry=5)}

        result = plan_insurance_sleeve(inputs_factory(option_marks=marks), bot_config, store)

        assert result.planned_action == PlannedAction.CLOSE
        assert result.order.option.limit_price == Decimal("11.40")


class TestReconciliation:
    """Tests for aligning persisted state with broker positions."""

    def test_unwind_confirmed(self, bot_config, store, inputs_factory, deployed_put, as_of):
        unwinding = OptionSleeveState(
            **{**deployed_put.__dict__, "status": SleeveStatus.UNWINDING,
               "unwind_as_of": as_of - timedelta(days=7)}
        )
        _seed(store, Sleeve.INSURANCE, unwinding)

        result = plan_insurance_sleeve(
            inputs_factory(allowed=False, option_positions=[]), bot_config, store
        )

        assert _codes(result) == [FlagCode.INSURANCE_UNWIND_CONFIRMED]
        assert result.state.status == SleeveStatus.INACTIVE

    def test_unwind_pending_retries_close(self, bot_config, store, inputs_factory, deployed_put, as_of):
        unwinding = OptionSleeveState(
            **{**deployed_put.__dict__, "status": SleeveStatus.UNWINDING,
               "unwind_as_of": as_of - timedelta(days=7)}
        )
        _seed(store, Sleeve.INSURANCE, unwinding)

        result = plan_insurance_sleeve(
            inputs_factory(option_positions=[_broker_put(deployed_put, "5")]), bot_config, store
        )

        assert result.planned_action == PlannedAction.CLOSE
        assert result.order.option.limit_price == Decimal("4.75")
        assert _codes(result) == [FlagCode.INSURANCE_UNWIND_PENDING]
        assert result.state.unwind_as_of == as_of

    def test_unwind_pending_same_day_waits(self, bot_config, store, inputs_factory, deployed_put, as_of):
        unwinding = OptionSleeveState(
            **{**deployed_put.__dict__, "status": SleeveStatus.UNWINDING, "unwind_as_of": as_of}
        )
        _seed(store, Sleeve.INSURANCE, unwinding)

        result = plan_insurance_sleeve(
            inputs_factory(option_positions=[_broker_put(deployed_put)]), bot_config, store
        )

        assert result.planned_action == PlannedAction.NONE
        assert result.reason == "Awaiting broker confirmation of close"
        assert result.state.status == SleeveStatus.UNWINDING

    def test_missing_position_resets(self, bot_config, store, inputs_factory, deployed_put):
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(
            inputs_factory(allowed=False, option_positions=[]), bot_config, store
        )

        assert _codes(result) == [FlagCode.INSURANCE_POSITION_MISSING]
        assert result.state.status == SleeveStatus.INACTIVE

    def test_unknown_positions_skip_reconciliation(self, bot_config, store, inputs_factory, deployed_put):
        _seed(store, Sleeve.INSURANCE, deployed_put)

        result = plan_insurance_sleeve(inputs_factory(option_positions=None), bot_config, store)

        assert result.flags == []
        assert result.state.status == SleeveStatus.DEPLOYED

    def test_broker_position_adopted(self, bot_config, store, inputs_factory, deployed_put):
        result = plan_insurance_sleeve(
            inputs_factory(option_positions=[_broker_put(deployed_put)]), bot_config, store
        )

        assert _codes(result) == [FlagCode.INSURANCE_ADOPTED_FROM_BROKER]
        assert result.state.status == SleeveStatus.DEPLOYED
        assert result.state.contracts == 2
        assert result.planned_action == PlannedAction.HOLD

    def test_calls_ignored_by_insurance(self, bot_config, store, inputs_factory, deployed_put):
        call = OptionPosition(
            underlying="SPY",
            option_type=OptionType.CALL,
            strike=Decimal("515"),
            expiry=deployed_put.expiry,
            contracts=1,
        )

        result = plan_insurance_sleeve(
            inputs_factory(allowed=False, option_positions=[call]), bot_config, store
        )

        assert result.flags == []
        assert result.state.status == SleeveStatus.INACTIVE
