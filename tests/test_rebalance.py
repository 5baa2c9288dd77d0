"""
Tests for the drift-gated core sleeve rebalance.
"""

from decimal import Decimal

import pytest

from sleeve_pilot.config import ProxyMap, RebalanceConfig
from sleeve_pilot.models import (
    ExecutionPlan,
    FlagCode,
    Holding,
    PlannedPosition,
    PlanStatus,
    PortfolioState,
    RebalanceStatus,
    SkipReason,
    SleevePosition,
    TradeSide,
)
from sleeve_pilot.trading.rebalance import RebalanceRequest, rebalance_portfolio

from conftest import make_regimes


PROXIES = ProxyMap({"SPY": ["SPYM"]})


def _plan(*positions: tuple[str, str, str]) -> ExecutionPlan:
    planned = [
        PlannedPosition(symbol, PROXIES.parent_of(symbol), Decimal(qty), Decimal(price))
        for symbol, qty, price in positions
    ]
    return ExecutionPlan(
        status=PlanStatus.OK,
        target_weights={},
        achieved_weights={},
        positions=planned,
        budget_usd=sum((p.est_notional for p in planned), Decimal("0")),
        leftover_cash=Decimal("0"),
    )


def _portfolio(cash: str, *holdings: tuple[str, str]) -> PortfolioState:
    held = [Holding(symbol, Decimal(qty), Decimal("1")) for symbol, qty in holdings]
    return PortfolioState(cash=Decimal(cash), equity=Decimal(cash), holdings=held)


def _codes(result):
    return [f.code for f in result.flags]


@pytest.fixture
def request_factory(as_of, quotes):
    def make(portfolio, plan, **kwargs):
        return RebalanceRequest(
            as_of=as_of,
            portfolio=portfolio,
            prices=quotes,
            target_plan=plan,
            proxy_map=PROXIES,
            **kwargs,
        )
    return make


@pytest.fixture
def protected_case(request_factory):
    """3 SPYM held, 2 of them dislocation shares, SPY family removed from target."""
    def make(**kwargs):
        return request_factory(
            _portfolio("1000", ("SPYM", "3")),
            _plan(("AGG", "10", "100")),
            sleeve_positions={"SPYM": SleevePosition(Decimal("1"), Decimal("2"))},
            **kwargs,
        )
    return make


class TestGates:
    """Tests for the enable switch and drift triggers."""

    def test_disabled(self, request_factory):
        result = rebalance_portfolio(request_factory(
            _portfolio("1000"), _plan(("AGG", "10", "100")), config=RebalanceConfig(enabled=False)
        ))

        assert result.status == RebalanceStatus.SKIPPED_NO_CHANGES
        assert _codes(result) == [FlagCode.REBALANCE_DISABLED]
        assert result.combined_orders == []

    def test_on_target_is_skipped(self, request_factory):
        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("AGG", "10")), _plan(("AGG", "10", "100"))
        ))

        assert result.status == RebalanceStatus.SKIPPED_NO_DRIFT
        assert _codes(result) == [FlagCode.REBALANCE_SKIPPED_DRIFT]

    def test_proxy_holding_counts_toward_parent(self, request_factory):
        """Holding SPYM against a plan buying SPYM-equivalent SPY value is on target."""
        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("SPYM", "25")), _plan(("SPY", "4", "500"))
        ))

        assert result.status == RebalanceStatus.SKIPPED_NO_DRIFT

    def test_regime_change_trigger(self, request_factory):
        config = RebalanceConfig(always_rebalance_on_regime_change=True)

        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("AGG", "10")),
            _plan(("AGG", "10", "100")),
            config=config,
            regimes=make_regimes("risk_off"),
            prior_regimes=make_regimes("risk_on"),
        ))

        assert result.triggers == ["regime_change"]
        assert result.status == RebalanceStatus.SKIPPED_NO_CHANGES


class TestOrders:
    """Tests for the orders a triggered rebalance emits."""

    def test_initial_buy(self, request_factory, quotes):
        result = rebalance_portfolio(request_factory(
            _portfolio("10000"), _plan(("SPY", "10", "500"), ("AGG", "40", "100"))
        ))

        assert result.status == RebalanceStatus.OK
        assert [(o.symbol, o.quantity) for o in result.buy_orders] == [
            ("SPY", Decimal("10")), ("AGG", Decimal("40")),
        ]
        assert result.projected_cash == Decimal("1000")

    def test_trim_sells_before_buys(self, request_factory):
        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("SPY", "10")), _plan(("SPY", "6", "500"), ("AGG", "20", "100"))
        ))

        assert result.sell_orders[0].quantity == Decimal("4")
        assert result.buy_orders[0].symbol == "AGG"
        assert result.combined_orders[0].side == TradeSide.SELL
        assert result.projected_cash == Decimal("0")

    def test_full_exit_of_removed_symbol(self, request_factory):
        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("IWM", "7"), ("AGG", "10")), _plan(("AGG", "10", "100"))
        ))

        assert "removed_symbols" in result.triggers
        assert result.sell_orders[0].symbol == "IWM"
        assert result.sell_orders[0].quantity == Decimal("7")

    def test_removed_symbol_sold_without_removal_trigger(self, request_factory):
        """Drift alone fires the rebalance; the removed holding is still exited."""
        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("IWM", "5")),
            _plan(("AGG", "10", "100")),
            config=RebalanceConfig(full_exit_removed_symbols=False),
        ))

        assert "removed_symbols" not in result.triggers
        assert result.status == RebalanceStatus.OK
        assert [o.symbol for o in result.sell_orders] == ["IWM"]
        assert result.sell_orders[0].quantity == Decimal("5")

    def test_buys_limited_by_cash(self, request_factory):
        result = rebalance_portfolio(request_factory(
            _portfolio("1000"), _plan(("AGG", "20", "100"))
        ))

        assert result.buy_orders[0].quantity == Decimal("10")
        assert result.projected_cash == Decimal("0")

    def test_dust_residual_sold_out(self, request_factory):
        config = RebalanceConfig(dust_shares_threshold=Decimal("3"))

        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("SPY", "10")), _plan(("SPY", "2", "500")), config=config
        ))

        assert result.sell_orders[0].quantity == Decimal("10")
        assert FlagCode.DUST_RESIDUAL_ROUNDED in _codes(result)

    def test_dust_sell_skipped(self, request_factory):
        config = RebalanceConfig(dust_shares_threshold=Decimal("3"))

        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("SPY", "10")), _plan(("SPY", "8", "500")), config=config
        ))

        assert result.sell_orders == []
        assert result.skipped[0].reason == SkipReason.DUST_THRESHOLD
        assert result.status == RebalanceStatus.SKIPPED_NO_CHANGES

    def test_min_trade_notional(self, request_factory):
        config = RebalanceConfig(min_trade_notional_usd=Decimal("1000"))

        result = rebalance_portfolio(request_factory(
            _portfolio("0", ("SPY", "10")), _plan(("SPY", "9", "500")), config=config
        ))

        assert result.sell_orders == []
        assert result.skipped[0].reason == SkipReason.MIN_TRADE_NOTIONAL


class TestSleeveProtection:
    """Tests for dislocation share protection and base freeze."""

    def test_protection_caps_sell(self, protected_case):
        result = rebalance_portfolio(protected_case(protect_from_sells=True))

        assert len(result.sell_orders) == 1
        assert result.sell_orders[0].quantity == Decimal("1")
        assert result.sell_orders[0].notional_usd == Decimal("80")
        assert FlagCode.SELL_CAPPED_DUE_TO_SLEEVE_PROTECTION in _codes(result)

    def test_without_protection_sells_everything(self, protected_case):
        result = rebalance_portfolio(protected_case(protect_from_sells=False))

        assert result.sell_orders[0].notional_usd == Decimal("240")
        assert FlagCode.SELL_CAPPED_DUE_TO_SLEEVE_PROTECTION not in _codes(result)

    def test_protection_limited_to_listed_symbols(self, protected_case):
        result = rebalance_portfolio(
            protected_case(protect_from_sells=True, protected_symbols={"QQQ"})
        )

        assert result.sell_orders[0].quantity == Decimal("3")

    def test_protection_by_parent_symbol(self, protected_case):
        result = rebalance_portfolio(
            protected_case(protect_from_sells=True, protected_symbols={"SPY"})
        )

        assert result.sell_orders[0].quantity == Decimal("1")

    def test_freeze_suppresses_sells(self, protected_case):
        result = rebalance_portfolio(protected_case(freeze_base_rebalance=True))

        assert result.sell_orders == []
        assert FlagCode.BASE_REBALANCE_FROZEN in _codes(result)
        assert result.skipped[0].reason == SkipReason.BASE_FROZEN
        # buys still go ahead
        assert result.buy_orders[0].symbol == "AGG"
