"""
Individual risk rules evaluated by the risk engine.

Each rule receives the shared RiskContext and returns the reasons it found,
an empty list meaning the rule passed. Rules never raise for a violation.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from sleeve_pilot.config import RiskLimits
from sleeve_pilot.models import (
    PortfolioState,
    RiskState,
    TradeIntent,
    TradeOrder,
    TradeSide,
    to_naive_utc,
)


@dataclass
class RiskContext:
    """
    Inputs and precomputed totals shared by all rules.

    Attributes:
        intent: Orders under evaluation
        limits: Risk limits
        portfolio: Broker snapshot
        risk_state: Drawdown and other account-level inputs
        options_underlyings: Symbols option orders may reference
    """
    intent: TradeIntent
    limits: RiskLimits
    portfolio: PortfolioState
    risk_state: RiskState
    options_underlyings: tuple[str, ...] = ()
    held: dict[str, Decimal] = field(init=False)
    buy_total: Decimal = field(init=False)
    sell_total: Decimal = field(init=False)

    def __post_init__(self) -> None:
        self.held = defaultdict(lambda: Decimal("0"))
        for h in self.portfolio.holdings:
            self.held[h.symbol] += h.quantity
        self.buy_total = sum(
            (o.notional_usd for o in self.orders if o.side == TradeSide.BUY), Decimal("0")
        )
        self.sell_total = sum(
            (o.notional_usd for o in self.orders if o.side == TradeSide.SELL), Decimal("0")
        )

    @property
    def orders(self) -> list[TradeOrder]:
        return self.intent.orders

    @property
    def equity_orders(self) -> list[TradeOrder]:
        return [o for o in self.orders if not o.is_option]

    @property
    def projected_cash(self) -> Decimal:
        return self.portfolio.cash - self.buy_total + self.sell_total


RiskRule = Callable[[RiskContext], list[str]]


def check_max_trades(ctx: RiskContext) -> list[str]:
    count = len(ctx.orders)
    if count > ctx.limits.max_trades_per_run:
        return [f"Too many trades: {count} > max {ctx.limits.max_trades_per_run}"]
    return []


def check_drawdown(ctx: RiskContext) -> list[str]:
    """Buys are blocked while drawdown exceeds the weekly limit; sells stay allowed."""
    drawdown = ctx.risk_state.drawdown
    if drawdown > ctx.limits.max_weekly_drawdown_pct and any(
        o.side == TradeSide.BUY for o in ctx.orders
    ):
        return [
            f"Drawdown limit breached: {drawdown:.4f} > {ctx.limits.max_weekly_drawdown_pct}; "
            "buys blocked"
        ]
    return []


def check_turnover(ctx: RiskContext) -> list[str]:
    limit = ctx.limits.max_notional_traded_pct_per_run
    equity = ctx.portfolio.equity
    if limit <= 0 or equity <= 0:
        return []
    traded = sum((abs(o.notional_usd) for o in ctx.orders), Decimal("0"))
    turnover = traded / equity
    if turnover > limit:
        return [f"Turnover cap exceeded: {turnover:.4f} of equity > {limit}"]
    return []


def check_min_hold(ctx: RiskContext) -> list[str]:
    min_hours = ctx.limits.min_hold_hours
    if min_hours <= 0:
        return []
    as_of = to_naive_utc(ctx.intent.as_of)
    reasons = []
    for order in ctx.equity_orders:
        if order.side != TradeSide.SELL:
            continue
        holding = ctx.portfolio.holding(order.symbol)
        if holding is None or holding.hold_since is None:
            continue
        hours_held = Decimal(
            str((as_of - to_naive_utc(holding.hold_since)).total_seconds() / 3600)
        )
        if hours_held < min_hours:
            reasons.append(
                f"Min hold not satisfied for {order.symbol}: "
                f"{hours_held:.1f}h < {min_hours}h"
            )
    return reasons


def check_position_size(ctx: RiskContext) -> list[str]:
    equity = ctx.portfolio.equity
    if equity <= 0:
        return []
    cap = equity * ctx.limits.max_position_pct
    # Option premium is sized separately from shares of its underlying
    per_symbol: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for order in ctx.orders:
        if order.side != TradeSide.BUY:
            continue
        key = order.symbol
        if order.option is not None:
            key = f"{order.symbol} {order.option.option_type.value}"
        per_symbol[key] += order.notional_usd
    return [
        f"Position size limit exceeded for {symbol}: {notional:.2f} > {cap:.2f}"
        for symbol, notional in sorted(per_symbol.items())
        if notional > cap
    ]


def check_cash_buffer(ctx: RiskContext) -> list[str]:
    floor = ctx.portfolio.equity * ctx.limits.min_cash_pct
    projected = ctx.projected_cash
    if projected < floor:
        return [f"Insufficient cash: projected {projected:.2f} < required {floor:.2f}"]
    return []


def check_universe(ctx: RiskContext) -> list[str]:
    universe = set(ctx.intent.universe)
    underlyings = set(ctx.options_underlyings)
    reasons = []
    for order in ctx.orders:
        if order.side != TradeSide.BUY:
            continue
        allowed = underlyings if order.is_option else universe
        if order.symbol not in allowed:
            reasons.append(f"Symbol {order.symbol} not in universe")
    return reasons


def check_no_shorting(ctx: RiskContext) -> list[str]:
    reasons = []
    selling: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for order in ctx.equity_orders:
        if order.side != TradeSide.SELL:
            continue
        if ctx.held.get(order.symbol, Decimal("0")) <= 0:
            reasons.append(f"Short sale not allowed: no holding in {order.symbol}")
            continue
        if order.quantity is not None:
            selling[order.symbol] += order.quantity
    for symbol, qty in sorted(selling.items()):
        if qty > ctx.held[symbol]:
            reasons.append(
                f"Short sale not allowed: selling {qty} {symbol} but only {ctx.held[symbol]} held"
            )
    return reasons


def check_max_positions(ctx: RiskContext) -> list[str]:
    positions = {s for s, q in ctx.held.items() if q > 0}
    for order in ctx.equity_orders:
        if order.side == TradeSide.BUY:
            positions.add(order.symbol)
        elif order.quantity is not None and order.quantity >= ctx.held.get(order.symbol, Decimal("0")):
            positions.discard(order.symbol)
    if len(positions) > ctx.limits.max_positions:
        return [f"Too many positions: {len(positions)} > max {ctx.limits.max_positions}"]
    return []


DEFAULT_RULES: tuple[RiskRule, ...] = (
    check_max_trades,
    check_drawdown,
    check_turnover,
    check_min_hold,
    check_position_size,
    check_cash_buffer,
    check_universe,
    check_no_shorting,
    check_max_positions,
)
