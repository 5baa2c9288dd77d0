"""
Drift-gated rebalancing of the core ETF sleeve.

Compares current holdings against the whole-share execution plan, grouped by
proxy parent, and emits sell then buy orders when a trigger fires. Sells of
shares held for the dislocation sleeve can be capped or frozen entirely.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sleeve_pilot.analytics.drift import (
    calculate_drift,
    detect_regime_changes,
    target_values_by_parent,
)
from sleeve_pilot.config import ProxyMap, RebalanceConfig
from sleeve_pilot.models import (
    DriftPayload,
    DriftSnapshot,
    ExecutionPlan,
    Flag,
    FlagCode,
    OrderType,
    PortfolioLevel,
    PortfolioState,
    RebalanceResult,
    RebalanceStatus,
    RegimeContext,
    SellCapPayload,
    Severity,
    SkippedTrade,
    SkipReason,
    SleevePosition,
    SymbolsPayload,
    TradeOrder,
    TradeSide,
)
from sleeve_pilot.portfolio.holdings import (
    aggregate_by_parent,
    calculate_market_values,
    holdings_by_symbol,
    round_shares,
)


logger = logging.getLogger(__name__)


@dataclass
class RebalanceRequest:
    """
    Everything a rebalance pass needs.

    Attributes:
        as_of: Run timestamp
        portfolio: Broker snapshot
        prices: Current price per symbol
        target_plan: Whole-share execution plan for the core sleeve
        config: Rebalance gates
        proxy_map: Parent/proxy lookup
        regimes: Current regime context
        prior_regimes: Regime context from the previous run
        fractional_shares: Whether fractional quantities are allowed
        protect_from_sells: Cap sells of dislocation shares
        protected_symbols: Symbols (or parents) under protection
        sleeve_positions: Base/dislocation split per symbol
        freeze_base_rebalance: Suppress every sell this run
    """
    as_of: datetime
    portfolio: PortfolioState
    prices: dict[str, Decimal]
    target_plan: ExecutionPlan
    config: RebalanceConfig = field(default_factory=RebalanceConfig)
    proxy_map: ProxyMap = field(default_factory=ProxyMap)
    regimes: Optional[RegimeContext] = None
    prior_regimes: Optional[RegimeContext] = None
    fractional_shares: bool = False
    protect_from_sells: bool = False
    protected_symbols: Optional[set[str]] = None
    sleeve_positions: Optional[dict[str, SleevePosition]] = None
    freeze_base_rebalance: bool = False


def rebalance_portfolio(request: RebalanceRequest) -> RebalanceResult:
    """
    Plan the core sleeve rebalance.

    Args:
        request: Rebalance inputs

    Returns:
        RebalanceResult with sells listed before buys
    """
    config = request.config
    proxy_map = request.proxy_map
    portfolio = request.portfolio
    prices = request.prices

    if not config.enabled:
        return RebalanceResult(
            status=RebalanceStatus.SKIPPED_NO_CHANGES,
            flags=[Flag(
                code=FlagCode.REBALANCE_DISABLED,
                severity=Severity.INFO,
                message="Rebalancing disabled by configuration",
            )],
            projected_cash=portfolio.cash,
        )

    held = holdings_by_symbol(portfolio.holdings)
    current_by_symbol = calculate_market_values(portfolio.holdings, prices)
    current_by_parent = aggregate_by_parent(current_by_symbol, proxy_map)
    target_by_parent = target_values_by_parent(request.target_plan, proxy_map)
    drift = calculate_drift(current_by_parent, target_by_parent, portfolio.cash)

    triggers = _collect_triggers(request, drift, current_by_parent, target_by_parent)
    drift_payload = DriftPayload(
        portfolio_drift=drift.portfolio_drift,
        max_position_drift=drift.max_position_drift,
        triggers=tuple(triggers),
    )
    if not triggers:
        return RebalanceResult(
            status=RebalanceStatus.SKIPPED_NO_DRIFT,
            drift=drift,
            flags=[Flag(
                code=FlagCode.REBALANCE_SKIPPED_DRIFT,
                severity=Severity.INFO,
                message="Drift below thresholds; no rebalance",
                observed=drift_payload,
            )],
            projected_cash=portfolio.cash,
        )

    flags = [Flag(
        code=FlagCode.REBALANCE_TRIGGERED,
        severity=Severity.INFO,
        message=f"Rebalance triggered by: {', '.join(triggers)}",
        observed=drift_payload,
    )]
    skipped: list[SkippedTrade] = []

    # Held symbols grouped by parent, largest value first
    held_by_parent: dict[str, list[str]] = {}
    for symbol in held:
        held_by_parent.setdefault(proxy_map.parent_of(symbol), []).append(symbol)
    for symbols in held_by_parent.values():
        symbols.sort(key=lambda s: (-current_by_symbol.get(s, Decimal("0")), s))

    sell_orders: list[TradeOrder] = []
    frozen: list[str] = []
    for parent in sorted(held_by_parent):
        over = current_by_parent.get(parent, Decimal("0")) - target_by_parent.get(parent, Decimal("0"))
        full_exit = target_by_parent.get(parent, Decimal("0")) <= 0
        if over <= 0 and not full_exit:
            continue
        for symbol in held_by_parent[parent]:
            if over <= 0 and not full_exit:
                break
            price = prices.get(symbol)
            if price is None or price <= 0:
                skipped.append(SkippedTrade(symbol, TradeSide.SELL, SkipReason.MISSING_PRICE))
                continue
            qty = _sell_quantity(
                held[symbol], over / price, full_exit, request, config, skipped, flags, symbol
            )
            if qty <= 0:
                continue

            if request.freeze_base_rebalance:
                frozen.append(symbol)
                skipped.append(
                    SkippedTrade(symbol, TradeSide.SELL, SkipReason.BASE_FROZEN, qty, qty * price)
                )
                continue

            qty = _apply_sell_protection(symbol, qty, request, proxy_map, flags, skipped, price)
            if qty <= 0:
                continue

            notional = qty * price
            if notional < config.min_trade_notional_usd:
                skipped.append(
                    SkippedTrade(symbol, TradeSide.SELL, SkipReason.MIN_TRADE_NOTIONAL, qty, notional)
                )
                continue

            sell_orders.append(_order(symbol, TradeSide.SELL, qty, price, parent, full_exit))
            over -= notional

    if frozen:
        flags.append(Flag(
            code=FlagCode.BASE_REBALANCE_FROZEN,
            severity=Severity.INFO,
            message="Base rebalance frozen while the dislocation sleeve is adding or holding",
            observed=SymbolsPayload(symbols=tuple(frozen)),
        ))

    cash = portfolio.cash + sum((o.notional_usd for o in sell_orders), Decimal("0"))

    # Buys in the plan's executed symbols, most underweight parent first
    planned_by_parent: dict[str, list[tuple[str, Decimal]]] = {}
    for position in request.target_plan.positions:
        planned_by_parent.setdefault(proxy_map.parent_of(position.symbol), []).append(
            (position.symbol, position.est_price)
        )
    shortfalls = sorted(
        (
            (target_by_parent[p] - current_by_parent.get(p, Decimal("0")), p)
            for p in target_by_parent
        ),
        key=lambda item: (-item[0], item[1]),
    )

    buy_orders: list[TradeOrder] = []
    for under, parent in shortfalls:
        if under <= 0:
            continue
        symbol, plan_price = planned_by_parent[parent][0]
        price = prices.get(symbol) or plan_price
        qty = round_shares(under / price, request.fractional_shares)
        if qty <= 0:
            skipped.append(SkippedTrade(symbol, TradeSide.BUY, SkipReason.DUST_THRESHOLD))
            continue
        notional = qty * price
        if notional < config.min_trade_notional_usd:
            skipped.append(
                SkippedTrade(symbol, TradeSide.BUY, SkipReason.MIN_TRADE_NOTIONAL, qty, notional)
            )
            continue
        if notional > cash:
            qty = round_shares(max(cash, Decimal("0")) / price, request.fractional_shares)
            if qty <= 0:
                skipped.append(
                    SkippedTrade(symbol, TradeSide.BUY, SkipReason.INSUFFICIENT_CASH, Decimal("0"), notional)
                )
                continue
            notional = qty * price
        buy_orders.append(_order(symbol, TradeSide.BUY, qty, price, parent, False))
        cash -= notional

    combined = sell_orders + buy_orders
    if not combined:
        status = RebalanceStatus.SKIPPED_NO_CHANGES
    elif cash < 0:
        status = RebalanceStatus.UNEXECUTABLE
    else:
        status = RebalanceStatus.OK

    logger.debug(
        "Rebalance %s: %d sells, %d buys, %d skipped",
        status.value, len(sell_orders), len(buy_orders), len(skipped),
    )

    return RebalanceResult(
        status=status,
        buy_orders=buy_orders,
        sell_orders=sell_orders,
        combined_orders=combined,
        drift=drift,
        triggers=triggers,
        skipped=skipped,
        flags=flags,
        projected_cash=cash,
    )


def _collect_triggers(
    request: RebalanceRequest,
    drift: DriftSnapshot,
    current_by_parent: dict[str, Decimal],
    target_by_parent: dict[str, Decimal],
) -> list[str]:
    config = request.config
    triggers: list[str] = []
    if drift.portfolio_drift >= config.portfolio_drift_threshold:
        triggers.append("portfolio_drift")
    if drift.max_position_drift >= config.position_drift_threshold:
        triggers.append("position_drift")
    if config.always_rebalance_on_regime_change:
        changed = detect_regime_changes(
            request.regimes, request.prior_regimes, config.regime_change_keys
        )
        if changed:
            triggers.append("regime_change")
    if config.full_exit_removed_symbols:
        removed = [
            p for p, value in current_by_parent.items()
            if value > 0 and target_by_parent.get(p, Decimal("0")) <= 0
        ]
        if removed:
            triggers.append("removed_symbols")
    return triggers


def _sell_quantity(
    held_qty: Decimal,
    raw_qty: Decimal,
    full_exit: bool,
    request: RebalanceRequest,
    config: RebalanceConfig,
    skipped: list[SkippedTrade],
    flags: list[Flag],
    symbol: str,
) -> Decimal:
    """Shares to sell of one symbol before protection rules."""
    if full_exit:
        return held_qty

    qty = min(round_shares(raw_qty, request.fractional_shares), held_qty)
    if qty <= config.dust_shares_threshold:
        skipped.append(SkippedTrade(symbol, TradeSide.SELL, SkipReason.DUST_THRESHOLD, qty))
        return Decimal("0")

    residual = held_qty - qty
    if 0 < residual < config.dust_shares_threshold:
        flags.append(Flag(
            code=FlagCode.DUST_RESIDUAL_ROUNDED,
            severity=Severity.INFO,
            message=f"{symbol}: residual {residual} shares below dust threshold; selling all",
            observed=SellCapPayload(symbol=symbol, requested_qty=qty, allowed_qty=held_qty),
        ))
        qty = held_qty
    return qty


def _apply_sell_protection(
    symbol: str,
    qty: Decimal,
    request: RebalanceRequest,
    proxy_map: ProxyMap,
    flags: list[Flag],
    skipped: list[SkippedTrade],
    price: Decimal,
) -> Decimal:
    """Cap a sell so shares attributed to the dislocation sleeve stay put."""
    if not request.protect_from_sells or not request.sleeve_positions:
        return qty
    protected = request.protected_symbols
    if protected is not None and symbol not in protected and proxy_map.parent_of(symbol) not in protected:
        return qty
    record = request.sleeve_positions.get(symbol)
    if record is None or record.dislocation_qty <= 0:
        return qty

    held_qty = holdings_by_symbol(request.portfolio.holdings).get(symbol, Decimal("0"))
    sellable = max(held_qty - record.dislocation_qty, Decimal("0"))
    if qty <= sellable:
        return qty

    flags.append(Flag(
        code=FlagCode.SELL_CAPPED_DUE_TO_SLEEVE_PROTECTION,
        severity=Severity.INFO,
        message=f"{symbol}: sell capped at {sellable} to protect dislocation shares",
        observed=SellCapPayload(
            symbol=symbol,
            requested_qty=qty,
            allowed_qty=sellable,
            dislocation_qty=record.dislocation_qty,
        ),
    ))
    if sellable <= 0:
        skipped.append(
            SkippedTrade(symbol, TradeSide.SELL, SkipReason.SLEEVE_PROTECTION, qty, qty * price)
        )
    return sellable


def _order(
    symbol: str,
    side: TradeSide,
    qty: Decimal,
    price: Decimal,
    parent: str,
    full_exit: bool,
) -> TradeOrder:
    if side == TradeSide.SELL:
        thesis = (
            f"Full exit of {symbol}: {parent} removed from target"
            if full_exit else f"Trim {symbol} toward {parent} target weight"
        )
    else:
        thesis = f"Add {symbol} toward {parent} target weight"
    return TradeOrder(
        symbol=symbol,
        side=side,
        order_type=OrderType.MARKET,
        notional_usd=qty * price,
        quantity=qty,
        est_price=price,
        thesis=thesis,
        invalidation="Target plan changes before execution",
        portfolio_level=PortfolioLevel(target_hold_days=30),
    )
