"""
Capital partition between the core ETF sleeve and the options reserve.

NAV is split by fixed percentages into a core pool and a reserve pool. The
core pool is further scaled by a regime-dependent exposure cap to give the
deploy budget that caps core buys for the run. Everything here is pure.
"""

from decimal import Decimal, ROUND_DOWN
from typing import Optional

from sleeve_pilot.config import CapitalConfig, ExposureCapStep
from sleeve_pilot.models import (
    CapitalBudgets,
    Holding,
    RegimeContext,
    TradeOrder,
    TradeSide,
)


def compute_nav(
    holdings: list[Holding],
    cash: Decimal,
    quotes: dict[str, Decimal],
) -> Decimal:
    """
    Net asset value: cash plus holdings marked at quotes.

    Holdings without a quote contribute nothing.

    Args:
        holdings: Broker holdings
        cash: Cash balance
        quotes: Current price per symbol

    Returns:
        NAV in account currency
    """
    nav = cash
    for h in holdings:
        price = quotes.get(h.symbol)
        if price is None or h.quantity == 0:
            continue
        nav += h.quantity * price
    return nav


def lookup_exposure_cap(
    confidence: float,
    table: list[ExposureCapStep],
) -> Decimal:
    """
    Look up the base exposure cap for an equity-regime confidence.

    The row with the highest threshold not above the confidence wins; a
    confidence below every threshold uses the first row.

    Args:
        confidence: Equity regime confidence in [0, 1]
        table: Rows ordered by increasing confidence_threshold

    Returns:
        Cap percentage in [0, 1]
    """
    if not table:
        return Decimal("1")
    cap = table[0].cap_pct
    for step in table:
        if confidence >= step.confidence_threshold:
            cap = step.cap_pct
        else:
            break
    return cap


def compute_confidence_scale(
    regimes: Optional[RegimeContext],
    config: CapitalConfig,
) -> Decimal:
    """
    Scale applied to the exposure cap when the caller does not provide one.

    Args:
        regimes: Current regime context (None means no scaling)
        config: Capital configuration

    Returns:
        low_confidence_scale below deploy_conf_threshold, otherwise 1
    """
    if regimes is None:
        return Decimal("1")
    if regimes.equity_regime.confidence < config.deploy_conf_threshold:
        return config.low_confidence_scale
    return Decimal("1")


def compute_budgets(
    nav: Decimal,
    config: CapitalConfig,
    regimes: Optional[RegimeContext] = None,
    confidence_scale: Optional[Decimal] = None,
) -> CapitalBudgets:
    """
    Split NAV into core and reserve pools and derive the core deploy budget.

    Args:
        nav: Net asset value
        config: Capital configuration (core/reserve split, cap table)
        regimes: Regime context used for the cap lookup
        confidence_scale: Externally supplied scale; derived when omitted

    Returns:
        CapitalBudgets for the run
    """
    core_budget = nav * config.core_pct
    reserve_budget = nav * config.reserve_pct

    confidence = regimes.equity_regime.confidence if regimes is not None else 1.0
    base_cap = lookup_exposure_cap(confidence, config.exposure_cap_table)

    if confidence_scale is None:
        confidence_scale = compute_confidence_scale(regimes, config)
    confidence_scale = min(max(Decimal(confidence_scale), Decimal("0")), Decimal("1"))

    deploy_pct = base_cap * confidence_scale
    deploy_budget = max(core_budget * deploy_pct, Decimal("0"))

    return CapitalBudgets(
        nav=nav,
        core_budget=core_budget,
        reserve_budget=reserve_budget,
        base_exposure_cap_pct=base_cap,
        confidence_scale=confidence_scale,
        deploy_pct=deploy_pct,
        deploy_budget_usd=deploy_budget,
    )


def clamp_buy_orders_to_budget(
    orders: list[TradeOrder],
    max_buy_notional: Decimal,
    fractional: bool = False,
) -> list[TradeOrder]:
    """
    Scale BUY orders down proportionally so their total fits a budget.

    SELL orders pass through unchanged. Orders that carry a share quantity
    are re-rounded after scaling, so the scaled total may land slightly
    below the budget. Orders that round to zero shares are dropped.

    Args:
        orders: Orders to clamp
        max_buy_notional: Budget for the sum of BUY notionals
        fractional: Whether fractional share quantities are allowed

    Returns:
        New list of orders; the input is returned unchanged when it fits
    """
    buy_total = sum(
        (o.notional_usd for o in orders if o.side == TradeSide.BUY), Decimal("0")
    )
    if buy_total <= max_buy_notional or buy_total == 0:
        return list(orders)

    scale = max(max_buy_notional, Decimal("0")) / buy_total
    clamped: list[TradeOrder] = []
    for order in orders:
        if order.side != TradeSide.BUY:
            clamped.append(order)
            continue
        notional = order.notional_usd * scale
        quantity = order.quantity
        if quantity is not None and order.est_price:
            quantum = Decimal("0.000001") if fractional else Decimal("1")
            quantity = (notional / order.est_price).quantize(quantum, rounding=ROUND_DOWN)
            notional = quantity * order.est_price
            if quantity == 0:
                continue
        clamped.append(order.with_notional(notional, quantity))
    return clamped
