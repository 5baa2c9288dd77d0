"""
Holdings aggregation for the sleeve allocation system.

Provides utilities for valuing holdings, grouping them under proxy parents
and rounding share quantities to what the broker accepts.
"""

from collections import defaultdict
from decimal import Decimal, ROUND_DOWN
from typing import Optional

from sleeve_pilot.config import ProxyMap
from sleeve_pilot.models import Holding


FRACTIONAL_QUANTUM = Decimal("0.000001")


def round_shares(quantity: Decimal, fractional: bool = False) -> Decimal:
    """
    Round a share quantity down to a tradable amount.

    Args:
        quantity: Raw share quantity
        fractional: Whether fractional shares are supported

    Returns:
        Whole shares, or shares to 6 decimal places when fractional
    """
    if quantity <= 0:
        return Decimal("0")
    if fractional:
        return quantity.quantize(FRACTIONAL_QUANTUM, rounding=ROUND_DOWN)
    return quantity.quantize(Decimal("1"), rounding=ROUND_DOWN)


def holdings_by_symbol(holdings: list[Holding]) -> dict[str, Decimal]:
    """
    Total quantity per symbol.

    Args:
        holdings: Broker holdings

    Returns:
        Dictionary mapping symbol to quantity (zero quantities dropped)
    """
    quantities: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for h in holdings:
        quantities[h.symbol] += h.quantity
    return {s: q for s, q in quantities.items() if q != 0}


def calculate_market_values(
    holdings: list[Holding],
    prices: dict[str, Decimal],
) -> dict[str, Decimal]:
    """
    Market value per symbol; holdings without a price are skipped.

    Args:
        holdings: Broker holdings
        prices: Current price per symbol

    Returns:
        Dictionary mapping symbol to market value
    """
    values: dict[str, Decimal] = {}
    for symbol, qty in holdings_by_symbol(holdings).items():
        price = prices.get(symbol)
        if price is None:
            continue
        values[symbol] = qty * price
    return values


def aggregate_by_parent(
    values: dict[str, Decimal],
    proxy_map: Optional[ProxyMap] = None,
) -> dict[str, Decimal]:
    """
    Sum per-symbol values under their proxy parent.

    Args:
        values: Value (or weight) per symbol
        proxy_map: Parent/proxy lookup; symbols without one are their own parent

    Returns:
        Dictionary mapping parent symbol to summed value
    """
    proxy_map = proxy_map or ProxyMap()
    grouped: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for symbol, value in values.items():
        grouped[proxy_map.parent_of(symbol)] += value
    return dict(grouped)


def calculate_position_weights(
    values: dict[str, Decimal],
    total_equity: Decimal,
) -> dict[str, Decimal]:
    """
    Convert values to weights of total equity.

    Args:
        values: Value per symbol (or parent)
        total_equity: Denominator, usually cash + invested value

    Returns:
        Dictionary mapping symbol to weight; empty when equity is not positive
    """
    if total_equity <= 0:
        return {}
    return {symbol: value / total_equity for symbol, value in values.items()}
