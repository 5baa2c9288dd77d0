"""
Option contract selection and order construction for the option sleeves.

Contracts come from an optional chain provider; without one (or when the
chain has nothing suitable) a synthetic contract is priced from the
underlying quote so the sleeve can still be sized.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional

from sleeve_pilot.config import OptionSleeveConfig
from sleeve_pilot.models import (
    OptionAction,
    OptionCandidate,
    OptionLeg,
    OptionType,
    OrderType,
    PortfolioLevel,
    Sleeve,
    TradeOrder,
    TradeSide,
)


CENT = Decimal("0.01")
DAYS_PER_MONTH = 30

# Synthetic premium as a fraction of the underlying price
SYNTHETIC_PUT_PREMIUM_PCT = Decimal("0.05")
SYNTHETIC_CALL_PREMIUM_PCT = Decimal("0.03")

# Moneyness anchors clamped into the configured window
PUT_MONEYNESS_ANCHOR = Decimal("0.9")
CALL_MONEYNESS_ANCHOR = Decimal("1.0")


class OptionChainError(Exception):
    """Raised when an option chain cannot be fetched."""
    pass


class OptionChainProvider(ABC):
    """
    Abstract source of option chains.

    Implementations may call out to a broker or market-data API; failures
    should raise OptionChainError (any exception is tolerated by callers).
    """

    @abstractmethod
    def get_put_candidates(self, symbol: str, as_of: datetime) -> list[OptionCandidate]:
        """
        Fetch put contracts for an underlying.

        Args:
            symbol: Underlying symbol
            as_of: Run timestamp

        Returns:
            List of put candidates

        Raises:
            OptionChainError: If the chain cannot be fetched
        """
        pass

    @abstractmethod
    def get_call_candidates(self, symbol: str, as_of: datetime) -> list[OptionCandidate]:
        """
        Fetch call contracts for an underlying.

        Args:
            symbol: Underlying symbol
            as_of: Run timestamp

        Returns:
            List of call candidates

        Raises:
            OptionChainError: If the chain cannot be fetched
        """
        pass


def days_until(expiry: Optional[date], as_of: datetime) -> Optional[int]:
    """Calendar days from the run date to expiry."""
    if expiry is None:
        return None
    return (expiry - as_of.date()).days


def choose_from_chain(
    candidates: list[OptionCandidate],
    price: Decimal,
    as_of: datetime,
    config: OptionSleeveConfig,
) -> Optional[OptionCandidate]:
    """
    Pick the contract closest to the money inside the tenor/moneyness windows.

    Args:
        candidates: Chain contracts of the sleeve's option type
        price: Underlying price
        as_of: Run timestamp
        config: Sleeve configuration with the windows

    Returns:
        The chosen candidate, or None when nothing qualifies
    """
    if price <= 0:
        return None

    eligible = []
    for candidate in candidates:
        if candidate.premium is None or candidate.premium <= 0:
            continue
        days = candidate.days_to_expiry
        if days is None:
            days = days_until(candidate.expiry, as_of)
        if days is None:
            continue
        months = Decimal(days) / DAYS_PER_MONTH
        if months < config.min_months or months > config.max_months:
            continue
        moneyness = candidate.strike / price
        if moneyness < config.min_moneyness or moneyness > config.max_moneyness:
            continue
        eligible.append((abs(candidate.strike - price), days, candidate))

    if not eligible:
        return None
    eligible.sort(key=lambda item: (item[0], item[1]))
    return eligible[0][2]


def target_moneyness(option_type: OptionType, config: OptionSleeveConfig) -> Decimal:
    """Anchor moneyness clamped into [min_moneyness, max_moneyness]."""
    anchor = PUT_MONEYNESS_ANCHOR if option_type == OptionType.PUT else CALL_MONEYNESS_ANCHOR
    return min(max(config.min_moneyness, anchor), config.max_moneyness)


def synthesize_candidate(
    symbol: str,
    option_type: OptionType,
    price: Decimal,
    as_of: datetime,
    config: OptionSleeveConfig,
) -> Optional[OptionCandidate]:
    """
    Price a synthetic contract from the underlying quote.

    Puts cost price * 5% / moneyness and calls price * 3% * moneyness, both
    grossed up by the limit price buffer. Expiry is placed at the middle of
    the configured tenor window.

    Args:
        symbol: Underlying symbol
        option_type: PUT or CALL
        price: Underlying price
        as_of: Run timestamp
        config: Sleeve configuration

    Returns:
        Synthetic candidate, or None when the price is not positive
    """
    if price <= 0:
        return None
    moneyness = target_moneyness(option_type, config)
    if moneyness <= 0:
        return None
    buffer = Decimal("1") + config.limit_price_buffer_pct
    if option_type == OptionType.PUT:
        premium = price * SYNTHETIC_PUT_PREMIUM_PCT / moneyness * buffer
    else:
        premium = price * SYNTHETIC_CALL_PREMIUM_PCT * moneyness * buffer

    mid_months = (config.min_months + config.max_months) / 2
    days = int((mid_months * DAYS_PER_MONTH).to_integral_value(rounding=ROUND_HALF_UP))
    return OptionCandidate(
        symbol=symbol,
        option_type=option_type,
        strike=(price * moneyness).quantize(CENT, rounding=ROUND_HALF_UP),
        expiry=as_of.date() + timedelta(days=days),
        premium=premium.quantize(CENT, rounding=ROUND_HALF_UP),
        days_to_expiry=days,
    )


def contracts_affordable(
    budget: Decimal,
    premium: Decimal,
    multiplier: int,
) -> int:
    """Whole contracts purchasable with a budget at a per-share premium."""
    per_contract = premium * multiplier
    if per_contract <= 0 or budget <= 0:
        return 0
    return int((budget / per_contract).to_integral_value(rounding=ROUND_DOWN))


def build_open_order(
    sleeve: Sleeve,
    candidate: OptionCandidate,
    contracts: int,
    config: OptionSleeveConfig,
    thesis: str,
    confidence: float = 0.5,
) -> TradeOrder:
    """
    BUY_TO_OPEN limit order at premium * (1 + buffer).

    Args:
        sleeve: INSURANCE or GROWTH
        candidate: Contract to buy
        contracts: Whole number of contracts
        config: Sleeve configuration
        thesis: Human-readable rationale
        confidence: Confidence attached to the order

    Returns:
        TradeOrder carrying an OptionLeg
    """
    limit_price = (candidate.premium * (Decimal("1") + config.limit_price_buffer_pct)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    return TradeOrder(
        symbol=candidate.symbol,
        side=TradeSide.BUY,
        order_type=OrderType.LIMIT,
        notional_usd=candidate.premium * config.contract_multiplier * contracts,
        quantity=Decimal(contracts),
        est_price=candidate.premium,
        thesis=thesis,
        invalidation="Arbitrator withdraws permission or expiry window reached",
        confidence=confidence,
        portfolio_level=PortfolioLevel(
            target_hold_days=int(config.min_months * DAYS_PER_MONTH),
        ),
        sleeve=sleeve,
        option=OptionLeg(
            action=OptionAction.BUY_TO_OPEN,
            option_type=candidate.option_type,
            strike=candidate.strike,
            expiry=candidate.expiry,
            contracts=contracts,
            limit_price=limit_price,
            multiplier=config.contract_multiplier,
        ),
    )


def build_close_order(
    sleeve: Sleeve,
    underlying: str,
    option_type: OptionType,
    strike: Decimal,
    expiry: Optional[date],
    contracts: int,
    mark_price: Optional[Decimal],
    config: OptionSleeveConfig,
    thesis: str,
) -> TradeOrder:
    """
    SELL_TO_CLOSE order; a limit at mark * (1 - buffer) when a mark exists,
    otherwise a marketable order with no limit price.
    """
    limit_price = None
    if mark_price is not None and mark_price > 0:
        limit_price = (mark_price * (Decimal("1") - config.limit_price_buffer_pct)).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
    notional = (mark_price or Decimal("0")) * config.contract_multiplier * contracts
    return TradeOrder(
        symbol=underlying,
        side=TradeSide.SELL,
        order_type=OrderType.LIMIT if limit_price is not None else OrderType.MARKET,
        notional_usd=notional,
        quantity=Decimal(contracts),
        est_price=mark_price,
        thesis=thesis,
        invalidation="None; closing order",
        confidence=1.0,
        portfolio_level=PortfolioLevel(target_hold_days=0),
        sleeve=sleeve,
        option=OptionLeg(
            action=OptionAction.SELL_TO_CLOSE,
            option_type=option_type,
            strike=strike,
            expiry=expiry,
            contracts=contracts,
            limit_price=limit_price,
            multiplier=config.contract_multiplier,
        ),
    )
