"""
Core data models for the sleeve allocation system.

This module defines the fundamental data structures used throughout the system,
including holdings, regime snapshots, trade orders, capital budgets, sleeve
states, execution plans and diagnostic flags.
All monetary values, weights and share quantities use Decimal for precision;
regime confidences are plain floats in [0, 1].
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
import uuid


class TradeSide(Enum):
    """Trade direction indicator."""
    BUY = "BUY"
    SELL = "SELL"


class OrderType(Enum):
    """Order pricing instruction."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class OptionType(Enum):
    """Option right."""
    PUT = "PUT"
    CALL = "CALL"


class OptionAction(Enum):
    """Opening/closing instruction for a long option leg."""
    BUY_TO_OPEN = "BUY_TO_OPEN"
    SELL_TO_CLOSE = "SELL_TO_CLOSE"


class Sleeve(Enum):
    """Capital sleeve an order or position belongs to."""
    BASE = "base"
    DISLOCATION = "dislocation"
    INSURANCE = "insurance"
    GROWTH = "growth"


class SleeveStatus(Enum):
    """Lifecycle status of an option sleeve."""
    INACTIVE = "INACTIVE"
    DEPLOYED = "DEPLOYED"
    UNWINDING = "UNWINDING"


class PlannedAction(Enum):
    """What an option sleeve planner decided this run."""
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    HOLD = "HOLD"
    NONE = "NONE"


class UnderlyingIntent(Enum):
    """Purpose for which an options underlying is selected."""
    HEDGE = "HEDGE"
    GROWTH = "GROWTH"


class DislocationPhase(Enum):
    """Lifecycle phase of the dislocation overlay."""
    INACTIVE = "INACTIVE"
    ADD = "ADD"
    HOLD = "HOLD"
    REINTEGRATE = "REINTEGRATE"
    EXITED = "EXITED"


class RebalanceStatus(Enum):
    """Outcome of a rebalance pass."""
    OK = "OK"
    SKIPPED_NO_DRIFT = "SKIPPED_NO_DRIFT"
    SKIPPED_NO_CHANGES = "SKIPPED_NO_CHANGES"
    UNEXECUTABLE = "UNEXECUTABLE"


class PlanStatus(Enum):
    """Outcome of whole-share target planning."""
    OK = "OK"
    PARTIAL = "PARTIAL"
    UNEXECUTABLE = "UNEXECUTABLE"


class SubstitutionReason(Enum):
    """Why an executed symbol differs (or not) from the target symbol."""
    ORIGINAL = "ORIGINAL"
    PROXY_SUBSTITUTION = "PROXY_SUBSTITUTION"
    DROPPED_UNEXECUTABLE = "DROPPED_UNEXECUTABLE"


class SkipReason(Enum):
    """Why a candidate rebalance trade was not emitted."""
    DUST_THRESHOLD = "DUST_THRESHOLD"
    MIN_TRADE_NOTIONAL = "MIN_TRADE_NOTIONAL"
    INSUFFICIENT_CASH = "INSUFFICIENT_CASH"
    MISSING_PRICE = "MISSING_PRICE"
    SLEEVE_PROTECTION = "SLEEVE_PROTECTION"
    BASE_FROZEN = "BASE_FROZEN"


class Severity(Enum):
    """Diagnostic flag severity."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class FlagCode(Enum):
    """Closed set of diagnostic flag codes emitted by the planners."""
    # Insurance sleeve
    INSURANCE_OPEN_PLANNED = "INSURANCE_OPEN_PLANNED"
    INSURANCE_UNWIND_DUE_TO_ARBITRATOR = "INSURANCE_UNWIND_DUE_TO_ARBITRATOR"
    INSURANCE_NEAR_EXPIRY = "INSURANCE_NEAR_EXPIRY"
    INSURANCE_NEAR_EXPIRY_CLOSE = "INSURANCE_NEAR_EXPIRY_CLOSE"
    INSURANCE_UNWIND_CONFIRMED = "INSURANCE_UNWIND_CONFIRMED"
    INSURANCE_UNWIND_PENDING = "INSURANCE_UNWIND_PENDING"
    INSURANCE_POSITION_MISSING = "INSURANCE_POSITION_MISSING"
    INSURANCE_ADOPTED_FROM_BROKER = "INSURANCE_ADOPTED_FROM_BROKER"
    INSURANCE_CHAIN_UNAVAILABLE = "INSURANCE_CHAIN_UNAVAILABLE"
    # Growth sleeve
    GROWTH_OPEN_PLANNED = "GROWTH_OPEN_PLANNED"
    GROWTH_UNWIND_DUE_TO_ARBITRATOR = "GROWTH_UNWIND_DUE_TO_ARBITRATOR"
    GROWTH_NEAR_EXPIRY = "GROWTH_NEAR_EXPIRY"
    GROWTH_NEAR_EXPIRY_CLOSE = "GROWTH_NEAR_EXPIRY_CLOSE"
    GROWTH_UNWIND_CONFIRMED = "GROWTH_UNWIND_CONFIRMED"
    GROWTH_UNWIND_PENDING = "GROWTH_UNWIND_PENDING"
    GROWTH_POSITION_MISSING = "GROWTH_POSITION_MISSING"
    GROWTH_ADOPTED_FROM_BROKER = "GROWTH_ADOPTED_FROM_BROKER"
    GROWTH_CHAIN_UNAVAILABLE = "GROWTH_CHAIN_UNAVAILABLE"
    # Rebalance
    REBALANCE_DISABLED = "REBALANCE_DISABLED"
    REBALANCE_SKIPPED_DRIFT = "REBALANCE_SKIPPED_DRIFT"
    REBALANCE_TRIGGERED = "REBALANCE_TRIGGERED"
    SELL_CAPPED_DUE_TO_SLEEVE_PROTECTION = "SELL_CAPPED_DUE_TO_SLEEVE_PROTECTION"
    BASE_REBALANCE_FROZEN = "BASE_REBALANCE_FROZEN"
    DUST_RESIDUAL_ROUNDED = "DUST_RESIDUAL_ROUNDED"
    # Whole-share planning
    PROXY_SUBSTITUTED = "PROXY_SUBSTITUTED"
    DROPPED_FOR_AFFORDABILITY = "DROPPED_FOR_AFFORDABILITY"
    CANNOT_AFFORD_ONE_SHARE_EACH = "CANNOT_AFFORD_ONE_SHARE_EACH"
    WEIGHT_TRACKING_ERROR_HIGH = "WEIGHT_TRACKING_ERROR_HIGH"
    # Dislocation sleeve bookkeeping
    SLEEVE_POSITIONS_INITIALIZED = "SLEEVE_POSITIONS_INITIALIZED"
    SLEEVE_RECONCILED = "SLEEVE_RECONCILED"


class ActionType(Enum):
    """Types of logged actions for the decision log."""
    CONFIG_LOADED = "CONFIG_LOADED"
    BUDGETS_COMPUTED = "BUDGETS_COMPUTED"
    TARGET_PLAN_BUILT = "TARGET_PLAN_BUILT"
    REBALANCE_PLANNED = "REBALANCE_PLANNED"
    SLEEVES_ARBITRATED = "SLEEVES_ARBITRATED"
    SLEEVE_PLANNED = "SLEEVE_PLANNED"
    RISK_EVALUATED = "RISK_EVALUATED"
    RUN_COMPLETED = "RUN_COMPLETED"


# ---------------------------------------------------------------------------
# Portfolio snapshot
# ---------------------------------------------------------------------------


def to_naive_utc(stamp: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware timestamp to naive UTC; naive values pass through unchanged."""
    if stamp is None or stamp.tzinfo is None:
        return stamp
    return stamp.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class Holding:
    """
    A single equity/ETF position as reported by the broker.

    Attributes:
        symbol: Ticker symbol
        quantity: Shares held (whole unless fractional trading is supported)
        avg_price: Average cost per share
        hold_since: Timestamp the position was first opened, if known
    """
    symbol: str
    quantity: Decimal
    avg_price: Decimal
    hold_since: Optional[datetime] = None


@dataclass
class PortfolioState:
    """
    Read-only broker snapshot consumed by a run.

    Attributes:
        cash: Settled cash balance
        equity: Total account equity (cash + marked positions)
        holdings: Equity/ETF holdings
    """
    cash: Decimal
    equity: Decimal
    holdings: list[Holding] = field(default_factory=list)

    def holding(self, symbol: str) -> Optional[Holding]:
        """Return the holding for a symbol, if any."""
        for h in self.holdings:
            if h.symbol == symbol:
                return h
        return None


@dataclass(frozen=True)
class EquityRegime:
    """Equity trend classification."""
    label: str  # risk_on | risk_off | neutral
    confidence: float = 0.5


@dataclass(frozen=True)
class VolRegime:
    """Volatility classification."""
    label: str  # low | rising | stressed
    confidence: float = 0.5


@dataclass(frozen=True)
class RatesRegime:
    """Rates direction and policy stance."""
    label: str = "stable"  # rising | falling | stable
    stance: str = "neutral"  # restrictive | neutral | accommodative
    confidence: float = 0.5


@dataclass(frozen=True)
class RegimeContext:
    """
    Market-regime classification supplied by the regime collaborator.

    Attributes:
        equity_regime: Equity trend label with confidence
        vol_regime: Volatility label with confidence
        rates_regime: Rates direction/stance
        breadth: Market breadth label (broad | concentrated | unknown)
    """
    equity_regime: EquityRegime
    vol_regime: VolRegime
    rates_regime: RatesRegime = field(default_factory=RatesRegime)
    breadth: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "equity_regime": {
                "label": self.equity_regime.label,
                "confidence": self.equity_regime.confidence,
            },
            "vol_regime": {
                "label": self.vol_regime.label,
                "confidence": self.vol_regime.confidence,
            },
            "rates_regime": {
                "label": self.rates_regime.label,
                "stance": self.rates_regime.stance,
                "confidence": self.rates_regime.confidence,
            },
            "breadth": self.breadth,
        }


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PortfolioLevel:
    """Portfolio-level intent attached to every order."""
    target_hold_days: int = 30
    net_exposure_target: Decimal = Decimal("1")


@dataclass(frozen=True)
class OptionLeg:
    """
    Option-specific part of an order.

    Attributes:
        action: BUY_TO_OPEN or SELL_TO_CLOSE
        option_type: PUT or CALL
        strike: Strike price
        expiry: Expiration date (None for a synthetic contract without one)
        contracts: Whole number of contracts
        limit_price: Per-share limit price (None for a marketable close)
        multiplier: Shares per contract
        time_in_force: Broker time-in-force instruction
    """
    action: OptionAction
    option_type: OptionType
    strike: Decimal
    expiry: Optional[date]
    contracts: int
    limit_price: Optional[Decimal]
    multiplier: int = 100
    time_in_force: str = "DAY"


@dataclass
class TradeOrder:
    """
    A proposed order emitted by one of the planners.

    Attributes:
        symbol: Ticker symbol (the underlying for option orders)
        side: BUY or SELL
        order_type: MARKET or LIMIT
        notional_usd: Estimated notional value of the order
        quantity: Shares (or contracts for option orders); None when notional-only
        est_price: Price used to size the order
        thesis: Human-readable reason for the order
        invalidation: Condition under which the thesis no longer holds
        confidence: Confidence in the order in [0, 1]
        portfolio_level: Portfolio-level hold/exposure intent
        sleeve: Sleeve the order belongs to
        option: Option leg, for option orders only
    """
    symbol: str
    side: TradeSide
    order_type: OrderType
    notional_usd: Decimal
    quantity: Optional[Decimal] = None
    est_price: Optional[Decimal] = None
    thesis: str = ""
    invalidation: str = ""
    confidence: float = 0.5
    portfolio_level: PortfolioLevel = field(default_factory=PortfolioLevel)
    sleeve: Sleeve = Sleeve.BASE
    option: Optional[OptionLeg] = None

    @property
    def is_option(self) -> bool:
        """True for option orders."""
        return self.option is not None

    def with_notional(self, notional_usd: Decimal, quantity: Optional[Decimal]) -> "TradeOrder":
        """Return a copy with a new notional (and quantity)."""
        return replace(self, notional_usd=notional_usd, quantity=quantity)

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "symbol": self.symbol,
            "side": self.side.value,
            "order_type": self.order_type.value,
            "notional_usd": self.notional_usd,
            "quantity": self.quantity,
            "est_price": self.est_price,
            "sleeve": self.sleeve.value,
            "thesis": self.thesis,
        }
        if self.option is not None:
            record["option"] = {
                "action": self.option.action.value,
                "option_type": self.option.option_type.value,
                "strike": self.option.strike,
                "expiry": self.option.expiry,
                "contracts": self.option.contracts,
                "limit_price": self.option.limit_price,
                "time_in_force": self.option.time_in_force,
            }
        return record


@dataclass
class TradeIntent:
    """Set of orders submitted to the risk engine in one run."""
    as_of: datetime
    universe: list[str]
    orders: list[TradeOrder]


# ---------------------------------------------------------------------------
# Capital partition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapitalBudgets:
    """
    Result of splitting NAV into the core and reserve pools.

    Attributes:
        nav: Net asset value the budgets were derived from
        core_budget: NAV allocated to the core ETF sleeve
        reserve_budget: NAV allocated to the options reserve
        base_exposure_cap_pct: Cap looked up from the confidence table
        confidence_scale: Scale in [0, 1] applied to the cap
        deploy_pct: base_exposure_cap_pct * confidence_scale
        deploy_budget_usd: core_budget * deploy_pct
    """
    nav: Decimal
    core_budget: Decimal
    reserve_budget: Decimal
    base_exposure_cap_pct: Decimal
    confidence_scale: Decimal
    deploy_pct: Decimal
    deploy_budget_usd: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "nav": self.nav,
            "core_budget": self.core_budget,
            "reserve_budget": self.reserve_budget,
            "base_exposure_cap_pct": self.base_exposure_cap_pct,
            "confidence_scale": self.confidence_scale,
            "deploy_pct": self.deploy_pct,
            "deploy_budget_usd": self.deploy_budget_usd,
        }


# ---------------------------------------------------------------------------
# Diagnostic flags
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SleeveFlagPayload:
    """Observed values attached to option sleeve flags."""
    underlying: Optional[str] = None
    strike: Optional[Decimal] = None
    expiry: Optional[date] = None
    contracts: Optional[int] = None
    notional_usd: Optional[Decimal] = None
    days_to_expiry: Optional[int] = None


@dataclass(frozen=True)
class SellCapPayload:
    """Observed values attached to sell protection flags."""
    symbol: str
    requested_qty: Decimal
    allowed_qty: Decimal
    dislocation_qty: Decimal = Decimal("0")


@dataclass(frozen=True)
class DriftPayload:
    """Observed values attached to drift/trigger flags."""
    portfolio_drift: Decimal
    max_position_drift: Decimal
    triggers: tuple[str, ...] = ()


@dataclass(frozen=True)
class SubstitutionPayload:
    """Observed values attached to whole-share planning flags."""
    original_symbol: str
    executed_symbol: Optional[str] = None
    max_abs_error: Optional[Decimal] = None


@dataclass(frozen=True)
class SymbolsPayload:
    """Observed list of symbols a flag refers to."""
    symbols: tuple[str, ...] = ()


FlagPayload = Union[
    SleeveFlagPayload,
    SellCapPayload,
    DriftPayload,
    SubstitutionPayload,
    SymbolsPayload,
]


@dataclass(frozen=True)
class Flag:
    """
    Tagged diagnostic emitted by a planner.

    Attributes:
        code: Closed flag code
        severity: info, warn or error
        message: Human-readable description
        observed: Typed payload with the values that triggered the flag
    """
    code: FlagCode
    severity: Severity
    message: str
    observed: Optional[FlagPayload] = None

    def to_dict(self) -> dict[str, Any]:
        observed = None
        if self.observed is not None:
            observed = {
                k: v for k, v in self.observed.__dict__.items() if v is not None
            }
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "observed": observed,
        }


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskState:
    """Account-level risk inputs not present in the portfolio snapshot."""
    drawdown: Decimal = Decimal("0")
    as_of: Optional[datetime] = None


@dataclass
class ExposureSummary:
    """Cash and notional totals computed while evaluating risk."""
    current_cash: Decimal
    total_buy_notional: Decimal
    total_sell_notional: Decimal
    projected_cash: Decimal
    drawdown: Decimal


@dataclass
class RiskReport:
    """
    Verdict of the risk battery for one trade intent.

    Attributes:
        approved: True when no rule was violated
        blocked_reasons: One entry per violated rule, in evaluation order
        approved_orders: The orders when approved, otherwise empty
        exposure_summary: Cash and notional totals
    """
    approved: bool
    blocked_reasons: list[str]
    approved_orders: list[TradeOrder]
    exposure_summary: ExposureSummary


# ---------------------------------------------------------------------------
# Sleeve arbitration and option sleeves
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SleeveAllowance:
    """Per-run permissions granted by the arbitrator."""
    growth_convexity: bool
    insurance: bool


@dataclass(frozen=True)
class SleeveArbitrationResult:
    """Arbitrator verdict with the reasons behind it."""
    allowed: SleeveAllowance
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class OptionCandidate:
    """
    A single option contract under consideration.

    Attributes:
        symbol: Underlying symbol
        option_type: PUT or CALL
        strike: Strike price
        expiry: Expiration date (None when unknown)
        premium: Per-share premium
        days_to_expiry: Calendar days to expiry, when the source provides it
    """
    symbol: str
    option_type: OptionType
    strike: Decimal
    expiry: Optional[date]
    premium: Decimal
    days_to_expiry: Optional[int] = None


@dataclass
class OptionSleeveState:
    """
    Persisted lifecycle record of one option sleeve.

    Attributes:
        status: INACTIVE, DEPLOYED or UNWINDING
        opened_run_id: Run that opened the current position
        opened_as_of: Timestamp of the opening run
        underlying: Underlying symbol of the current position
        strike: Strike of the current position
        expiry: Expiry of the current position
        contracts: Contracts held
        premium_usd: Total premium paid
        unwind_as_of: Timestamp of the run that issued the closing order
        reason: Last reason recorded by the planner
    """
    status: SleeveStatus = SleeveStatus.INACTIVE
    opened_run_id: Optional[str] = None
    opened_as_of: Optional[datetime] = None
    underlying: Optional[str] = None
    strike: Optional[Decimal] = None
    expiry: Optional[date] = None
    contracts: Optional[int] = None
    premium_usd: Optional[Decimal] = None
    unwind_as_of: Optional[datetime] = None
    reason: Optional[str] = None

    @classmethod
    def inactive(cls, reason: Optional[str] = None) -> "OptionSleeveState":
        """Fresh INACTIVE state."""
        return cls(status=SleeveStatus.INACTIVE, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "opened_run_id": self.opened_run_id,
            "opened_as_of": self.opened_as_of.isoformat() if self.opened_as_of else None,
            "underlying": self.underlying,
            "strike": str(self.strike) if self.strike is not None else None,
            "expiry": self.expiry.isoformat() if self.expiry else None,
            "contracts": self.contracts,
            "premium_usd": str(self.premium_usd) if self.premium_usd is not None else None,
            "unwind_as_of": self.unwind_as_of.isoformat() if self.unwind_as_of else None,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OptionSleeveState":
        """Rebuild a state from its JSON form; raises on malformed input."""
        return cls(
            status=SleeveStatus(data.get("status", "INACTIVE")),
            opened_run_id=data.get("opened_run_id"),
            opened_as_of=(
                datetime.fromisoformat(data["opened_as_of"])
                if data.get("opened_as_of") else None
            ),
            underlying=data.get("underlying"),
            strike=Decimal(data["strike"]) if data.get("strike") is not None else None,
            expiry=date.fromisoformat(data["expiry"]) if data.get("expiry") else None,
            contracts=int(data["contracts"]) if data.get("contracts") is not None else None,
            premium_usd=(
                Decimal(data["premium_usd"]) if data.get("premium_usd") is not None else None
            ),
            unwind_as_of=(
                datetime.fromisoformat(data["unwind_as_of"])
                if data.get("unwind_as_of") else None
            ),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class OptionPosition:
    """
    Long option position reported by the broker.

    Attributes:
        underlying: Underlying symbol
        option_type: PUT or CALL
        strike: Strike price
        expiry: Expiration date
        contracts: Contracts held
        multiplier: Shares per contract
        avg_open_price: Per-share premium paid
        market_price: Current per-share mark
    """
    underlying: str
    option_type: OptionType
    strike: Decimal
    expiry: Optional[date]
    contracts: int
    multiplier: int = 100
    avg_open_price: Optional[Decimal] = None
    market_price: Optional[Decimal] = None

    @property
    def position_id(self) -> str:
        return option_position_id(self.underlying, self.option_type, self.strike, self.expiry)

    @property
    def marked_value(self) -> Decimal:
        """Current marked value, falling back to cost when no mark exists."""
        price = self.market_price if self.market_price is not None else self.avg_open_price
        if price is None:
            return Decimal("0")
        return price * self.multiplier * self.contracts


@dataclass(frozen=True)
class OptionMark:
    """Broker mark for an option position, keyed by position id."""
    position_id: str
    mark_price: Optional[Decimal] = None
    days_to_expiry: Optional[int] = None


def option_position_id(
    underlying: str,
    option_type: OptionType,
    strike: Decimal,
    expiry: Optional[date],
) -> str:
    """Build the UNDERLYING:TYPE:STRIKE:EXPIRY key used to match marks."""
    expiry_part = expiry.isoformat() if expiry else ""
    return f"{underlying}:{option_type.value}:{format(strike.normalize(), 'f')}:{expiry_part}"


@dataclass(frozen=True)
class ReserveContext:
    """
    Sub-budget accounting for an option sleeve.

    Attributes:
        reserve_pool_usd: Full reserve pool for the run
        spend_pct: Fraction of the pool available to this sleeve
        sleeve_budget_usd: reserve_pool_usd * spend_pct
        consumed_usd: Marked value of open positions of the sleeve's type
        available_usd: max(0, sleeve_budget_usd - consumed_usd)
    """
    reserve_pool_usd: Decimal
    spend_pct: Decimal
    sleeve_budget_usd: Decimal
    consumed_usd: Decimal
    available_usd: Decimal


@dataclass
class SleevePlanResult:
    """
    Outcome of one option sleeve planning pass.

    Attributes:
        sleeve: INSURANCE or GROWTH
        state: State persisted at the end of the pass
        planned_action: OPEN, CLOSE, HOLD or NONE
        order: Order to submit, if any
        reason: Why nothing was done, when applicable
        reserve_context: Sub-budget accounting
        flags: Diagnostics
        underlyings_tried: Underlyings considered during selection
    """
    sleeve: Sleeve
    state: OptionSleeveState
    planned_action: PlannedAction
    order: Optional[TradeOrder]
    reason: Optional[str]
    reserve_context: ReserveContext
    flags: list[Flag] = field(default_factory=list)
    underlyings_tried: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Dislocation overlay hooks
# ---------------------------------------------------------------------------


@dataclass
class SleevePosition:
    """Split of one symbol's shares between the base and dislocation sleeves."""
    base_qty: Decimal
    dislocation_qty: Decimal
    updated_at: Optional[datetime] = None

    @property
    def total_qty(self) -> Decimal:
        return self.base_qty + self.dislocation_qty


@dataclass(frozen=True)
class DislocationPermissions:
    """What the dislocation overlay allows other planners to do this run."""
    active: bool = False
    allow_add: bool = False
    protect_from_sells: bool = False
    allow_reintegration: bool = False
    freeze_base_rebalance: bool = False


# ---------------------------------------------------------------------------
# Execution planning and rebalance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TargetWeight:
    """Target allocation for one symbol."""
    symbol: str
    weight: Decimal
    priority: int = 0


@dataclass(frozen=True)
class PlannedPosition:
    """Whole-share target position produced by the execution planner."""
    symbol: str
    original_symbol: str
    quantity: Decimal
    est_price: Decimal

    @property
    def est_notional(self) -> Decimal:
        return self.quantity * self.est_price


@dataclass(frozen=True)
class Substitution:
    """Record of how a target symbol was executed."""
    original_symbol: str
    executed_symbol: Optional[str]
    reason: SubstitutionReason


@dataclass
class ExecutionPlan:
    """
    Target positions for the core sleeve after whole-share rounding.

    Attributes:
        status: OK, PARTIAL or UNEXECUTABLE
        target_weights: Normalised input weights by original symbol
        achieved_weights: Weights actually achieved by original symbol
        positions: Planned positions (executed symbol, whole shares)
        budget_usd: Budget the plan was sized against
        leftover_cash: Budget not spent after rounding
        substitutions: Per-symbol execution record
        max_abs_error: Largest absolute weight error
        l1_error: Sum of absolute weight errors
        flags: Diagnostics
    """
    status: PlanStatus
    target_weights: dict[str, Decimal]
    achieved_weights: dict[str, Decimal]
    positions: list[PlannedPosition]
    budget_usd: Decimal
    leftover_cash: Decimal
    substitutions: list[Substitution] = field(default_factory=list)
    max_abs_error: Decimal = Decimal("0")
    l1_error: Decimal = Decimal("0")
    flags: list[Flag] = field(default_factory=list)

    @property
    def total_notional(self) -> Decimal:
        return sum((p.est_notional for p in self.positions), Decimal("0"))


@dataclass(frozen=True)
class ParentDrift:
    """Current vs target weight of one proxy-parent group."""
    parent: str
    current_weight: Decimal
    target_weight: Decimal

    @property
    def drift(self) -> Decimal:
        return abs(self.current_weight - self.target_weight)


@dataclass
class DriftSnapshot:
    """Portfolio- and position-level drift measured by the rebalance engine."""
    total_equity: Decimal
    current_invested_pct: Decimal
    target_invested_pct: Decimal
    portfolio_drift: Decimal
    positions: list[ParentDrift] = field(default_factory=list)

    @property
    def max_position_drift(self) -> Decimal:
        return max((p.drift for p in self.positions), default=Decimal("0"))


@dataclass(frozen=True)
class SkippedTrade:
    """A rebalance trade that was considered but not emitted."""
    symbol: str
    side: TradeSide
    reason: SkipReason
    quantity: Decimal = Decimal("0")
    notional_usd: Decimal = Decimal("0")


@dataclass
class RebalanceResult:
    """
    Outcome of a rebalance pass over the core sleeve.

    Attributes:
        status: OK, SKIPPED_NO_DRIFT, SKIPPED_NO_CHANGES or UNEXECUTABLE
        buy_orders: Buy orders, in the plan's executed symbols
        sell_orders: Sell orders
        combined_orders: sell_orders followed by buy_orders
        drift: Drift snapshot that drove the decision
        triggers: Names of the triggers that fired
        skipped: Trades considered but not emitted
        flags: Diagnostics
        projected_cash: Cash after all orders fill at estimated prices
    """
    status: RebalanceStatus
    buy_orders: list[TradeOrder] = field(default_factory=list)
    sell_orders: list[TradeOrder] = field(default_factory=list)
    combined_orders: list[TradeOrder] = field(default_factory=list)
    drift: Optional[DriftSnapshot] = None
    triggers: list[str] = field(default_factory=list)
    skipped: list[SkippedTrade] = field(default_factory=list)
    flags: list[Flag] = field(default_factory=list)
    projected_cash: Optional[Decimal] = None


# ---------------------------------------------------------------------------
# Decision log
# ---------------------------------------------------------------------------


@dataclass
class DecisionLogEntry:
    """
    Single entry in the append-only decision log.

    Attributes:
        entry_id: Unique identifier
        timestamp: When the decision was made
        action_type: Type of action
        run_id: Run that produced the decision
        account_key: Account the run was for
        details: Action-specific details
    """
    entry_id: str
    timestamp: datetime
    action_type: ActionType
    run_id: Optional[str]
    account_key: Optional[str]
    details: dict

    @classmethod
    def create(
        cls,
        action_type: ActionType,
        run_id: Optional[str],
        details: dict,
        account_key: Optional[str] = None,
    ) -> "DecisionLogEntry":
        """Factory method to create a new log entry with current timestamp."""
        return cls(
            entry_id=str(uuid.uuid4()),
            timestamp=datetime.now(),
            action_type=action_type,
            run_id=run_id,
            account_key=account_key,
            details=details,
        )
