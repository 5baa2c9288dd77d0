"""
Lifecycle planning for the insurance (puts) and growth (calls) option sleeves.

Both sleeves run the same state machine over a persisted state record:

    INACTIVE --open--> DEPLOYED --close--> UNWINDING --broker confirms--> INACTIVE

Each run the planner:

1. loads state and reconciles it against the broker's option positions,
2. closes a deployed position the arbitrator no longer allows,
3. closes (or holds into expiry) a deployed position near expiry,
4. otherwise tries to open a new position inside the sleeve's sub-budget,

then writes the state back once. A position is never opened and closed on
the same calendar day.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sleeve_pilot.config import BotConfig, OptionSleeveConfig
from sleeve_pilot.models import (
    Flag,
    FlagCode,
    OptionCandidate,
    OptionMark,
    OptionPosition,
    OptionSleeveState,
    OptionType,
    PlannedAction,
    ReserveContext,
    Severity,
    Sleeve,
    SleeveFlagPayload,
    SleevePlanResult,
    SleeveStatus,
    TradeOrder,
    UnderlyingIntent,
    option_position_id,
)
from sleeve_pilot.sleeves.contracts import (
    OptionChainProvider,
    build_close_order,
    build_open_order,
    choose_from_chain,
    contracts_affordable,
    days_until,
    synthesize_candidate,
)
from sleeve_pilot.sleeves.state import SleeveStateStore
from sleeve_pilot.sleeves.underlying import (
    UsabilityCheck,
    always_usable,
    select_options_underlying,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SleeveProfile:
    """Static description of one option sleeve: instrument, intent and flag codes."""
    sleeve: Sleeve
    label: str
    option_type: OptionType
    intent: UnderlyingIntent
    open_planned: FlagCode
    unwind_due_to_arbitrator: FlagCode
    near_expiry: FlagCode
    near_expiry_close: FlagCode
    unwind_confirmed: FlagCode
    unwind_pending: FlagCode
    position_missing: FlagCode
    adopted_from_broker: FlagCode
    chain_unavailable: FlagCode


INSURANCE_PROFILE = SleeveProfile(
    sleeve=Sleeve.INSURANCE,
    label="Insurance",
    option_type=OptionType.PUT,
    intent=UnderlyingIntent.HEDGE,
    open_planned=FlagCode.INSURANCE_OPEN_PLANNED,
    unwind_due_to_arbitrator=FlagCode.INSURANCE_UNWIND_DUE_TO_ARBITRATOR,
    near_expiry=FlagCode.INSURANCE_NEAR_EXPIRY,
    near_expiry_close=FlagCode.INSURANCE_NEAR_EXPIRY_CLOSE,
    unwind_confirmed=FlagCode.INSURANCE_UNWIND_CONFIRMED,
    unwind_pending=FlagCode.INSURANCE_UNWIND_PENDING,
    position_missing=FlagCode.INSURANCE_POSITION_MISSING,
    adopted_from_broker=FlagCode.INSURANCE_ADOPTED_FROM_BROKER,
    chain_unavailable=FlagCode.INSURANCE_CHAIN_UNAVAILABLE,
)

GROWTH_PROFILE = SleeveProfile(
    sleeve=Sleeve.GROWTH,
    label="Growth",
    option_type=OptionType.CALL,
    intent=UnderlyingIntent.GROWTH,
    open_planned=FlagCode.GROWTH_OPEN_PLANNED,
    unwind_due_to_arbitrator=FlagCode.GROWTH_UNWIND_DUE_TO_ARBITRATOR,
    near_expiry=FlagCode.GROWTH_NEAR_EXPIRY,
    near_expiry_close=FlagCode.GROWTH_NEAR_EXPIRY_CLOSE,
    unwind_confirmed=FlagCode.GROWTH_UNWIND_CONFIRMED,
    unwind_pending=FlagCode.GROWTH_UNWIND_PENDING,
    position_missing=FlagCode.GROWTH_POSITION_MISSING,
    adopted_from_broker=FlagCode.GROWTH_ADOPTED_FROM_BROKER,
    chain_unavailable=FlagCode.GROWTH_CHAIN_UNAVAILABLE,
)


@dataclass
class SleevePlanInputs:
    """
    Per-run inputs to an option sleeve planner.

    Attributes:
        run_id: Identifier of the current run
        as_of: Run timestamp
        allowed: Arbitrator permission for this sleeve
        reserve_pool_usd: Reserve budget from the capital partition
        quotes: Underlying prices by symbol
        cash_available: Cash the sleeve may spend (None means unconstrained)
        option_positions: Broker option positions; None when unknown
        option_marks: Broker marks keyed by position id
        confidence: Confidence attached to opening orders
    """
    run_id: str
    as_of: datetime
    allowed: bool
    reserve_pool_usd: Decimal
    quotes: dict[str, Decimal]
    cash_available: Optional[Decimal] = None
    option_positions: Optional[list[OptionPosition]] = None
    option_marks: dict[str, OptionMark] = field(default_factory=dict)
    confidence: float = 0.5


class OptionSleevePlanner:
    """
    State machine for a single option sleeve.

    Args:
        profile: INSURANCE_PROFILE or GROWTH_PROFILE
        config: Bot configuration
        store: Sleeve state store
        chain_provider: Optional option chain source; synthetic contracts are
            priced when omitted
        is_usable: Predicate used during underlying selection
    """

    def __init__(
        self,
        profile: SleeveProfile,
        config: BotConfig,
        store: SleeveStateStore,
        chain_provider: Optional[OptionChainProvider] = None,
        is_usable: Optional[UsabilityCheck] = None,
    ):
        self.profile = profile
        self.config = config
        self.store = store
        self.chain_provider = chain_provider
        self.is_usable = is_usable or always_usable

    @property
    def sleeve_config(self) -> OptionSleeveConfig:
        if self.profile.sleeve == Sleeve.INSURANCE:
            return self.config.insurance
        return self.config.growth

    def plan(self, inputs: SleevePlanInputs) -> SleevePlanResult:
        """
        Run one planning pass and persist the resulting state.

        Args:
            inputs: Per-run inputs

        Returns:
            SleevePlanResult with the planned action and optional order
        """
        profile = self.profile
        flags: list[Flag] = []

        state = self.store.load(profile.sleeve, self.config.environment, self.config.account_key)
        positions = self._own_positions(inputs.option_positions)
        state, matched = self._reconcile(state, positions, inputs, flags)
        reserve = self._reserve_context(inputs.reserve_pool_usd, positions, state)

        # Close still outstanding from an earlier run
        if state.status == SleeveStatus.UNWINDING:
            if matched is not None and not _same_day(state.unwind_as_of, inputs.as_of):
                order = self._close_order(state, matched, inputs, "Retrying close of unwinding position")
                state = replace(state, unwind_as_of=inputs.as_of)
                return self._finish(state, PlannedAction.CLOSE, order, None, reserve, flags)
            return self._finish(
                state, PlannedAction.NONE, None,
                "Awaiting broker confirmation of close", reserve, flags,
            )

        opened_today = _same_day(state.opened_as_of, inputs.as_of)

        if not inputs.allowed:
            if state.status == SleeveStatus.DEPLOYED and not opened_today:
                order = self._close_order(state, matched, inputs, "Arbitrator withdrew permission")
                flags.append(Flag(
                    code=profile.unwind_due_to_arbitrator,
                    severity=Severity.WARN,
                    message=f"{profile.label} no longer allowed; closing position",
                    observed=self._state_payload(state),
                ))
                state = replace(state, status=SleeveStatus.UNWINDING, unwind_as_of=inputs.as_of)
                return self._finish(state, PlannedAction.CLOSE, order, None, reserve, flags)
            action = PlannedAction.HOLD if state.status == SleeveStatus.DEPLOYED else PlannedAction.NONE
            return self._finish(
                state, action, None, f"{profile.label} not allowed", reserve, flags,
            )

        if state.status == SleeveStatus.DEPLOYED:
            return self._plan_deployed(state, matched, inputs, opened_today, reserve, flags)

        return self._plan_open(state, inputs, reserve, flags)

    # ------------------------------------------------------------------
    # Deployed positions
    # ------------------------------------------------------------------

    def _plan_deployed(
        self,
        state: OptionSleeveState,
        matched: Optional[OptionPosition],
        inputs: SleevePlanInputs,
        opened_today: bool,
        reserve: ReserveContext,
        flags: list[Flag],
    ) -> SleevePlanResult:
        profile = self.profile
        cfg = self.sleeve_config

        dte = self._days_to_expiry(state, inputs)
        if dte is None:
            return self._finish(state, PlannedAction.HOLD, None, "Expiry unknown", reserve, flags)

        if dte > cfg.close_within_days or opened_today:
            return self._finish(state, PlannedAction.HOLD, None, None, reserve, flags)

        payload = replace(self._state_payload(state), days_to_expiry=dte)
        if cfg.allow_expire:
            flags.append(Flag(
                code=profile.near_expiry,
                severity=Severity.INFO,
                message=f"{profile.label} position {dte} days from expiry; holding to expiry",
                observed=payload,
            ))
            return self._finish(state, PlannedAction.HOLD, None, None, reserve, flags)

        order = self._close_order(state, matched, inputs, f"Closing {dte} days before expiry")
        flags.append(Flag(
            code=profile.near_expiry_close,
            severity=Severity.INFO,
            message=f"{profile.label} position {dte} days from expiry; closing",
            observed=payload,
        ))
        state = replace(state, status=SleeveStatus.UNWINDING, unwind_as_of=inputs.as_of)
        return self._finish(state, PlannedAction.CLOSE, order, None, reserve, flags)

    def _days_to_expiry(self, state: OptionSleeveState, inputs: SleevePlanInputs) -> Optional[int]:
        if state.underlying and state.strike is not None:
            pid = option_position_id(
                state.underlying, self.profile.option_type, state.strike, state.expiry
            )
            mark = inputs.option_marks.get(pid)
            if mark is not None and mark.days_to_expiry is not None:
                return mark.days_to_expiry
        return days_until(state.expiry, inputs.as_of)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    def _plan_open(
        self,
        state: OptionSleeveState,
        inputs: SleevePlanInputs,
        reserve: ReserveContext,
        flags: list[Flag],
    ) -> SleevePlanResult:
        profile = self.profile
        cfg = self.sleeve_config

        if not cfg.enabled:
            return self._finish(
                state, PlannedAction.NONE, None, f"{profile.label} sleeve disabled", reserve, flags,
            )

        selection = select_options_underlying(profile.intent, self.config, self.is_usable)
        tried = selection.tried
        if selection.symbol is None:
            return self._finish(
                state, PlannedAction.NONE, None, "No underlying available", reserve, flags, tried,
            )

        price = inputs.quotes.get(selection.symbol)
        if price is None or price <= 0:
            return self._finish(
                state, PlannedAction.NONE, None, "Underlying price unavailable", reserve, flags, tried,
            )

        candidate = self._select_contract(selection.symbol, price, inputs.as_of, flags)
        if candidate is None:
            return self._finish(
                state, PlannedAction.NONE, None, "No contract available", reserve, flags, tried,
            )

        budget = reserve.available_usd
        if inputs.cash_available is not None:
            budget = min(budget, max(inputs.cash_available, Decimal("0")))

        contracts = contracts_affordable(budget, candidate.premium, cfg.contract_multiplier)
        if contracts < 1:
            return self._finish(
                state, PlannedAction.NONE, None,
                "Budget insufficient for 1 contract", reserve, flags, tried,
            )

        order = build_open_order(
            sleeve=profile.sleeve,
            candidate=candidate,
            contracts=contracts,
            config=cfg,
            thesis=(
                f"{profile.label} sleeve: buy {contracts} {candidate.symbol} "
                f"{candidate.strike} {profile.option_type.value.lower()}s"
            ),
            confidence=inputs.confidence,
        )
        state = OptionSleeveState(
            status=SleeveStatus.DEPLOYED,
            opened_run_id=inputs.run_id,
            opened_as_of=inputs.as_of,
            underlying=candidate.symbol,
            strike=candidate.strike,
            expiry=candidate.expiry,
            contracts=contracts,
            premium_usd=order.notional_usd,
        )
        flags.append(Flag(
            code=profile.open_planned,
            severity=Severity.INFO,
            message=f"{profile.label} open planned: {contracts} contracts on {candidate.symbol}",
            observed=SleeveFlagPayload(
                underlying=candidate.symbol,
                strike=candidate.strike,
                expiry=candidate.expiry,
                contracts=contracts,
                notional_usd=order.notional_usd,
            ),
        ))
        return self._finish(state, PlannedAction.OPEN, order, None, reserve, flags, tried)

    def _select_contract(
        self,
        symbol: str,
        price: Decimal,
        as_of: datetime,
        flags: list[Flag],
    ) -> Optional[OptionCandidate]:
        cfg = self.sleeve_config
        if self.chain_provider is None:
            return synthesize_candidate(symbol, self.profile.option_type, price, as_of, cfg)

        try:
            if self.profile.option_type == OptionType.PUT:
                chain = self.chain_provider.get_put_candidates(symbol, as_of)
            else:
                chain = self.chain_provider.get_call_candidates(symbol, as_of)
        except Exception as e:
            logger.warning("%s chain fetch failed for %s: %s", self.profile.label, symbol, e)
            flags.append(Flag(
                code=self.profile.chain_unavailable,
                severity=Severity.WARN,
                message=f"Option chain unavailable for {symbol}: {e}",
                observed=SleeveFlagPayload(underlying=symbol),
            ))
            return None

        chain = [c for c in chain if c.option_type == self.profile.option_type]
        return choose_from_chain(chain, price, as_of, cfg)

    # ------------------------------------------------------------------
    # Reconciliation and accounting
    # ------------------------------------------------------------------

    def _own_positions(
        self,
        option_positions: Optional[list[OptionPosition]],
    ) -> Optional[list[OptionPosition]]:
        if option_positions is None:
            return None
        return [
            p for p in option_positions
            if p.option_type == self.profile.option_type and p.contracts > 0
        ]

    def _reconcile(
        self,
        state: OptionSleeveState,
        positions: Optional[list[OptionPosition]],
        inputs: SleevePlanInputs,
        flags: list[Flag],
    ) -> tuple[OptionSleeveState, Optional[OptionPosition]]:
        """Align persisted state with broker positions; returns (state, matching position)."""
        if positions is None:
            return state, None

        profile = self.profile
        matched = _find_position(state, positions)

        if state.status == SleeveStatus.UNWINDING:
            if matched is None:
                flags.append(Flag(
                    code=profile.unwind_confirmed,
                    severity=Severity.INFO,
                    message=f"{profile.label} close confirmed by broker; sleeve inactive",
                    observed=self._state_payload(state),
                ))
                return OptionSleeveState.inactive(reason="Unwind confirmed"), None
            flags.append(Flag(
                code=profile.unwind_pending,
                severity=Severity.INFO,
                message=f"{profile.label} position still open at broker",
                observed=self._state_payload(state),
            ))
            return state, matched

        if state.status == SleeveStatus.DEPLOYED:
            if matched is None and not _same_day(state.opened_as_of, inputs.as_of):
                flags.append(Flag(
                    code=profile.position_missing,
                    severity=Severity.WARN,
                    message=f"{profile.label} position not found at broker; sleeve reset",
                    observed=self._state_payload(state),
                ))
                return OptionSleeveState.inactive(reason="Position missing at broker"), None
            return state, matched

        if positions:
            adopted = max(positions, key=lambda p: p.contracts)
            premium = None
            if adopted.avg_open_price is not None:
                premium = adopted.avg_open_price * adopted.multiplier * adopted.contracts
            state = OptionSleeveState(
                status=SleeveStatus.DEPLOYED,
                underlying=adopted.underlying,
                strike=adopted.strike,
                expiry=adopted.expiry,
                contracts=adopted.contracts,
                premium_usd=premium,
                reason="Adopted from broker positions",
            )
            flags.append(Flag(
                code=profile.adopted_from_broker,
                severity=Severity.WARN,
                message=f"{profile.label} position found at broker while inactive; adopted",
                observed=self._state_payload(state),
            ))
            return state, adopted

        return state, None

    def _reserve_context(
        self,
        reserve_pool_usd: Decimal,
        positions: Optional[list[OptionPosition]],
        state: OptionSleeveState,
    ) -> ReserveContext:
        cfg = self.sleeve_config
        sleeve_budget = max(reserve_pool_usd, Decimal("0")) * cfg.spend_pct
        if positions is not None:
            consumed = sum((p.marked_value for p in positions), Decimal("0"))
        elif state.status != SleeveStatus.INACTIVE and state.premium_usd is not None:
            consumed = state.premium_usd
        else:
            consumed = Decimal("0")
        return ReserveContext(
            reserve_pool_usd=reserve_pool_usd,
            spend_pct=cfg.spend_pct,
            sleeve_budget_usd=sleeve_budget,
            consumed_usd=consumed,
            available_usd=max(Decimal("0"), sleeve_budget - consumed),
        )

    def _close_order(
        self,
        state: OptionSleeveState,
        matched: Optional[OptionPosition],
        inputs: SleevePlanInputs,
        thesis: str,
    ) -> Optional[TradeOrder]:
        underlying = state.underlying or (matched.underlying if matched else None)
        strike = state.strike if state.strike is not None else (matched.strike if matched else None)
        if underlying is None or strike is None:
            return None
        contracts = matched.contracts if matched is not None else (state.contracts or 0)
        if contracts < 1:
            return None

        pid = option_position_id(underlying, self.profile.option_type, strike, state.expiry)
        mark = inputs.option_marks.get(pid)
        mark_price = mark.mark_price if mark is not None else None
        if mark_price is None and matched is not None:
            mark_price = matched.market_price

        return build_close_order(
            sleeve=self.profile.sleeve,
            underlying=underlying,
            option_type=self.profile.option_type,
            strike=strike,
            expiry=state.expiry,
            contracts=contracts,
            mark_price=mark_price,
            config=self.sleeve_config,
            thesis=f"{self.profile.label} sleeve: {thesis}",
        )

    def _state_payload(self, state: OptionSleeveState) -> SleeveFlagPayload:
        return SleeveFlagPayload(
            underlying=state.underlying,
            strike=state.strike,
            expiry=state.expiry,
            contracts=state.contracts,
            notional_usd=state.premium_usd,
        )

    def _finish(
        self,
        state: OptionSleeveState,
        action: PlannedAction,
        order: Optional[TradeOrder],
        reason: Optional[str],
        reserve: ReserveContext,
        flags: list[Flag],
        tried: Optional[list[str]] = None,
    ) -> SleevePlanResult:
        state = replace(state, reason=reason)
        self.store.save(self.profile.sleeve, state, self.config.environment, self.config.account_key)
        return SleevePlanResult(
            sleeve=self.profile.sleeve,
            state=state,
            planned_action=action,
            order=order,
            reason=reason,
            reserve_context=reserve,
            flags=flags,
            underlyings_tried=list(tried or []),
        )


def _same_day(stamp: Optional[datetime], as_of: datetime) -> bool:
    return stamp is not None and stamp.date() == as_of.date()


def _find_position(
    state: OptionSleeveState,
    positions: list[OptionPosition],
) -> Optional[OptionPosition]:
    if state.underlying is None:
        return None
    for p in positions:
        if p.underlying != state.underlying:
            continue
        if state.strike is not None and p.strike != state.strike:
            continue
        if state.expiry is not None and p.expiry is not None and p.expiry != state.expiry:
            continue
        return p
    return None


def plan_insurance_sleeve(
    inputs: SleevePlanInputs,
    config: BotConfig,
    store: SleeveStateStore,
    chain_provider: Optional[OptionChainProvider] = None,
) -> SleevePlanResult:
    """Plan the insurance (protective puts) sleeve for one run."""
    return OptionSleevePlanner(INSURANCE_PROFILE, config, store, chain_provider).plan(inputs)


def plan_growth_sleeve(
    inputs: SleevePlanInputs,
    config: BotConfig,
    store: SleeveStateStore,
    chain_provider: Optional[OptionChainProvider] = None,
) -> SleevePlanResult:
    """Plan the growth (convexity calls) sleeve for one run."""
    return OptionSleevePlanner(GROWTH_PROFILE, config, store, chain_provider).plan(inputs)
