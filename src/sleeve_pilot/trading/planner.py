"""
Whole-share execution planning for the core ETF sleeve.

Turns target weights and a buy budget into share quantities the broker can
fill. When a symbol has no price, or a single share does not fit its slice of
the budget, a cheaper proxy from the same family is used instead. Names that
still cannot be afforded are dropped, lowest priority first.
"""

from decimal import Decimal, ROUND_DOWN
from typing import Optional

from sleeve_pilot.config import ProxyMap
from sleeve_pilot.models import (
    ExecutionPlan,
    Flag,
    FlagCode,
    PlannedPosition,
    PlanStatus,
    Severity,
    Substitution,
    SubstitutionPayload,
    SubstitutionReason,
    TargetWeight,
)
from sleeve_pilot.portfolio.holdings import round_shares


DEFAULT_TRACKING_ERROR_THRESHOLD = Decimal("0.05")


def normalize_weights(targets: list[TargetWeight]) -> dict[str, Decimal]:
    """
    Normalise positive target weights to sum to 1.

    Args:
        targets: Target weights (duplicates are summed)

    Returns:
        Dictionary mapping symbol to normalised weight; empty when nothing is positive
    """
    weights: dict[str, Decimal] = {}
    for t in targets:
        if t.weight > 0:
            weights[t.symbol] = weights.get(t.symbol, Decimal("0")) + t.weight
    total = sum(weights.values(), Decimal("0"))
    if total <= 0:
        return {}
    return {symbol: w / total for symbol, w in weights.items()}


def _priced(symbol: str, prices: dict[str, Decimal]) -> bool:
    price = prices.get(symbol)
    return price is not None and price > 0


def plan_whole_share_execution(
    targets: list[TargetWeight],
    prices: dict[str, Decimal],
    buy_budget_usd: Decimal,
    proxy_map: Optional[ProxyMap] = None,
    min_cash_usd: Decimal = Decimal("0"),
    fractional: bool = False,
    tracking_error_threshold: Decimal = DEFAULT_TRACKING_ERROR_THRESHOLD,
) -> ExecutionPlan:
    """
    Size target weights into executable share quantities.

    Args:
        targets: Target weights by symbol (with optional priority; lower is kept longer)
        prices: Current price per symbol
        buy_budget_usd: Budget available for the target portfolio
        proxy_map: Parent/proxy lookup used for substitutions
        min_cash_usd: Cash to keep aside from the budget
        fractional: Size in fractional shares instead of whole shares
        tracking_error_threshold: Max absolute weight error before the plan is PARTIAL

    Returns:
        ExecutionPlan with positions, achieved weights and diagnostics
    """
    proxy_map = proxy_map or ProxyMap()
    weights = normalize_weights(targets)
    priority = {t.symbol: t.priority for t in targets}
    budget = max(buy_budget_usd - min_cash_usd, Decimal("0"))
    flags: list[Flag] = []
    substitutions: list[Substitution] = []

    if not weights or budget <= 0:
        return ExecutionPlan(
            status=PlanStatus.UNEXECUTABLE,
            target_weights=weights,
            achieved_weights={s: Decimal("0") for s in weights},
            positions=[],
            budget_usd=budget,
            leftover_cash=budget,
        )

    # Resolve the executed symbol for each target
    executed: dict[str, str] = {}
    for symbol in sorted(weights, key=lambda s: (-weights[s], s)):
        chosen = symbol if _priced(symbol, prices) else None
        if chosen is None:
            chosen = next((p for p in proxy_map.proxies_of(symbol) if _priced(p, prices)), None)
        if chosen is not None and not fractional:
            slice_usd = budget * weights[symbol]
            if prices[chosen] > slice_usd:
                cheaper = [
                    p for p in proxy_map.family(symbol)
                    if _priced(p, prices) and prices[p] <= slice_usd
                ]
                if cheaper:
                    chosen = max(cheaper, key=lambda p: prices[p])

        if chosen is None:
            substitutions.append(
                Substitution(symbol, None, SubstitutionReason.DROPPED_UNEXECUTABLE)
            )
            continue
        executed[symbol] = chosen
        if chosen != symbol:
            substitutions.append(
                Substitution(symbol, chosen, SubstitutionReason.PROXY_SUBSTITUTION)
            )
            flags.append(Flag(
                code=FlagCode.PROXY_SUBSTITUTED,
                severity=Severity.INFO,
                message=f"{symbol} executed as {chosen}",
                observed=SubstitutionPayload(original_symbol=symbol, executed_symbol=chosen),
            ))
        else:
            substitutions.append(Substitution(symbol, symbol, SubstitutionReason.ORIGINAL))

    # Drop names until one share of each fits the budget
    if not fractional:
        kept = sorted(executed, key=lambda s: (priority.get(s, 0), -weights[s], s))
        while kept and sum(prices[executed[s]] for s in kept) > budget:
            dropped = kept.pop()
            flags.append(Flag(
                code=FlagCode.DROPPED_FOR_AFFORDABILITY,
                severity=Severity.WARN,
                message=f"{dropped} dropped: budget cannot cover one share of every name",
                observed=SubstitutionPayload(
                    original_symbol=dropped, executed_symbol=executed[dropped]
                ),
            ))
            substitutions = [
                Substitution(dropped, None, SubstitutionReason.DROPPED_UNEXECUTABLE)
                if sub.original_symbol == dropped else sub
                for sub in substitutions
            ]
            del executed[dropped]
        if not executed:
            flags.append(Flag(
                code=FlagCode.CANNOT_AFFORD_ONE_SHARE_EACH,
                severity=Severity.ERROR,
                message="Budget cannot buy a single share of any target",
            ))

    if not executed:
        return ExecutionPlan(
            status=PlanStatus.UNEXECUTABLE,
            target_weights=weights,
            achieved_weights={s: Decimal("0") for s in weights},
            positions=[],
            budget_usd=budget,
            leftover_cash=budget,
            substitutions=substitutions,
            flags=flags,
        )

    kept_total = sum((weights[s] for s in executed), Decimal("0"))
    target_value = {s: budget * weights[s] / kept_total for s in executed}
    quantities: dict[str, Decimal] = {}
    for symbol, value in target_value.items():
        qty = round_shares(value / prices[executed[symbol]], fractional)
        if not fractional:
            qty = max(qty, Decimal("1"))
        quantities[symbol] = qty

    def spent() -> Decimal:
        return sum(
            (quantities[s] * prices[executed[s]] for s in quantities), Decimal("0")
        )

    if not fractional:
        # Minimum-one-share rounding can overshoot; trim the most overweight names
        while spent() > budget:
            reducible = [s for s in quantities if quantities[s] > 1]
            if not reducible:
                break
            worst = max(
                reducible,
                key=lambda s: (quantities[s] * prices[executed[s]] - target_value[s], s),
            )
            quantities[worst] -= 1

        # Largest remainder: hand leftover cash to the most underweight affordable names
        while True:
            leftover = budget - spent()
            candidates = [
                s for s in quantities
                if prices[executed[s]] <= leftover
                and target_value[s] - quantities[s] * prices[executed[s]] > 0
            ]
            if not candidates:
                break
            best = max(
                candidates,
                key=lambda s: (target_value[s] - quantities[s] * prices[executed[s]], s),
            )
            quantities[best] += 1

    positions = [
        PlannedPosition(
            symbol=executed[s],
            original_symbol=s,
            quantity=quantities[s],
            est_price=prices[executed[s]],
        )
        for s in sorted(quantities)
        if quantities[s] > 0
    ]

    achieved = {s: Decimal("0") for s in weights}
    for p in positions:
        achieved[p.original_symbol] = p.est_notional / budget
    errors = [abs(achieved[s] - weights[s]) for s in weights]
    max_abs_error = max(errors, default=Decimal("0"))
    l1_error = sum(errors, Decimal("0"))

    status = PlanStatus.OK
    if any(sub.reason == SubstitutionReason.DROPPED_UNEXECUTABLE for sub in substitutions):
        status = PlanStatus.PARTIAL
    if max_abs_error > tracking_error_threshold:
        status = PlanStatus.PARTIAL
        flags.append(Flag(
            code=FlagCode.WEIGHT_TRACKING_ERROR_HIGH,
            severity=Severity.WARN,
            message=f"Max weight error {max_abs_error:.4f} exceeds {tracking_error_threshold}",
            observed=SubstitutionPayload(
                original_symbol=max(weights, key=lambda s: abs(achieved[s] - weights[s])),
                max_abs_error=max_abs_error,
            ),
        ))

    total = sum((p.est_notional for p in positions), Decimal("0"))
    return ExecutionPlan(
        status=status,
        target_weights=weights,
        achieved_weights=achieved,
        positions=positions,
        budget_usd=budget,
        leftover_cash=budget - total,
        substitutions=substitutions,
        max_abs_error=max_abs_error,
        l1_error=l1_error,
        flags=flags,
    )
