"""
Hooks the dislocation overlay exposes to the rest of the run.

The overlay itself (tier detection, add/hold scheduling) lives outside this
package. What the core needs is which permissions the current phase grants
and a base/dislocation split of each symbol's shares that stays consistent
with broker holdings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sleeve_pilot.models import (
    DislocationPermissions,
    DislocationPhase,
    Flag,
    FlagCode,
    Holding,
    Severity,
    SleevePosition,
    SymbolsPayload,
)
from sleeve_pilot.portfolio.holdings import holdings_by_symbol


def derive_lifecycle_permissions(
    phase: DislocationPhase,
    tier_engaged: bool = False,
    freeze_during_add_hold: bool = True,
) -> DislocationPermissions:
    """
    Map an overlay phase to the permissions other planners must respect.

    ADD and HOLD protect dislocation shares from base-sleeve sells (and
    optionally freeze the base rebalance); ADD also allows adding while a
    tier is engaged; REINTEGRATE hands shares back to the base sleeve.

    Args:
        phase: Current overlay phase
        tier_engaged: Whether a dislocation tier is currently engaged
        freeze_during_add_hold: Freeze base rebalancing during ADD/HOLD

    Returns:
        DislocationPermissions for the run
    """
    if phase == DislocationPhase.ADD:
        return DislocationPermissions(
            active=True,
            allow_add=tier_engaged,
            protect_from_sells=True,
            freeze_base_rebalance=freeze_during_add_hold,
        )
    if phase == DislocationPhase.HOLD:
        return DislocationPermissions(
            active=True,
            protect_from_sells=True,
            freeze_base_rebalance=freeze_during_add_hold,
        )
    if phase == DislocationPhase.REINTEGRATE:
        return DislocationPermissions(allow_reintegration=True)
    return DislocationPermissions()


def reconcile_sleeve_positions(
    holdings: list[Holding],
    positions: Optional[dict[str, SleevePosition]],
    as_of: Optional[datetime] = None,
) -> tuple[dict[str, SleevePosition], list[Flag]]:
    """
    Keep the base/dislocation split consistent with broker quantities.

    Without a prior record every share is attributed to the base sleeve.
    When the broker holds fewer shares than recorded, the base sleeve is
    reduced first, then the dislocation sleeve; extra shares are added to
    the base sleeve. Symbols no longer held are zeroed.

    Args:
        holdings: Broker holdings
        positions: Previously recorded split, keyed by symbol
        as_of: Timestamp stamped on changed records

    Returns:
        Tuple of (reconciled positions, flags)
    """
    held = holdings_by_symbol(holdings)
    flags: list[Flag] = []

    if positions is None:
        initialized = {
            symbol: SleevePosition(base_qty=qty, dislocation_qty=Decimal("0"), updated_at=as_of)
            for symbol, qty in held.items()
        }
        flags.append(Flag(
            code=FlagCode.SLEEVE_POSITIONS_INITIALIZED,
            severity=Severity.INFO,
            message="Sleeve positions initialized from broker holdings",
            observed=SymbolsPayload(symbols=tuple(sorted(initialized))),
        ))
        return initialized, flags

    reconciled: dict[str, SleevePosition] = {}
    changed: list[str] = []

    for symbol in sorted(set(held) | set(positions)):
        qty = held.get(symbol, Decimal("0"))
        record = positions.get(symbol)
        if record is None:
            reconciled[symbol] = SleevePosition(qty, Decimal("0"), as_of)
            changed.append(symbol)
            continue
        if record.total_qty == qty:
            reconciled[symbol] = record
            continue

        base, disloc = record.base_qty, record.dislocation_qty
        if qty > record.total_qty:
            base += qty - record.total_qty
        else:
            excess = record.total_qty - qty
            take = min(base, excess)
            base -= take
            disloc = max(disloc - (excess - take), Decimal("0"))
        reconciled[symbol] = SleevePosition(base, disloc, as_of)
        changed.append(symbol)

    if changed:
        flags.append(Flag(
            code=FlagCode.SLEEVE_RECONCILED,
            severity=Severity.INFO,
            message=f"Sleeve positions reconciled for {len(changed)} symbol(s)",
            observed=SymbolsPayload(symbols=tuple(changed)),
        ))
    return reconciled, flags
