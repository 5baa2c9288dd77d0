"""
Options underlying selection.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from sleeve_pilot.config import BotConfig
from sleeve_pilot.models import UnderlyingIntent


UsabilityCheck = Callable[[str], bool]


@dataclass
class UnderlyingSelection:
    """Chosen underlying (None when nothing was usable) and every symbol tried."""
    symbol: Optional[str]
    tried: list[str] = field(default_factory=list)


def always_usable(symbol: str) -> bool:
    return True


def select_options_underlying(
    intent: UnderlyingIntent,
    config: BotConfig,
    is_usable: UsabilityCheck = always_usable,
) -> UnderlyingSelection:
    """
    Pick the underlying for an option sleeve.

    The sleeve's preferred list (hedge_preferred or growth_preferred) is
    walked when non-empty, otherwise options_underlyings. The first symbol
    accepted by is_usable wins.

    Args:
        intent: HEDGE for insurance puts, GROWTH for growth calls
        config: Bot configuration
        is_usable: Predicate deciding whether a symbol can be traded now

    Returns:
        UnderlyingSelection with the chosen symbol and the symbols tried
    """
    preferred = (
        config.hedge_preferred if intent == UnderlyingIntent.HEDGE else config.growth_preferred
    )
    candidates = preferred if preferred else config.options_underlyings

    tried: list[str] = []
    for symbol in candidates:
        tried.append(symbol)
        if is_usable(symbol):
            return UnderlyingSelection(symbol=symbol, tried=tried)
    return UnderlyingSelection(symbol=None, tried=tried)
