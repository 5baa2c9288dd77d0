"""
Pytest fixtures for the sleeve allocation system tests.

Provides common configuration, regime snapshots and portfolio data used
across test modules.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from sleeve_pilot.config import BotConfig
from sleeve_pilot.models import (
    EquityRegime,
    Holding,
    PortfolioState,
    RegimeContext,
    TargetWeight,
    VolRegime,
)
from sleeve_pilot.sleeves.state import InMemoryStateStore


def make_regimes(
    equity_label: str = "risk_on",
    confidence: float = 0.8,
    vol_label: str = "low",
) -> RegimeContext:
    """Build a regime context with the given equity/vol labels."""
    return RegimeContext(
        equity_regime=EquityRegime(label=equity_label, confidence=confidence),
        vol_regime=VolRegime(label=vol_label),
    )


@pytest.fixture
def as_of() -> datetime:
    """A fixed Monday afternoon run timestamp."""
    return datetime(2025, 3, 3, 15, 0)


@pytest.fixture
def bot_config() -> BotConfig:
    """Configuration with a small ETF universe and one proxy family."""
    return BotConfig(
        universe=["SPY", "QQQ", "IWM", "AGG"],
        environment="paper",
        account_key="test",
        options_underlyings=["SPY", "QQQ"],
        proxies={"SPY": ["SPYM"]},
    )


@pytest.fixture
def risk_on_regimes() -> RegimeContext:
    """Confident risk-on market with low volatility."""
    return make_regimes("risk_on", 0.9, "low")


@pytest.fixture
def risk_off_regimes() -> RegimeContext:
    """Risk-off market with rising volatility."""
    return make_regimes("risk_off", 0.7, "rising")


@pytest.fixture
def quotes() -> dict[str, Decimal]:
    """Latest prices for the test universe and its proxy."""
    return {
        "SPY": Decimal("500"),
        "SPYM": Decimal("80"),
        "QQQ": Decimal("400"),
        "IWM": Decimal("200"),
        "AGG": Decimal("100"),
    }


@pytest.fixture
def targets() -> list[TargetWeight]:
    """Core sleeve target weights."""
    return [
        TargetWeight(symbol="SPY", weight=Decimal("0.5")),
        TargetWeight(symbol="QQQ", weight=Decimal("0.3")),
        TargetWeight(symbol="AGG", weight=Decimal("0.2")),
    ]


@pytest.fixture
def cash_portfolio() -> PortfolioState:
    """An all-cash account."""
    return PortfolioState(cash=Decimal("100000"), equity=Decimal("100000"), holdings=[])


@pytest.fixture
def invested_portfolio(as_of) -> PortfolioState:
    """An account holding SPY and AGG, opened a week before the run."""
    opened = as_of - timedelta(days=7)
    return PortfolioState(
        cash=Decimal("10000"),
        equity=Decimal("20000"),
        holdings=[
            Holding(symbol="SPY", quantity=Decimal("10"), avg_price=Decimal("480"), hold_since=opened),
            Holding(symbol="AGG", quantity=Decimal("50"), avg_price=Decimal("99"), hold_since=opened),
        ],
    )


@pytest.fixture
def store() -> InMemoryStateStore:
    """Empty in-memory sleeve state store."""
    return InMemoryStateStore()
