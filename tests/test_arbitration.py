"""
Tests for insurance/growth sleeve arbitration.
"""

from decimal import Decimal

import pytest

from sleeve_pilot.config import ArbitrationConfig
from sleeve_pilot.sleeves.arbitration import arbitrate_sleeves

from conftest import make_regimes


class TestArbitrateSleeves:
    """Tests for arbitrate_sleeves."""

    def test_calm_risk_on_allows_growth(self):
        result = arbitrate_sleeves(False, make_regimes("risk_on", 0.8, "low"))

        assert result.allowed.growth_convexity
        assert not result.allowed.insurance

    def test_risk_off_allows_insurance(self):
        result = arbitrate_sleeves(False, make_regimes("risk_off", 0.7, "rising"))

        assert result.allowed.insurance
        assert not result.allowed.growth_convexity
        assert "Equity regime risk_off: insurance allowed" in result.reasons

    def test_dislocation_blocks_growth(self):
        """Even a perfect growth regime yields insurance under a dislocation."""
        result = arbitrate_sleeves(True, make_regimes("risk_on", 0.95, "low"))

        assert result.allowed.insurance
        assert not result.allowed.growth_convexity

    def test_low_confidence_blocks_growth(self):
        result = arbitrate_sleeves(False, make_regimes("risk_on", 0.55, "low"))

        assert not result.allowed.growth_convexity
        assert not result.allowed.insurance
        assert any(r.startswith("Growth blocked: equity confidence") for r in result.reasons)
        assert "No option sleeve allowed" in result.reasons

    def test_confidence_threshold_is_inclusive(self):
        result = arbitrate_sleeves(False, make_regimes("risk_on", 0.6, "low"))

        assert result.allowed.growth_convexity

    def test_rising_vol_blocks_growth(self):
        result = arbitrate_sleeves(False, make_regimes("risk_on", 0.9, "rising"))

        assert not result.allowed.growth_convexity
        assert "Growth blocked: volatility rising" in result.reasons

    def test_neutral_allows_nothing(self):
        result = arbitrate_sleeves(False, make_regimes("neutral", 0.5, "low"))

        assert not result.allowed.growth_convexity
        assert not result.allowed.insurance

    def test_stressed_vol_insurance_is_opt_in(self):
        regimes = make_regimes("neutral", 0.5, "stressed")

        default = arbitrate_sleeves(False, regimes)
        opted_in = arbitrate_sleeves(False, regimes, ArbitrationConfig(insurance_on_stressed_vol=True))

        assert not default.allowed.insurance
        assert opted_in.allowed.insurance

    def test_custom_growth_threshold(self):
        config = ArbitrationConfig(growth_min_confidence=Decimal("0.9"))

        result = arbitrate_sleeves(False, make_regimes("risk_on", 0.8, "low"), config)

        assert not result.allowed.growth_convexity

    @pytest.mark.parametrize("dislocation", [True, False])
    @pytest.mark.parametrize("equity", ["risk_on", "risk_off", "neutral"])
    @pytest.mark.parametrize("vol", ["low", "rising", "stressed"])
    def test_never_both_allowed(self, dislocation, equity, vol):
        config = ArbitrationConfig(insurance_on_stressed_vol=True)

        result = arbitrate_sleeves(dislocation, make_regimes(equity, 0.9, vol), config)

        assert not (result.allowed.insurance and result.allowed.growth_convexity)
