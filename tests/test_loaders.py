"""
Tests for data loading and saving.
"""

from datetime import date, datetime
from decimal import Decimal

import pandas as pd
import pytest

from sleeve_pilot.data.loaders import (
    DataLoadError,
    load_holdings,
    load_option_positions,
    load_quotes,
    load_regimes,
    load_sleeve_positions,
    load_targets,
    parse_regimes,
    save_orders,
    save_simulation_weeks,
    save_sleeve_positions,
)
from sleeve_pilot.models import (
    OptionType,
    OrderType,
    SleevePosition,
    TradeOrder,
    TradeSide,
)


class TestLoadCsvInputs:
    """Tests for the CSV loaders."""

    def test_load_holdings(self, tmp_path):
        path = tmp_path / "holdings.csv"
        path.write_text(
            "symbol,quantity,avg_price,hold_since\n"
            "spy,10,450.5,2025-01-02\n"
            "AGG,20,99,\n"
        )

        holdings = load_holdings(path)

        assert holdings[0].symbol == "SPY"
        assert holdings[0].quantity == Decimal("10")
        assert holdings[0].hold_since == datetime(2025, 1, 2)
        assert holdings[1].hold_since is None

    def test_hold_since_offsets_converted_to_utc(self, tmp_path):
        path = tmp_path / "holdings.csv"
        path.write_text(
            "symbol,quantity,avg_price,hold_since\n"
            "SPY,2,500,2025-02-01T00:00:00Z\n"
            "AGG,5,99,2025-02-01T05:30:00+05:30\n"
        )

        holdings = load_holdings(path)

        assert holdings[0].hold_since == datetime(2025, 2, 1)
        assert holdings[0].hold_since.tzinfo is None
        assert holdings[1].hold_since == datetime(2025, 2, 1)

    def test_missing_column(self, tmp_path):
        path = tmp_path / "holdings.csv"
        path.write_text("symbol,quantity\nSPY,10\n")

        with pytest.raises(DataLoadError, match="avg_price"):
            load_holdings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataLoadError, match="File not found"):
            load_quotes(tmp_path / "quotes.csv")

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "quotes.parquet"
        path.write_text("")

        with pytest.raises(DataLoadError, match="Failed to load CSV file"):
            load_quotes(path)

    def test_load_quotes(self, tmp_path):
        path = tmp_path / "quotes.csv"
        path.write_text("symbol,price\nSPY,500.25\nQQQ,\n")

        quotes = load_quotes(path)

        assert quotes == {"SPY": Decimal("500.25")}

    def test_non_positive_quote(self, tmp_path):
        path = tmp_path / "quotes.csv"
        path.write_text("symbol,price\nSPY,0\n")

        with pytest.raises(DataLoadError, match="Non-positive price"):
            load_quotes(path)

    def test_load_targets(self, tmp_path):
        path = tmp_path / "targets.csv"
        path.write_text("symbol,weight,priority\nSPY,0.6,0\nAGG,0.4,\n")

        targets = load_targets(path)

        assert [(t.symbol, t.weight, t.priority) for t in targets] == [
            ("SPY", Decimal("0.6"), 0),
            ("AGG", Decimal("0.4"), 0),
        ]

    def test_negative_target(self, tmp_path):
        path = tmp_path / "targets.csv"
        path.write_text("symbol,weight\nSPY,-0.1\n")

        with pytest.raises(DataLoadError, match="Negative target weight"):
            load_targets(path)

    def test_load_option_positions(self, tmp_path):
        path = tmp_path / "options.csv"
        path.write_text(
            "underlying,option_type,strike,expiry,contracts,market_price,days_to_expiry\n"
            "SPY,put,475,2025-07-18,2,12.5,137\n"
        )

        positions, marks = load_option_positions(path)

        assert positions[0].option_type == OptionType.PUT
        assert positions[0].expiry == date(2025, 7, 18)
        assert positions[0].multiplier == 100
        assert positions[0].marked_value == Decimal("2500.0")
        mark = marks[positions[0].position_id]
        assert mark.mark_price == Decimal("12.5")
        assert mark.days_to_expiry == 137

    def test_invalid_option_type(self, tmp_path):
        path = tmp_path / "options.csv"
        path.write_text("underlying,option_type,strike,expiry,contracts\nSPY,STRADDLE,475,2025-07-18,2\n")

        with pytest.raises(DataLoadError, match="Invalid option_type"):
            load_option_positions(path)


class TestRegimes:
    """Tests for regime snapshot loading."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "regimes.yaml"
        path.write_text(
            "equity_regime:\n  label: risk_on\n  confidence: 0.7\n"
            "vol_regime:\n  label: low\n"
            "breadth: broad\n"
        )

        regimes = load_regimes(path)

        assert regimes.equity_regime.label == "risk_on"
        assert regimes.equity_regime.confidence == 0.7
        assert regimes.vol_regime.confidence == 0.5
        assert regimes.rates_regime.stance == "neutral"
        assert regimes.breadth == "broad"

    def test_missing_section(self):
        with pytest.raises(DataLoadError, match="Invalid regimes data"):
            parse_regimes({"equity_regime": {"label": "risk_on"}})

    def test_confidence_out_of_range(self):
        with pytest.raises(DataLoadError, match="Confidence"):
            parse_regimes({
                "equity_regime": {"label": "risk_on", "confidence": 1.5},
                "vol_regime": {"label": "low"},
            })


class TestSavers:
    """Tests for the output writers."""

    def test_sleeve_positions_round_trip(self, tmp_path):
        path = tmp_path / "state" / "sleeve_positions.json"
        positions = {
            "SPY": SleevePosition(Decimal("3"), Decimal("2"), datetime(2025, 3, 3, 15, 0)),
        }

        save_sleeve_positions(positions, path)

        assert load_sleeve_positions(path) == positions

    def test_missing_sleeve_positions(self, tmp_path):
        assert load_sleeve_positions(tmp_path / "none.json") is None

    def test_save_orders(self, tmp_path):
        order = TradeOrder(
            symbol="SPY",
            side=TradeSide.BUY,
            order_type=OrderType.MARKET,
            notional_usd=Decimal("1000"),
            quantity=Decimal("2"),
            est_price=Decimal("500"),
        )

        path = save_orders([order], tmp_path / "orders.csv", approved=True)

        df = pd.read_csv(path)
        assert df.loc[0, "symbol"] == "SPY"
        assert df.loc[0, "sleeve"] == "base"
        assert bool(df.loc[0, "approved"]) is True

    def test_simulation_weeks_require_columns(self, tmp_path):
        with pytest.raises(DataLoadError, match="missing columns"):
            save_simulation_weeks(pd.DataFrame({"week": [1]}), tmp_path / "weeks.csv")
