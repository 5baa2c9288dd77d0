"""
Tests for the command-line interface.
"""

from decimal import Decimal

import pytest
from click.testing import CliRunner

from sleeve_pilot.cli import main
from sleeve_pilot.config import BotConfig, RiskLimits, load_bot_config, write_config


REGIMES_YAML = (
    "equity_regime:\n  label: risk_on\n  confidence: 0.9\n"
    "vol_regime:\n  label: low\n"
)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("SLEEVE_PILOT_ENV", "SLEEVE_PILOT_ACCOUNT", "SLEEVE_PILOT_STATE_DIR"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "regimes.yaml").write_text(REGIMES_YAML)
    return tmp_path


class TestCli:
    """Tests for the sleeve-pilot commands."""

    def test_init_config(self, runner, workdir):
        result = runner.invoke(main, ["init-config", "-o", "bot.yaml", "-u", "spy, agg"])

        assert result.exit_code == 0
        assert load_bot_config(workdir / "bot.yaml").universe == ["SPY", "AGG"]

    def test_budgets(self, runner, workdir):
        runner.invoke(main, ["init-config", "-o", "bot.yaml"])

        result = runner.invoke(main, ["budgets", "-c", "bot.yaml", "--nav", "100000"])

        assert result.exit_code == 0
        assert "Reserve budget:    $30,000.00" in result.output
        assert "Deploy budget:     $70,000.00" in result.output

    def test_budgets_invalid_nav(self, runner, workdir):
        runner.invoke(main, ["init-config", "-o", "bot.yaml"])

        result = runner.invoke(main, ["budgets", "-c", "bot.yaml", "--nav", "lots"])

        assert result.exit_code == 1
        assert "Invalid NAV" in result.output

    def test_arbitrate(self, runner, workdir):
        result = runner.invoke(main, ["arbitrate", "-r", "regimes.yaml"])

        assert result.exit_code == 0
        assert "Insurance allowed: False" in result.output
        assert "Growth allowed:    True" in result.output

    def test_arbitrate_dislocation(self, runner, workdir):
        result = runner.invoke(main, ["arbitrate", "-r", "regimes.yaml", "--dislocation"])

        assert "Insurance allowed: True" in result.output
        assert "Growth allowed:    False" in result.output

    def test_run_writes_outputs(self, runner, workdir):
        runner.invoke(main, ["init-config", "-o", "bot.yaml"])
        (workdir / "holdings.csv").write_text(
            "symbol,quantity,avg_price,hold_since\nAGG,50,99,2025-02-01\n"
        )
        (workdir / "quotes.csv").write_text(
            "symbol,price\nSPY,500\nQQQ,400\nIWM,200\nAGG,100\n"
        )
        (workdir / "targets.csv").write_text("symbol,weight\nSPY,0.5\nQQQ,0.3\nAGG,0.2\n")

        result = runner.invoke(main, [
            "run", "-c", "bot.yaml", "-h", "holdings.csv", "--cash", "95000",
            "-q", "quotes.csv", "-t", "targets.csv", "-r", "regimes.yaml",
            "-d", "2025-03-03T15:00", "-o", "out",
        ])

        assert result.exit_code == 0, result.output
        assert "Orders saved" in result.output
        assert list((workdir / "out").glob("orders_*_20250303T1500.csv"))
        assert (workdir / "out" / "decision_log.jsonl").exists()

    def test_run_invalid_date(self, runner, workdir):
        runner.invoke(main, ["init-config", "-o", "bot.yaml"])
        (workdir / "holdings.csv").write_text("symbol,quantity,avg_price\nAGG,1,99\n")
        (workdir / "quotes.csv").write_text("symbol,price\nAGG,100\n")
        (workdir / "targets.csv").write_text("symbol,weight\nAGG,1\n")

        result = runner.invoke(main, [
            "run", "-c", "bot.yaml", "-h", "holdings.csv", "--cash", "100",
            "-q", "quotes.csv", "-t", "targets.csv", "-r", "regimes.yaml",
            "-d", "yesterday",
        ])

        assert result.exit_code == 1
        assert "Invalid date format" in result.output

    def test_simulate(self, runner, workdir):
        result = runner.invoke(main, ["simulate", "-s", "flat", "-o", "sim"])

        assert result.exit_code == 0, result.output
        assert (workdir / "sim" / "simulation_flat.csv").exists()
        assert (workdir / "sim" / "simulation_flat_metrics.json").exists()

    def test_run_with_offset_timestamps(self, runner, workdir):
        write_config(
            BotConfig(
                universe=["SPY", "QQQ", "IWM", "AGG"],
                risk=RiskLimits(min_hold_hours=Decimal("24")),
            ),
            workdir / "bot.yaml",
        )
        (workdir / "holdings.csv").write_text(
            "symbol,quantity,avg_price,hold_since\nIWM,5,190,2025-02-01T00:00:00Z\n"
        )
        (workdir / "quotes.csv").write_text(
            "symbol,price\nSPY,500\nQQQ,400\nIWM,200\nAGG,100\n"
        )
        (workdir / "targets.csv").write_text("symbol,weight\nSPY,0.5\nAGG,0.5\n")

        result = runner.invoke(main, [
            "run", "-c", "bot.yaml", "-h", "holdings.csv", "--cash", "1000",
            "-q", "quotes.csv", "-t", "targets.csv", "-r", "regimes.yaml",
            "-d", "2025-03-03T10:00:00-05:00", "-o", "out",
        ])

        assert result.exit_code == 0, result.output
        assert "Min hold not satisfied" not in result.output
        assert list((workdir / "out").glob("orders_*_20250303T1500.csv"))
