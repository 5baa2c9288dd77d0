"""
Tests for the append-only decision log.
"""

import json
from decimal import Decimal

from sleeve_pilot.config import CapitalConfig
from sleeve_pilot.logging.decision_log import DecimalEncoder, DecisionLogger
from sleeve_pilot.models import ActionType, DecisionLogEntry, OptionType
from sleeve_pilot.portfolio.capital import compute_budgets
from sleeve_pilot.sleeves.arbitration import arbitrate_sleeves

from conftest import make_regimes


class TestDecisionLogger:
    """Tests for DecisionLogger."""

    def test_entries_appended_as_jsonl(self, tmp_path):
        logger = DecisionLogger(tmp_path / "logs" / "decision_log.jsonl", account_key="main")
        budgets = compute_budgets(Decimal("1000"), CapitalConfig())

        logger.log_budgets_computed("run-1", budgets)
        logger.log_sleeves_arbitrated("run-1", False, arbitrate_sleeves(False, make_regimes()))

        lines = (tmp_path / "logs" / "decision_log.jsonl").read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["action_type"] == "BUDGETS_COMPUTED"
        assert first["account_key"] == "main"
        assert first["details"]["reserve_budget"] == "300.0"

    def test_read_and_filter(self, tmp_path):
        logger = DecisionLogger(tmp_path / "decision_log.jsonl")
        logger.log_run_completed("run-1", {"approved": True})
        logger.log_run_completed("run-2", {"approved": False})
        logger.log(DecisionLogEntry.create(ActionType.RISK_EVALUATED, "run-2", {"approved": False}))

        assert len(logger.read_log()) == 3
        assert [e.action_type for e in logger.filter_by_run("run-2")] == [
            ActionType.RUN_COMPLETED, ActionType.RISK_EVALUATED,
        ]
        assert len(logger.filter_by_action_type(ActionType.RUN_COMPLETED)) == 2

    def test_missing_log_reads_empty(self, tmp_path):
        assert DecisionLogger(tmp_path / "none.jsonl").read_log() == []


class TestDecimalEncoder:
    """Tests for DecimalEncoder."""

    def test_encodes_decimal_and_enum(self):
        encoded = json.dumps({"x": Decimal("1.50"), "t": OptionType.PUT}, cls=DecimalEncoder)

        assert json.loads(encoded) == {"x": "1.50", "t": "PUT"}
