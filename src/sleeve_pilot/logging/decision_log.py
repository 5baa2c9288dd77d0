"""
Append-only decision logging for the sleeve allocation system.

Every budget, arbitration, sleeve and risk decision of a run is logged with
a timestamp and its inputs to support auditability and reproducibility.
"""

import json
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from sleeve_pilot.config import BotConfig
from sleeve_pilot.models import (
    ActionType,
    CapitalBudgets,
    DecisionLogEntry,
    ExecutionPlan,
    RebalanceResult,
    RiskReport,
    SleeveArbitrationResult,
    SleevePlanResult,
)


class DecisionLogger:
    """
    Append-only decision logger.

    Writes all decisions to a JSONL file for audit purposes.
    Each line is a complete JSON object representing one action.
    """

    def __init__(self, log_path: str | Path, account_key: Optional[str] = None):
        """
        Initialize the decision logger.

        Args:
            log_path: Path to the log file (will be created if not exists)
            account_key: Account stamped on every entry
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.account_key = account_key

    def log(self, entry: DecisionLogEntry) -> None:
        """
        Write a decision log entry.

        Args:
            entry: DecisionLogEntry to write
        """
        record = {
            "entry_id": entry.entry_id,
            "timestamp": entry.timestamp.isoformat(),
            "action_type": entry.action_type.value,
            "run_id": entry.run_id,
            "account_key": entry.account_key,
            "details": entry.details,
        }

        with open(self.log_path, "a") as f:
            f.write(json.dumps(record, cls=DecimalEncoder) + "\n")

    def _log(self, action_type: ActionType, run_id: Optional[str], details: dict) -> None:
        self.log(
            DecisionLogEntry.create(
                action_type=action_type,
                run_id=run_id,
                details=details,
                account_key=self.account_key,
            )
        )

    def log_config_loaded(self, config: BotConfig, config_path: str) -> None:
        """
        Log configuration loading.

        Args:
            config: Loaded configuration
            config_path: Path to configuration file
        """
        self._log(ActionType.CONFIG_LOADED, None, {
            "config_path": config_path,
            "environment": config.environment,
            "account_key": config.account_key,
            "universe": config.universe,
            "core_pct": config.capital.core_pct,
            "reserve_pct": config.capital.reserve_pct,
        })

    def log_budgets_computed(self, run_id: str, budgets: CapitalBudgets) -> None:
        """
        Log the capital partition.

        Args:
            run_id: Run identifier
            budgets: Computed budgets
        """
        self._log(ActionType.BUDGETS_COMPUTED, run_id, budgets.to_dict())

    def log_target_plan_built(self, run_id: str, plan: ExecutionPlan) -> None:
        """Log the whole-share execution plan."""
        self._log(ActionType.TARGET_PLAN_BUILT, run_id, {
            "status": plan.status.value,
            "budget_usd": plan.budget_usd,
            "leftover_cash": plan.leftover_cash,
            "max_abs_error": plan.max_abs_error,
            "positions": {p.symbol: p.quantity for p in plan.positions},
            "substitutions": [
                {
                    "original_symbol": s.original_symbol,
                    "executed_symbol": s.executed_symbol,
                    "reason": s.reason.value,
                }
                for s in plan.substitutions
                if s.original_symbol != s.executed_symbol
            ],
            "flags": [f.to_dict() for f in plan.flags],
        })

    def log_rebalance_planned(self, run_id: str, result: RebalanceResult) -> None:
        """Log the rebalance decision."""
        self._log(ActionType.REBALANCE_PLANNED, run_id, {
            "status": result.status.value,
            "triggers": result.triggers,
            "portfolio_drift": result.drift.portfolio_drift if result.drift else None,
            "orders": [o.to_dict() for o in result.combined_orders],
            "skipped": [
                {"symbol": s.symbol, "side": s.side.value, "reason": s.reason.value}
                for s in result.skipped
            ],
            "flags": [f.to_dict() for f in result.flags],
        })

    def log_sleeves_arbitrated(
        self,
        run_id: str,
        dislocation_active: bool,
        result: SleeveArbitrationResult,
    ) -> None:
        """Log the arbitrator verdict."""
        self._log(ActionType.SLEEVES_ARBITRATED, run_id, {
            "dislocation_active": dislocation_active,
            "insurance": result.allowed.insurance,
            "growth_convexity": result.allowed.growth_convexity,
            "reasons": list(result.reasons),
        })

    def log_sleeve_planned(self, run_id: str, result: SleevePlanResult) -> None:
        """Log one option sleeve planning pass."""
        self._log(ActionType.SLEEVE_PLANNED, run_id, {
            "sleeve": result.sleeve.value,
            "status": result.state.status.value,
            "planned_action": result.planned_action.value,
            "reason": result.reason,
            "order": result.order.to_dict() if result.order else None,
            "reserve_context": {
                "sleeve_budget_usd": result.reserve_context.sleeve_budget_usd,
                "consumed_usd": result.reserve_context.consumed_usd,
                "available_usd": result.reserve_context.available_usd,
            },
            "underlyings_tried": result.underlyings_tried,
            "flags": [f.to_dict() for f in result.flags],
        })

    def log_risk_evaluated(self, run_id: str, report: RiskReport) -> None:
        """Log the risk verdict."""
        self._log(ActionType.RISK_EVALUATED, run_id, {
            "approved": report.approved,
            "blocked_reasons": report.blocked_reasons,
            "approved_order_count": len(report.approved_orders),
            "projected_cash": report.exposure_summary.projected_cash,
            "drawdown": report.exposure_summary.drawdown,
        })

    def log_run_completed(self, run_id: str, details: dict[str, Any]) -> None:
        """Log the end of a run with a caller-supplied summary."""
        self._log(ActionType.RUN_COMPLETED, run_id, details)

    def read_log(self) -> list[DecisionLogEntry]:
        """
        Read all entries from the log file.

        Returns:
            List of DecisionLogEntry objects
        """
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                entries.append(
                    DecisionLogEntry(
                        entry_id=record.get("entry_id", ""),
                        timestamp=datetime.fromisoformat(record["timestamp"]),
                        action_type=ActionType(record["action_type"]),
                        run_id=record.get("run_id"),
                        account_key=record.get("account_key"),
                        details=record.get("details", {}),
                    )
                )

        return entries

    def filter_by_run(self, run_id: str) -> list[DecisionLogEntry]:
        """
        Get log entries for a specific run.

        Args:
            run_id: Run to filter by

        Returns:
            Filtered list of entries
        """
        return [e for e in self.read_log() if e.run_id == run_id]

    def filter_by_action_type(
        self,
        action_type: ActionType,
    ) -> list[DecisionLogEntry]:
        """
        Get log entries of a specific action type.

        Args:
            action_type: Action type to filter by

        Returns:
            Filtered list of entries
        """
        return [e for e in self.read_log() if e.action_type == action_type]


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, date and Enum types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)
