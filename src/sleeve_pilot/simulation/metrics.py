"""
Summary metrics for weekly scenario simulations.

Calculates:
- Total return and maximum drawdown of the NAV path
- Trailing drawdown fed back into the risk battery
- Reserve usage statistics per option sleeve
"""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd


@dataclass
class SimulationMetrics:
    """Container for simulation summary metrics."""

    # Time period
    start_date: str
    end_date: str
    weeks: int

    # Returns
    start_nav: float
    final_nav: float
    total_return: float
    max_drawdown: float

    # Option sleeves
    insurance_deployed_weeks: int
    growth_deployed_weeks: int
    max_reserve_used: float
    min_reserve_remaining: float

    # Runs
    total_orders: int
    blocked_runs: int

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def to_json(self, path: Path) -> None:
        """Save metrics to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


def drawdown_series(navs: Sequence[float]) -> np.ndarray:
    """
    Drawdown from the running peak at every point of a NAV path.

    Args:
        navs: NAV values in time order

    Returns:
        Array of non-negative drawdown fractions (0 at a new peak)
    """
    values = np.asarray(navs, dtype=float)
    if values.size == 0:
        return values
    peaks = np.maximum.accumulate(values)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdown = np.where(peaks > 0, (peaks - values) / peaks, 0.0)
    return drawdown


def trailing_drawdown(navs: Sequence[float], window: int = 2) -> float:
    """
    Drawdown of the latest NAV from the peak of the last `window` values.

    With weekly NAVs and the default window this is the week-over-week loss.
    """
    if len(navs) < 2:
        return 0.0
    recent = navs[-window:]
    return float(drawdown_series(recent)[-1])


def calculate_metrics(weeks: pd.DataFrame) -> SimulationMetrics:
    """
    Calculate summary metrics from the per-week simulation frame.

    Args:
        weeks: Frame produced by SimulationResult.to_dataframe()

    Returns:
        SimulationMetrics

    Raises:
        ValueError: If the frame is empty
    """
    if weeks.empty:
        raise ValueError("No weeks provided for metrics calculation")

    navs = weeks["nav"].astype(float).to_numpy()
    drawdown = drawdown_series(navs)

    return SimulationMetrics(
        start_date=str(weeks["as_of"].iloc[0]),
        end_date=str(weeks["as_of"].iloc[-1]),
        weeks=len(weeks),
        start_nav=float(navs[0]),
        final_nav=float(navs[-1]),
        total_return=float(navs[-1] / navs[0] - 1) if navs[0] > 0 else 0.0,
        max_drawdown=float(drawdown.max()) if drawdown.size else 0.0,
        insurance_deployed_weeks=int((weeks["insurance_status"] == "DEPLOYED").sum()),
        growth_deployed_weeks=int((weeks["growth_status"] == "DEPLOYED").sum()),
        max_reserve_used=float(weeks["reserve_used_total"].max()),
        min_reserve_remaining=float(weeks["reserve_remaining"].min()),
        total_orders=int(weeks["order_count"].sum()),
        blocked_runs=int((~weeks["approved"].astype(bool)).sum()),
    )
