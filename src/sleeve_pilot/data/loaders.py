"""
Data loading and saving functions for run inputs and outputs.

Handles ingestion of broker holdings, quotes, target weights, option
positions, regime snapshots and dislocation sleeve positions, as well as
output of proposed orders.
"""

import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import yaml

from sleeve_pilot.data.schemas import (
    FileSchema,
    HOLDINGS_SCHEMA,
    OPTION_POSITIONS_SCHEMA,
    ORDERS_SCHEMA,
    QUOTES_SCHEMA,
    SIMULATION_SCHEMA,
    TARGETS_SCHEMA,
)
from sleeve_pilot.models import (
    EquityRegime,
    Holding,
    OptionMark,
    OptionPosition,
    OptionType,
    RatesRegime,
    RegimeContext,
    SleevePosition,
    TargetWeight,
    TradeOrder,
    VolRegime,
    to_naive_utc,
)


class DataLoadError(Exception):
    """Raised when data cannot be loaded or is invalid."""
    pass


def load_holdings(file_path: str | Path) -> list[Holding]:
    """
    Load broker holdings from CSV file.

    Args:
        file_path: Path to CSV file with columns: symbol, quantity, avg_price[, hold_since]

    Returns:
        List of Holding objects

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    df = _load_csv(Path(file_path), HOLDINGS_SCHEMA)

    holdings = []
    for _, row in df.iterrows():
        hold_since = None
        if "hold_since" in df.columns and not pd.isna(row["hold_since"]):
            hold_since = to_naive_utc(pd.to_datetime(row["hold_since"]).to_pydatetime())
        holdings.append(
            Holding(
                symbol=str(row["symbol"]).upper().strip(),
                quantity=Decimal(str(row["quantity"])),
                avg_price=Decimal(str(row["avg_price"])),
                hold_since=hold_since,
            )
        )
    return holdings


def load_quotes(file_path: str | Path) -> dict[str, Decimal]:
    """
    Load latest prices from CSV file.

    Args:
        file_path: Path to CSV file with columns: symbol, price

    Returns:
        Dictionary mapping symbol -> price

    Raises:
        DataLoadError: If file cannot be loaded or a price is not positive
    """
    df = _load_csv(Path(file_path), QUOTES_SCHEMA)

    quotes: dict[str, Decimal] = {}
    for _, row in df.iterrows():
        if pd.isna(row["price"]):
            continue
        price = Decimal(str(row["price"]))
        if price <= 0:
            raise DataLoadError(f"Non-positive price for {row['symbol']}: {price}")
        quotes[str(row["symbol"]).upper().strip()] = price
    return quotes


def load_targets(file_path: str | Path) -> list[TargetWeight]:
    """
    Load core sleeve target weights from CSV file.

    Args:
        file_path: Path to CSV file with columns: symbol, weight[, priority]

    Returns:
        List of TargetWeight objects

    Raises:
        DataLoadError: If file cannot be loaded or a weight is negative
    """
    df = _load_csv(Path(file_path), TARGETS_SCHEMA)

    targets = []
    for _, row in df.iterrows():
        weight = Decimal(str(row["weight"]))
        if weight < 0:
            raise DataLoadError(f"Negative target weight for {row['symbol']}: {weight}")
        priority = 0
        if "priority" in df.columns and not pd.isna(row["priority"]):
            priority = int(row["priority"])
        targets.append(
            TargetWeight(
                symbol=str(row["symbol"]).upper().strip(),
                weight=weight,
                priority=priority,
            )
        )
    return targets


def load_option_positions(
    file_path: str | Path,
) -> tuple[list[OptionPosition], dict[str, OptionMark]]:
    """
    Load broker option positions (and their marks) from CSV file.

    Args:
        file_path: Path to CSV file with columns: underlying, option_type,
                   strike, expiry, contracts[, multiplier, avg_open_price,
                   market_price, days_to_expiry]

    Returns:
        Tuple of (positions, marks keyed by position id)

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    df = _load_csv(Path(file_path), OPTION_POSITIONS_SCHEMA)

    positions: list[OptionPosition] = []
    marks: dict[str, OptionMark] = {}
    for _, row in df.iterrows():
        try:
            option_type = OptionType(str(row["option_type"]).upper().strip())
        except ValueError:
            raise DataLoadError(f"Invalid option_type: {row['option_type']}")

        position = OptionPosition(
            underlying=str(row["underlying"]).upper().strip(),
            option_type=option_type,
            strike=Decimal(str(row["strike"])),
            expiry=pd.to_datetime(row["expiry"]).date(),
            contracts=int(row["contracts"]),
            multiplier=_optional_int(row, "multiplier") or 100,
            avg_open_price=_optional_decimal(row, "avg_open_price"),
            market_price=_optional_decimal(row, "market_price"),
        )
        positions.append(position)
        marks[position.position_id] = OptionMark(
            position_id=position.position_id,
            mark_price=position.market_price,
            days_to_expiry=_optional_int(row, "days_to_expiry"),
        )
    return positions, marks


def load_regimes(file_path: str | Path) -> RegimeContext:
    """
    Load a regime snapshot from a YAML or JSON file.

    Args:
        file_path: Path to file with equity_regime, vol_regime and optional
                   rates_regime / breadth sections

    Returns:
        RegimeContext

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    try:
        with open(file_path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DataLoadError(f"Failed to parse regimes file {file_path}: {e}")

    if not isinstance(raw, dict):
        raise DataLoadError(f"Regimes file {file_path} must contain a mapping")
    return parse_regimes(raw)


def parse_regimes(raw: dict[str, Any]) -> RegimeContext:
    """
    Build a RegimeContext from a plain dictionary.

    Raises:
        DataLoadError: If a required section is missing or malformed
    """
    try:
        equity = raw["equity_regime"]
        vol = raw["vol_regime"]
        rates = raw.get("rates_regime") or {}
        return RegimeContext(
            equity_regime=EquityRegime(
                label=str(equity["label"]),
                confidence=_confidence(equity.get("confidence", 0.5)),
            ),
            vol_regime=VolRegime(
                label=str(vol["label"]),
                confidence=_confidence(vol.get("confidence", 0.5)),
            ),
            rates_regime=RatesRegime(
                label=str(rates.get("label", "stable")),
                stance=str(rates.get("stance", "neutral")),
                confidence=_confidence(rates.get("confidence", 0.5)),
            ),
            breadth=str(raw.get("breadth", "unknown")),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise DataLoadError(f"Invalid regimes data: {e}")


def load_sleeve_positions(file_path: str | Path) -> Optional[dict[str, SleevePosition]]:
    """
    Load the dislocation sleeve split from a JSON file.

    Args:
        file_path: Path to JSON file mapping symbol -> {base_qty, dislocation_qty}

    Returns:
        Dictionary of SleevePosition, or None when the file does not exist

    Raises:
        DataLoadError: If file exists but cannot be parsed
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None
    try:
        with open(file_path, "r") as f:
            raw = json.load(f)
        return {
            symbol.upper(): SleevePosition(
                base_qty=Decimal(str(record.get("base_qty", "0"))),
                dislocation_qty=Decimal(str(record.get("dislocation_qty", "0"))),
                updated_at=(
                    datetime.fromisoformat(record["updated_at"])
                    if record.get("updated_at") else None
                ),
            )
            for symbol, record in raw.items()
        }
    except (ValueError, TypeError, AttributeError, ArithmeticError) as e:
        raise DataLoadError(f"Failed to load sleeve positions {file_path}: {e}")


def save_sleeve_positions(
    positions: dict[str, SleevePosition],
    output_path: str | Path,
) -> Path:
    """
    Save the dislocation sleeve split to a JSON file.

    Args:
        positions: Split per symbol
        output_path: Path for output JSON file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = {
        symbol: {
            "base_qty": str(p.base_qty),
            "dislocation_qty": str(p.dislocation_qty),
            "updated_at": p.updated_at.isoformat() if p.updated_at else None,
        }
        for symbol, p in sorted(positions.items())
    }
    with open(output_path, "w") as f:
        json.dump(records, f, indent=2)

    return output_path


def save_orders(
    orders: list[TradeOrder],
    output_path: str | Path,
    approved: bool,
) -> Path:
    """
    Save proposed orders to CSV file.

    Args:
        orders: Orders proposed by the run
        output_path: Path for output CSV file
        approved: Risk verdict for the run

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for order in orders:
        leg = order.option
        records.append({
            "symbol": order.symbol,
            "side": order.side.value,
            "order_type": order.order_type.value,
            "sleeve": order.sleeve.value,
            "quantity": float(order.quantity) if order.quantity is not None else None,
            "est_price": float(order.est_price) if order.est_price is not None else None,
            "notional_usd": float(order.notional_usd),
            "option_action": leg.action.value if leg else None,
            "option_type": leg.option_type.value if leg else None,
            "strike": float(leg.strike) if leg else None,
            "expiry": leg.expiry.isoformat() if leg and leg.expiry else None,
            "limit_price": float(leg.limit_price) if leg and leg.limit_price is not None else None,
            "thesis": order.thesis,
            "approved": approved,
        })

    df = pd.DataFrame(records, columns=ORDERS_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def save_simulation_weeks(weeks: pd.DataFrame, output_path: str | Path) -> Path:
    """
    Save per-week simulation records to CSV file.

    Args:
        weeks: Frame produced by SimulationResult.to_dataframe()
        output_path: Path for output CSV file

    Returns:
        Path to the saved file

    Raises:
        DataLoadError: If the frame is missing required columns
    """
    is_valid, missing = SIMULATION_SCHEMA.validate_columns(weeks.columns.tolist())
    if not is_valid:
        raise DataLoadError(f"Simulation records are missing columns: {missing}")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    weeks[SIMULATION_SCHEMA.all_columns].to_csv(output_path, index=False)

    return output_path


def _optional_decimal(row: pd.Series, column: str) -> Optional[Decimal]:
    if column not in row.index or pd.isna(row[column]):
        return None
    return Decimal(str(row[column]))


def _optional_int(row: pd.Series, column: str) -> Optional[int]:
    if column not in row.index or pd.isna(row[column]):
        return None
    return int(row[column])


def _confidence(value: Any) -> float:
    confidence = float(value)
    if not 0.0 <= confidence <= 1.0:
        raise DataLoadError(f"Confidence must be within [0, 1], got {confidence}")
    return confidence


def _load_csv(file_path: Path, schema: FileSchema) -> pd.DataFrame:
    """
    Load a CSV file and validate against schema.

    Args:
        file_path: Path to CSV file
        schema: Expected file schema

    Returns:
        Loaded DataFrame

    Raises:
        DataLoadError: If file cannot be loaded or has missing columns
    """
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    try:
        df = pd.read_csv(file_path)
    except Exception as e:
        raise DataLoadError(f"Failed to load CSV file {file_path}: {e}")

    # Validate columns
    is_valid, missing = schema.validate_columns(df.columns.tolist())
    if not is_valid:
        raise DataLoadError(
            f"File {file_path} is missing required columns: {missing}"
        )

    return df
