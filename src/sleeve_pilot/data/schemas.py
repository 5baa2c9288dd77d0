"""
Column schemas for the CSV inputs and outputs.

Holdings, quotes, targets and option positions are read against these;
orders and simulation weeks are checked before they are written.
"""

from dataclasses import dataclass


@dataclass
class ColumnSchema:
    """Schema definition for a single column."""
    name: str
    dtype: str  # pandas dtype string
    required: bool = True
    nullable: bool = False


@dataclass
class FileSchema:
    """Schema definition for a file."""
    name: str
    columns: list[ColumnSchema]
    description: str

    @property
    def required_columns(self) -> list[str]:
        """Get list of required column names."""
        return [c.name for c in self.columns if c.required]

    @property
    def all_columns(self) -> list[str]:
        """Get list of all column names."""
        return [c.name for c in self.columns]

    def validate_columns(self, df_columns: list[str]) -> tuple[bool, list[str]]:
        """
        Validate that a dataframe has the required columns.

        Args:
            df_columns: List of column names from the dataframe

        Returns:
            Tuple of (is_valid, list of missing columns)
        """
        missing = [col for col in self.required_columns if col not in df_columns]
        return len(missing) == 0, missing


# Broker Holdings Schema
HOLDINGS_SCHEMA = FileSchema(
    name="holdings",
    description="Equity/ETF holdings reported by the broker",
    columns=[
        ColumnSchema(name="symbol", dtype="str", required=True),
        ColumnSchema(name="quantity", dtype="float64", required=True),
        ColumnSchema(name="avg_price", dtype="float64", required=True),
        ColumnSchema(name="hold_since", dtype="datetime64[ns]", required=False, nullable=True),
    ],
)

# Quotes Schema
QUOTES_SCHEMA = FileSchema(
    name="quotes",
    description="Latest price per symbol",
    columns=[
        ColumnSchema(name="symbol", dtype="str", required=True),
        ColumnSchema(name="price", dtype="float64", required=True),
    ],
)

# Target Weights Schema
TARGETS_SCHEMA = FileSchema(
    name="targets",
    description="Target weights for the core ETF sleeve",
    columns=[
        ColumnSchema(name="symbol", dtype="str", required=True),
        ColumnSchema(name="weight", dtype="float64", required=True),
        ColumnSchema(name="priority", dtype="int64", required=False),
    ],
)

# Option Positions Schema
OPTION_POSITIONS_SCHEMA = FileSchema(
    name="option_positions",
    description="Long option positions reported by the broker",
    columns=[
        ColumnSchema(name="underlying", dtype="str", required=True),
        ColumnSchema(name="option_type", dtype="str", required=True),
        ColumnSchema(name="strike", dtype="float64", required=True),
        ColumnSchema(name="expiry", dtype="datetime64[ns]", required=True),
        ColumnSchema(name="contracts", dtype="int64", required=True),
        ColumnSchema(name="multiplier", dtype="int64", required=False),
        ColumnSchema(name="avg_open_price", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="market_price", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="days_to_expiry", dtype="int64", required=False, nullable=True),
    ],
)

# Orders Output Schema
ORDERS_SCHEMA = FileSchema(
    name="orders",
    description="Orders proposed by a run, with the risk verdict",
    columns=[
        ColumnSchema(name="symbol", dtype="str", required=True),
        ColumnSchema(name="side", dtype="str", required=True),
        ColumnSchema(name="order_type", dtype="str", required=True),
        ColumnSchema(name="sleeve", dtype="str", required=True),
        ColumnSchema(name="quantity", dtype="float64", required=True, nullable=True),
        ColumnSchema(name="est_price", dtype="float64", required=True, nullable=True),
        ColumnSchema(name="notional_usd", dtype="float64", required=True),
        ColumnSchema(name="option_action", dtype="str", required=False, nullable=True),
        ColumnSchema(name="option_type", dtype="str", required=False, nullable=True),
        ColumnSchema(name="strike", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="expiry", dtype="str", required=False, nullable=True),
        ColumnSchema(name="limit_price", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="thesis", dtype="str", required=True),
        ColumnSchema(name="approved", dtype="bool", required=True),
    ],
)

# Simulation Weekly Record Schema
SIMULATION_SCHEMA = FileSchema(
    name="simulation_weeks",
    description="Per-week reserve accounting from a scenario simulation",
    columns=[
        ColumnSchema(name="week", dtype="int64", required=True),
        ColumnSchema(name="as_of", dtype="str", required=True),
        ColumnSchema(name="nav", dtype="float64", required=True),
        ColumnSchema(name="drawdown", dtype="float64", required=True),
        ColumnSchema(name="reserve_budget", dtype="float64", required=True),
        ColumnSchema(name="reserve_used_insurance", dtype="float64", required=True),
        ColumnSchema(name="reserve_used_growth", dtype="float64", required=True),
        ColumnSchema(name="reserve_used_total", dtype="float64", required=True),
        ColumnSchema(name="reserve_remaining", dtype="float64", required=True),
        ColumnSchema(name="insurance_status", dtype="str", required=True),
        ColumnSchema(name="growth_status", dtype="str", required=True),
        ColumnSchema(name="insurance_action", dtype="str", required=True),
        ColumnSchema(name="growth_action", dtype="str", required=True),
        ColumnSchema(name="order_count", dtype="int64", required=True),
        ColumnSchema(name="approved", dtype="bool", required=True),
    ],
)
