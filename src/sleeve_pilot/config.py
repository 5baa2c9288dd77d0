"""
Configuration loading and management for the sleeve allocation system.

This module handles loading the bot configuration from YAML files,
environment overrides from .env files, and validation of every limit,
threshold and proxy mapping used by the planners.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import dotenv_values


# Default paths for configuration files
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"

ENV_OVERRIDES = {
    "SLEEVE_PILOT_ENV": "environment",
    "SLEEVE_PILOT_ACCOUNT": "account_key",
    "SLEEVE_PILOT_STATE_DIR": "state_dir",
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


@dataclass(frozen=True)
class ExposureCapStep:
    """One row of the confidence -> base exposure cap table."""
    confidence_threshold: Decimal
    cap_pct: Decimal


def _default_cap_table() -> list[ExposureCapStep]:
    return [
        ExposureCapStep(Decimal("0"), Decimal("0.35")),
        ExposureCapStep(Decimal("0.5"), Decimal("0.7")),
        ExposureCapStep(Decimal("0.75"), Decimal("1.0")),
    ]


@dataclass
class CapitalConfig:
    """
    Core/reserve split and deploy scaling.

    Attributes:
        core_pct: Fraction of NAV in the core ETF sleeve
        reserve_pct: Fraction of NAV in the options reserve
        exposure_cap_table: Ordered (confidence_threshold, cap_pct) rows
        deploy_conf_threshold: Equity confidence below which deploy is scaled down
        low_confidence_scale: Scale applied below deploy_conf_threshold
    """
    core_pct: Decimal = Decimal("0.7")
    reserve_pct: Decimal = Decimal("0.3")
    exposure_cap_table: list[ExposureCapStep] = field(default_factory=_default_cap_table)
    deploy_conf_threshold: Decimal = Decimal("0.5")
    low_confidence_scale: Decimal = Decimal("0.8")


@dataclass
class RiskLimits:
    """Per-run limits enforced by the risk engine."""
    max_trades_per_run: int = 8
    max_positions: int = 12
    max_position_pct: Decimal = Decimal("0.35")
    max_weekly_drawdown_pct: Decimal = Decimal("0.1")
    min_cash_pct: Decimal = Decimal("0")
    max_notional_traded_pct_per_run: Decimal = Decimal("1")
    min_hold_hours: Decimal = Decimal("0")


@dataclass
class RebalanceConfig:
    """Drift gates and trade filters for the core sleeve rebalance."""
    enabled: bool = True
    portfolio_drift_threshold: Decimal = Decimal("0.05")
    position_drift_threshold: Decimal = Decimal("0.05")
    min_trade_notional_usd: Decimal = Decimal("0")
    always_rebalance_on_regime_change: bool = False
    regime_change_keys: list[str] = field(
        default_factory=lambda: ["equity_regime.label", "vol_regime.label"]
    )
    full_exit_removed_symbols: bool = True
    dust_shares_threshold: Decimal = Decimal("0")


@dataclass
class ArbitrationConfig:
    """Knobs for the insurance/growth arbitrator."""
    growth_min_confidence: Decimal = Decimal("0.6")
    insurance_on_stressed_vol: bool = False


@dataclass
class OptionSleeveConfig:
    """
    Parameters for one option sleeve (insurance puts or growth calls).

    Attributes:
        enabled: Whether the sleeve may open positions
        spend_pct: Fraction of the reserve pool the sleeve may consume
        min_months: Shortest acceptable tenor
        max_months: Longest acceptable tenor
        min_moneyness: Lowest strike / price accepted
        max_moneyness: Highest strike / price accepted
        limit_price_buffer_pct: Buffer applied to limit prices
        close_within_days: Close (or hold to expiry) inside this window
        allow_expire: Hold into expiry instead of closing
        contract_multiplier: Shares per contract
    """
    enabled: bool = True
    spend_pct: Decimal = Decimal("0.85")
    min_months: Decimal = Decimal("3")
    max_months: Decimal = Decimal("6")
    min_moneyness: Decimal = Decimal("0.95")
    max_moneyness: Decimal = Decimal("1.0")
    limit_price_buffer_pct: Decimal = Decimal("0.05")
    close_within_days: int = 21
    allow_expire: bool = False
    contract_multiplier: int = 100


def default_insurance_config() -> OptionSleeveConfig:
    return OptionSleeveConfig()


def default_growth_config() -> OptionSleeveConfig:
    return OptionSleeveConfig(
        spend_pct=Decimal("0.2"),
        min_moneyness=Decimal("1.03"),
        max_moneyness=Decimal("1.1"),
    )


@dataclass
class DislocationConfig:
    """How the dislocation overlay interacts with the core rebalance."""
    freeze_base_rebalance_during_add_hold: bool = True
    protect_from_sells: bool = True


@dataclass
class BotConfig:
    """
    Complete configuration for one account.

    Attributes:
        environment: Deployment environment (paper, live, ...)
        account_key: Account identifier used to key persisted state
        universe: Tradable ETF symbols
        options_underlyings: Default options underlyings in preference order
        hedge_preferred: Preferred underlyings for insurance puts
        growth_preferred: Preferred underlyings for growth calls
        proxies: Parent symbol -> ordered list of proxy symbols
        fractional_shares_supported: Whether the broker accepts fractional shares
        capital: Core/reserve split
        risk: Risk limits
        rebalance: Rebalance gates
        arbitration: Arbitrator settings
        insurance: Insurance sleeve settings
        growth: Growth sleeve settings
        dislocation: Dislocation overlay interaction
        state_dir: Directory for persisted sleeve state
        output_dir: Directory for run outputs and the decision log
    """
    universe: list[str]
    environment: str = "paper"
    account_key: str = "default"
    options_underlyings: list[str] = field(default_factory=lambda: ["SPY", "QQQ"])
    hedge_preferred: list[str] = field(default_factory=list)
    growth_preferred: list[str] = field(default_factory=list)
    proxies: dict[str, list[str]] = field(default_factory=dict)
    fractional_shares_supported: bool = False
    capital: CapitalConfig = field(default_factory=CapitalConfig)
    risk: RiskLimits = field(default_factory=RiskLimits)
    rebalance: RebalanceConfig = field(default_factory=RebalanceConfig)
    arbitration: ArbitrationConfig = field(default_factory=ArbitrationConfig)
    insurance: OptionSleeveConfig = field(default_factory=default_insurance_config)
    growth: OptionSleeveConfig = field(default_factory=default_growth_config)
    dislocation: DislocationConfig = field(default_factory=DislocationConfig)
    state_dir: str = "data_cache"
    output_dir: str = "output"


class ProxyMap:
    """
    Bidirectional parent <-> proxy lookup.

    A parent (e.g. SPY) may have several proxies (e.g. SPYM, VOO), tried in
    order. Every symbol maps to exactly one parent; parents map to themselves.
    """

    def __init__(self, proxies: Optional[dict[str, list[str]]] = None):
        self._proxies: dict[str, list[str]] = {}
        self._parent: dict[str, str] = {}
        for parent, members in (proxies or {}).items():
            parent = parent.upper()
            if parent in self._parent and self._parent[parent] != parent:
                raise ConfigurationError(
                    f"{parent} is listed both as a parent and as a proxy of {self._parent[parent]}"
                )
            self._parent[parent] = parent
            cleaned: list[str] = []
            for member in members:
                member = str(member).upper()
                if member == parent:
                    raise ConfigurationError(f"{parent} cannot be its own proxy")
                existing = self._parent.get(member)
                if existing is not None and existing != parent:
                    raise ConfigurationError(
                        f"Proxy {member} maps to two parents: {existing} and {parent}"
                    )
                self._parent[member] = parent
                cleaned.append(member)
            self._proxies[parent] = cleaned

    def parent_of(self, symbol: str) -> str:
        """Parent of a symbol; unknown symbols are their own parent."""
        return self._parent.get(symbol, symbol)

    def proxies_of(self, symbol: str) -> list[str]:
        """Ordered proxies of a symbol's parent, excluding the symbol itself."""
        parent = self.parent_of(symbol)
        family = [parent] + self._proxies.get(parent, [])
        return [s for s in family if s != symbol]

    def family(self, symbol: str) -> list[str]:
        """Parent followed by its proxies."""
        parent = self.parent_of(symbol)
        return [parent] + self._proxies.get(parent, [])

    def to_dict(self) -> dict[str, list[str]]:
        return {parent: list(members) for parent, members in self._proxies.items()}


def load_bot_config(
    config_path: str | Path,
    env_file: str | Path | None = None,
) -> BotConfig:
    """
    Load bot configuration from a YAML file.

    Environment overrides (SLEEVE_PILOT_ENV, SLEEVE_PILOT_ACCOUNT,
    SLEEVE_PILOT_STATE_DIR) are applied from the .env file and then from
    the process environment, which has the highest priority.

    Args:
        config_path: Path to the YAML configuration file
        env_file: Optional .env file (defaults to the project root .env)

    Returns:
        BotConfig object with validated settings

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if not isinstance(raw_config, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    raw_config = dict(raw_config)
    raw_config.update(load_env_overrides(env_file))

    return parse_bot_config(raw_config)


def load_env_overrides(env_file: str | Path | None = None) -> dict[str, str]:
    """
    Collect configuration overrides from a .env file and the environment.

    Args:
        env_file: Path to .env file (defaults to project root .env)

    Returns:
        Mapping of config field name -> override value
    """
    overrides: dict[str, str] = {}

    env_path = Path(env_file) if env_file else DEFAULT_ENV_FILE
    if env_path.exists():
        env_values = dotenv_values(env_path)
        for var, field_name in ENV_OVERRIDES.items():
            if env_values.get(var):
                overrides[field_name] = str(env_values[var])

    for var, field_name in ENV_OVERRIDES.items():
        if os.environ.get(var):
            overrides[field_name] = os.environ[var]

    return overrides


def parse_bot_config(raw: dict[str, Any]) -> BotConfig:
    """
    Parse and validate a raw configuration dictionary into BotConfig.

    Args:
        raw: Dictionary loaded from YAML

    Returns:
        Validated BotConfig

    Raises:
        ConfigurationError: If required fields are missing or invalid
    """
    if "universe" not in raw:
        raise ConfigurationError("Missing required configuration field: universe")

    universe = _parse_symbol_list(raw["universe"], "universe")
    if not universe:
        raise ConfigurationError("universe cannot be empty")
    if len(set(universe)) != len(universe):
        raise ConfigurationError("universe contains duplicate symbols")

    proxies_raw = raw.get("proxies") or {}
    if not isinstance(proxies_raw, dict):
        raise ConfigurationError("proxies must be a mapping of parent -> list of proxies")
    proxies = {
        str(parent).upper(): _parse_symbol_list(members, f"proxies.{parent}")
        for parent, members in proxies_raw.items()
    }
    # Validates the mapping; raises ConfigurationError when malformed
    ProxyMap(proxies)

    capital = _parse_capital(raw.get("capital") or {})
    options_underlyings = _parse_symbol_list(
        raw.get("options_underlyings", ["SPY", "QQQ"]), "options_underlyings"
    )
    policy = raw.get("hedge_proxy_policy") or {}

    return BotConfig(
        environment=str(raw.get("environment", "paper")),
        account_key=str(raw.get("account_key", "default")),
        universe=universe,
        options_underlyings=options_underlyings,
        hedge_preferred=_parse_symbol_list(policy.get("hedge_preferred", []), "hedge_preferred"),
        growth_preferred=_parse_symbol_list(policy.get("growth_preferred", []), "growth_preferred"),
        proxies=proxies,
        fractional_shares_supported=_parse_bool(
            raw.get("fractional_shares_supported", False), "fractional_shares_supported"
        ),
        capital=capital,
        risk=_parse_risk(raw.get("risk") or {}),
        rebalance=_parse_rebalance(raw.get("rebalance") or {}),
        arbitration=_parse_arbitration(raw.get("arbitration") or {}),
        insurance=_parse_option_sleeve(
            raw.get("insurance") or {}, "insurance", default_insurance_config()
        ),
        growth=_parse_option_sleeve(raw.get("growth") or {}, "growth", default_growth_config()),
        dislocation=_parse_dislocation(raw.get("dislocation") or {}),
        state_dir=str(raw.get("state_dir", "data_cache")),
        output_dir=str(raw.get("output_dir", "output")),
    )


def _parse_capital(raw: dict[str, Any]) -> CapitalConfig:
    defaults = CapitalConfig()
    core_pct = _parse_decimal(
        raw.get("core_pct", defaults.core_pct), "capital.core_pct",
        min_val=Decimal("0"), max_val=Decimal("1"),
    )
    reserve_pct = _parse_decimal(
        raw.get("reserve_pct", defaults.reserve_pct), "capital.reserve_pct",
        min_val=Decimal("0"), max_val=Decimal("1"),
    )
    if core_pct + reserve_pct != Decimal("1"):
        raise ConfigurationError(
            f"capital.core_pct + capital.reserve_pct must equal 1, got {core_pct + reserve_pct}"
        )

    if "exposure_cap_table" in raw:
        rows = raw["exposure_cap_table"]
        if not isinstance(rows, list) or not rows:
            raise ConfigurationError("capital.exposure_cap_table must be a non-empty list")
        table = []
        for i, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ConfigurationError(f"capital.exposure_cap_table[{i}] must be a mapping")
            table.append(
                ExposureCapStep(
                    confidence_threshold=_parse_decimal(
                        row.get("confidence_threshold"),
                        f"capital.exposure_cap_table[{i}].confidence_threshold",
                        min_val=Decimal("0"), max_val=Decimal("1"),
                    ),
                    cap_pct=_parse_decimal(
                        row.get("cap_pct"),
                        f"capital.exposure_cap_table[{i}].cap_pct",
                        min_val=Decimal("0"), max_val=Decimal("1"),
                    ),
                )
            )
        thresholds = [step.confidence_threshold for step in table]
        if thresholds != sorted(thresholds) or len(set(thresholds)) != len(thresholds):
            raise ConfigurationError(
                "capital.exposure_cap_table thresholds must be strictly increasing"
            )
    else:
        table = defaults.exposure_cap_table

    return CapitalConfig(
        core_pct=core_pct,
        reserve_pct=reserve_pct,
        exposure_cap_table=table,
        deploy_conf_threshold=_parse_decimal(
            raw.get("deploy_conf_threshold", defaults.deploy_conf_threshold),
            "capital.deploy_conf_threshold", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        low_confidence_scale=_parse_decimal(
            raw.get("low_confidence_scale", defaults.low_confidence_scale),
            "capital.low_confidence_scale", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
    )


def _parse_risk(raw: dict[str, Any]) -> RiskLimits:
    defaults = RiskLimits()
    return RiskLimits(
        max_trades_per_run=_parse_int(
            raw.get("max_trades_per_run", defaults.max_trades_per_run),
            "risk.max_trades_per_run", min_val=0,
        ),
        max_positions=_parse_int(
            raw.get("max_positions", defaults.max_positions), "risk.max_positions", min_val=0,
        ),
        max_position_pct=_parse_decimal(
            raw.get("max_position_pct", defaults.max_position_pct),
            "risk.max_position_pct", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        max_weekly_drawdown_pct=_parse_decimal(
            raw.get("max_weekly_drawdown_pct", defaults.max_weekly_drawdown_pct),
            "risk.max_weekly_drawdown_pct", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        min_cash_pct=_parse_decimal(
            raw.get("min_cash_pct", defaults.min_cash_pct),
            "risk.min_cash_pct", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        max_notional_traded_pct_per_run=_parse_decimal(
            raw.get("max_notional_traded_pct_per_run", defaults.max_notional_traded_pct_per_run),
            "risk.max_notional_traded_pct_per_run", min_val=Decimal("0"),
        ),
        min_hold_hours=_parse_decimal(
            raw.get("min_hold_hours", defaults.min_hold_hours),
            "risk.min_hold_hours", min_val=Decimal("0"),
        ),
    )


def _parse_rebalance(raw: dict[str, Any]) -> RebalanceConfig:
    defaults = RebalanceConfig()
    keys = raw.get("regime_change_keys", defaults.regime_change_keys)
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ConfigurationError("rebalance.regime_change_keys must be a list of strings")
    return RebalanceConfig(
        enabled=_parse_bool(raw.get("enabled", defaults.enabled), "rebalance.enabled"),
        portfolio_drift_threshold=_parse_decimal(
            raw.get("portfolio_drift_threshold", defaults.portfolio_drift_threshold),
            "rebalance.portfolio_drift_threshold", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        position_drift_threshold=_parse_decimal(
            raw.get("position_drift_threshold", defaults.position_drift_threshold),
            "rebalance.position_drift_threshold", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        min_trade_notional_usd=_parse_decimal(
            raw.get("min_trade_notional_usd", defaults.min_trade_notional_usd),
            "rebalance.min_trade_notional_usd", min_val=Decimal("0"),
        ),
        always_rebalance_on_regime_change=_parse_bool(
            raw.get("always_rebalance_on_regime_change", defaults.always_rebalance_on_regime_change),
            "rebalance.always_rebalance_on_regime_change",
        ),
        regime_change_keys=list(keys),
        full_exit_removed_symbols=_parse_bool(
            raw.get("full_exit_removed_symbols", defaults.full_exit_removed_symbols),
            "rebalance.full_exit_removed_symbols",
        ),
        dust_shares_threshold=_parse_decimal(
            raw.get("dust_shares_threshold", defaults.dust_shares_threshold),
            "rebalance.dust_shares_threshold", min_val=Decimal("0"),
        ),
    )


def _parse_arbitration(raw: dict[str, Any]) -> ArbitrationConfig:
    defaults = ArbitrationConfig()
    return ArbitrationConfig(
        growth_min_confidence=_parse_decimal(
            raw.get("growth_min_confidence", defaults.growth_min_confidence),
            "arbitration.growth_min_confidence", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        insurance_on_stressed_vol=_parse_bool(
            raw.get("insurance_on_stressed_vol", defaults.insurance_on_stressed_vol),
            "arbitration.insurance_on_stressed_vol",
        ),
    )


def _parse_option_sleeve(
    raw: dict[str, Any],
    name: str,
    defaults: OptionSleeveConfig,
) -> OptionSleeveConfig:
    sleeve = OptionSleeveConfig(
        enabled=_parse_bool(raw.get("enabled", defaults.enabled), f"{name}.enabled"),
        spend_pct=_parse_decimal(
            raw.get("spend_pct", defaults.spend_pct), f"{name}.spend_pct",
            min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        min_months=_parse_decimal(
            raw.get("min_months", defaults.min_months), f"{name}.min_months", min_val=Decimal("0"),
        ),
        max_months=_parse_decimal(
            raw.get("max_months", defaults.max_months), f"{name}.max_months", min_val=Decimal("0"),
        ),
        min_moneyness=_parse_decimal(
            raw.get("min_moneyness", defaults.min_moneyness), f"{name}.min_moneyness",
            min_val=Decimal("0"),
        ),
        max_moneyness=_parse_decimal(
            raw.get("max_moneyness", defaults.max_moneyness), f"{name}.max_moneyness",
            min_val=Decimal("0"),
        ),
        limit_price_buffer_pct=_parse_decimal(
            raw.get("limit_price_buffer_pct", defaults.limit_price_buffer_pct),
            f"{name}.limit_price_buffer_pct", min_val=Decimal("0"), max_val=Decimal("1"),
        ),
        close_within_days=_parse_int(
            raw.get("close_within_days", defaults.close_within_days),
            f"{name}.close_within_days", min_val=0,
        ),
        allow_expire=_parse_bool(raw.get("allow_expire", defaults.allow_expire), f"{name}.allow_expire"),
        contract_multiplier=_parse_int(
            raw.get("contract_multiplier", defaults.contract_multiplier),
            f"{name}.contract_multiplier", min_val=1,
        ),
    )
    if sleeve.min_months > sleeve.max_months:
        raise ConfigurationError(f"{name}.min_months must be <= {name}.max_months")
    if sleeve.min_moneyness > sleeve.max_moneyness:
        raise ConfigurationError(f"{name}.min_moneyness must be <= {name}.max_moneyness")
    return sleeve


def _parse_dislocation(raw: dict[str, Any]) -> DislocationConfig:
    defaults = DislocationConfig()
    return DislocationConfig(
        freeze_base_rebalance_during_add_hold=_parse_bool(
            raw.get(
                "freeze_base_rebalance_during_add_hold",
                defaults.freeze_base_rebalance_during_add_hold,
            ),
            "dislocation.freeze_base_rebalance_during_add_hold",
        ),
        protect_from_sells=_parse_bool(
            raw.get("protect_from_sells", defaults.protect_from_sells),
            "dislocation.protect_from_sells",
        ),
    )


def _parse_decimal(
    value: Any,
    field_name: str,
    min_val: Decimal | None = None,
    max_val: Decimal | None = None,
) -> Decimal:
    """
    Parse a decimal value with optional range validation.

    Args:
        value: The value to parse
        field_name: Name of the field for error messages
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)

    Returns:
        Parsed Decimal

    Raises:
        ConfigurationError: If the value is invalid or out of range
    """
    if value is None or isinstance(value, bool):
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")
    try:
        decimal_value = Decimal(str(value))
    except Exception:
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")

    if not decimal_value.is_finite():
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")

    if min_val is not None and decimal_value < min_val:
        raise ConfigurationError(
            f"{field_name} must be >= {min_val}, got {decimal_value}"
        )

    if max_val is not None and decimal_value > max_val:
        raise ConfigurationError(
            f"{field_name} must be <= {max_val}, got {decimal_value}"
        )

    return decimal_value


def _parse_int(value: Any, field_name: str, min_val: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid integer value for {field_name}: {value}")
    try:
        int_value = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid integer value for {field_name}: {value}")
    if min_val is not None and int_value < min_val:
        raise ConfigurationError(f"{field_name} must be >= {min_val}, got {int_value}")
    return int_value


def _parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "no", "0"):
        return False
    raise ConfigurationError(f"Invalid boolean value for {field_name}: {value}")


def _parse_symbol_list(value: Any, field_name: str) -> list[str]:
    if not isinstance(value, list):
        raise ConfigurationError(f"{field_name} must be a list of symbols")
    symbols = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConfigurationError(f"{field_name} contains an invalid symbol: {item!r}")
        symbols.append(item.strip().upper())
    return symbols


def write_config(config: BotConfig, output_path: str | Path) -> None:
    """
    Write a BotConfig to a YAML file.

    Args:
        config: The configuration to write
        output_path: Path to write the YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    def sleeve_dict(sleeve: OptionSleeveConfig) -> dict[str, Any]:
        return {
            "enabled": sleeve.enabled,
            "spend_pct": str(sleeve.spend_pct),
            "min_months": str(sleeve.min_months),
            "max_months": str(sleeve.max_months),
            "min_moneyness": str(sleeve.min_moneyness),
            "max_moneyness": str(sleeve.max_moneyness),
            "limit_price_buffer_pct": str(sleeve.limit_price_buffer_pct),
            "close_within_days": sleeve.close_within_days,
            "allow_expire": sleeve.allow_expire,
            "contract_multiplier": sleeve.contract_multiplier,
        }

    config_dict = {
        "environment": config.environment,
        "account_key": config.account_key,
        "universe": list(config.universe),
        "options_underlyings": list(config.options_underlyings),
        "hedge_proxy_policy": {
            "hedge_preferred": list(config.hedge_preferred),
            "growth_preferred": list(config.growth_preferred),
        },
        "proxies": {parent: list(members) for parent, members in config.proxies.items()},
        "fractional_shares_supported": config.fractional_shares_supported,
        "capital": {
            "core_pct": str(config.capital.core_pct),
            "reserve_pct": str(config.capital.reserve_pct),
            "exposure_cap_table": [
                {
                    "confidence_threshold": str(step.confidence_threshold),
                    "cap_pct": str(step.cap_pct),
                }
                for step in config.capital.exposure_cap_table
            ],
            "deploy_conf_threshold": str(config.capital.deploy_conf_threshold),
            "low_confidence_scale": str(config.capital.low_confidence_scale),
        },
        "risk": {
            "max_trades_per_run": config.risk.max_trades_per_run,
            "max_positions": config.risk.max_positions,
            "max_position_pct": str(config.risk.max_position_pct),
            "max_weekly_drawdown_pct": str(config.risk.max_weekly_drawdown_pct),
            "min_cash_pct": str(config.risk.min_cash_pct),
            "max_notional_traded_pct_per_run": str(config.risk.max_notional_traded_pct_per_run),
            "min_hold_hours": str(config.risk.min_hold_hours),
        },
        "rebalance": {
            "enabled": config.rebalance.enabled,
            "portfolio_drift_threshold": str(config.rebalance.portfolio_drift_threshold),
            "position_drift_threshold": str(config.rebalance.position_drift_threshold),
            "min_trade_notional_usd": str(config.rebalance.min_trade_notional_usd),
            "always_rebalance_on_regime_change": config.rebalance.always_rebalance_on_regime_change,
            "regime_change_keys": list(config.rebalance.regime_change_keys),
            "full_exit_removed_symbols": config.rebalance.full_exit_removed_symbols,
            "dust_shares_threshold": str(config.rebalance.dust_shares_threshold),
        },
        "arbitration": {
            "growth_min_confidence": str(config.arbitration.growth_min_confidence),
            "insurance_on_stressed_vol": config.arbitration.insurance_on_stressed_vol,
        },
        "insurance": sleeve_dict(config.insurance),
        "growth": sleeve_dict(config.growth),
        "dislocation": {
            "freeze_base_rebalance_during_add_hold": (
                config.dislocation.freeze_base_rebalance_during_add_hold
            ),
            "protect_from_sells": config.dislocation.protect_from_sells,
        },
        "state_dir": config.state_dir,
        "output_dir": config.output_dir,
    }

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
