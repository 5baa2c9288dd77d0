"""
Command-line interface for the sleeve allocation system.

Provides commands for:
- init-config: Write a default configuration file
- budgets: Show the core/reserve partition for a NAV
- arbitrate: Show which option sleeve a regime snapshot allows
- run: Run one allocation cycle from input files
- simulate: Run a preset weekly scenario
"""

import logging
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import click

from sleeve_pilot.config import (
    BotConfig,
    ConfigurationError,
    load_bot_config,
    write_config,
)
from sleeve_pilot.data import (
    DataLoadError,
    load_holdings,
    load_option_positions,
    load_quotes,
    load_regimes,
    load_sleeve_positions,
    load_targets,
    save_orders,
    save_simulation_weeks,
    save_sleeve_positions,
)
from sleeve_pilot.logging import DecisionLogger
from sleeve_pilot.models import DislocationPhase, PortfolioState, to_naive_utc
from sleeve_pilot.pipeline import RunInputs, run_cycle
from sleeve_pilot.portfolio import compute_budgets, compute_nav
from sleeve_pilot.sleeves import JsonFileStateStore, arbitrate_sleeves


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _load_config_or_exit(config_path: str, env_file: Optional[str]) -> BotConfig:
    try:
        return load_bot_config(config_path, env_file)
    except ConfigurationError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


def _parse_decimal_or_exit(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        click.echo(f"Invalid {name}: {value}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0", prog_name="sleeve-pilot")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level (default: INFO)",
)
def main(log_level: str):
    """
    Sleeve allocation core.

    Partitions capital between a core ETF sleeve and an options reserve,
    rebalances the core against drift and runs the insurance and growth
    option sleeves. Orders are proposals only.
    """
    _configure_logging(log_level)


@main.command("init-config")
@click.option(
    "--output", "-o",
    type=click.Path(),
    default="config/sleeve_pilot.yaml",
    help="Where to write the configuration file",
)
@click.option(
    "--universe", "-u",
    default="SPY,QQQ,IWM,AGG",
    help="Comma-separated ETF universe",
)
def init_config(output: str, universe: str):
    """Write a configuration file populated with defaults."""
    symbols = [s.strip().upper() for s in universe.split(",") if s.strip()]
    if not symbols:
        click.echo("Universe cannot be empty.", err=True)
        sys.exit(1)
    write_config(BotConfig(universe=symbols), output)
    click.echo(f"Configuration written: {output}")


@main.command()
@click.option(
    "--config", "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to bot configuration YAML file",
)
@click.option("--nav", required=True, type=str, help="Net asset value")
@click.option(
    "--regimes", "-r",
    type=click.Path(exists=True),
    default=None,
    help="Regime snapshot (YAML/JSON) used for the exposure cap",
)
@click.option(
    "--confidence-scale",
    type=str,
    default=None,
    help="Externally supplied deploy scale in [0, 1]",
)
@click.option("--env-file", type=click.Path(), default=None, help=".env file with overrides")
def budgets(
    config: str,
    nav: str,
    regimes: Optional[str],
    confidence_scale: Optional[str],
    env_file: Optional[str],
):
    """
    Show the core/reserve partition and deploy budget for a NAV.
    """
    bot_config = _load_config_or_exit(config, env_file)
    nav_value = _parse_decimal_or_exit(nav, "NAV")
    scale = _parse_decimal_or_exit(confidence_scale, "confidence scale") if confidence_scale else None

    regime_ctx = None
    if regimes:
        try:
            regime_ctx = load_regimes(regimes)
        except DataLoadError as e:
            click.echo(f"Error loading regimes: {e}", err=True)
            sys.exit(1)

    result = compute_budgets(nav_value, bot_config.capital, regime_ctx, scale)

    click.echo()
    click.echo("Capital Partition:")
    click.echo(f"  NAV:               ${result.nav:,.2f}")
    click.echo(f"  Core budget:       ${result.core_budget:,.2f} ({bot_config.capital.core_pct:.0%})")
    click.echo(f"  Reserve budget:    ${result.reserve_budget:,.2f} ({bot_config.capital.reserve_pct:.0%})")
    click.echo(f"  Exposure cap:      {result.base_exposure_cap_pct:.2%}")
    click.echo(f"  Confidence scale:  {result.confidence_scale:.2f}")
    click.echo(f"  Deploy budget:     ${result.deploy_budget_usd:,.2f} ({result.deploy_pct:.2%} of core)")


@main.command()
@click.option(
    "--regimes", "-r",
    required=True,
    type=click.Path(exists=True),
    help="Regime snapshot (YAML/JSON)",
)
@click.option(
    "--dislocation/--no-dislocation",
    default=False,
    help="Whether the dislocation overlay is engaged",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Optional bot configuration for arbitration settings",
)
def arbitrate(regimes: str, dislocation: bool, config: Optional[str]):
    """
    Show which option sleeve the regime snapshot allows.
    """
    try:
        regime_ctx = load_regimes(regimes)
    except DataLoadError as e:
        click.echo(f"Error loading regimes: {e}", err=True)
        sys.exit(1)

    arbitration_config = _load_config_or_exit(config, None).arbitration if config else None
    result = arbitrate_sleeves(dislocation, regime_ctx, arbitration_config)

    click.echo()
    click.echo("Sleeve Arbitration:")
    click.echo(f"  Insurance allowed: {result.allowed.insurance}")
    click.echo(f"  Growth allowed:    {result.allowed.growth_convexity}")
    for reason in result.reasons:
        click.echo(f"    - {reason}")


@main.command()
@click.option(
    "--config", "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to bot configuration YAML file",
)
@click.option(
    "--holdings", "-h",
    required=True,
    type=click.Path(exists=True),
    help="Path to holdings CSV file",
)
@click.option("--cash", required=True, type=str, help="Cash balance")
@click.option(
    "--quotes", "-q",
    required=True,
    type=click.Path(exists=True),
    help="Path to quotes CSV file",
)
@click.option(
    "--targets", "-t",
    required=True,
    type=click.Path(exists=True),
    help="Path to target weights CSV file",
)
@click.option(
    "--regimes", "-r",
    required=True,
    type=click.Path(exists=True),
    help="Regime snapshot (YAML/JSON)",
)
@click.option(
    "--prior-regimes",
    type=click.Path(exists=True),
    default=None,
    help="Regime snapshot of the previous run",
)
@click.option(
    "--option-positions",
    type=click.Path(exists=True),
    default=None,
    help="Broker option positions CSV (omit when unknown)",
)
@click.option(
    "--dislocation-phase",
    type=click.Choice([p.value for p in DislocationPhase]),
    default=DislocationPhase.INACTIVE.value,
    help="Dislocation overlay phase",
)
@click.option("--tier-engaged", is_flag=True, help="A dislocation tier is engaged")
@click.option("--drawdown", type=str, default="0", help="Weekly drawdown fraction")
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Run timestamp (YYYY-MM-DDTHH:MM); offsets are converted to UTC. Defaults to now (UTC).",
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default=None,
    help="Output directory. Defaults to config output_dir.",
)
@click.option("--env-file", type=click.Path(), default=None, help=".env file with overrides")
def run(
    config: str,
    holdings: str,
    cash: str,
    quotes: str,
    targets: str,
    regimes: str,
    prior_regimes: Optional[str],
    option_positions: Optional[str],
    dislocation_phase: str,
    tier_engaged: bool,
    drawdown: str,
    date: Optional[str],
    output_dir: Optional[str],
    env_file: Optional[str],
):
    """
    Run one allocation cycle.

    Computes budgets, rebalances the core sleeve, plans both option sleeves
    and evaluates every order against the risk limits. Writes the proposed
    orders and appends to the decision log.
    """
    bot_config = _load_config_or_exit(config, env_file)

    as_of = to_naive_utc(datetime.now().astimezone())
    if date:
        try:
            as_of = to_naive_utc(datetime.fromisoformat(date))
        except ValueError:
            click.echo(f"Invalid date format: {date}. Use YYYY-MM-DDTHH:MM.", err=True)
            sys.exit(1)

    out_dir = Path(output_dir or bot_config.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    sleeve_positions_path = Path(bot_config.state_dir) / (
        f"sleeve_positions.{bot_config.environment}.{bot_config.account_key}.json"
    )

    try:
        holding_list = load_holdings(holdings)
        quote_map = load_quotes(quotes)
        target_list = load_targets(targets)
        regime_ctx = load_regimes(regimes)
        prior_ctx = load_regimes(prior_regimes) if prior_regimes else None
        positions, marks = (
            load_option_positions(option_positions) if option_positions else (None, {})
        )
        sleeve_positions = load_sleeve_positions(sleeve_positions_path)
    except DataLoadError as e:
        click.echo(f"Error loading inputs: {e}", err=True)
        sys.exit(1)

    cash_value = _parse_decimal_or_exit(cash, "cash")
    option_value = sum((p.marked_value for p in positions or []), Decimal("0"))
    equity = compute_nav(holding_list, cash_value, quote_map) + option_value

    decision_logger = DecisionLogger(out_dir / "decision_log.jsonl", bot_config.account_key)
    decision_logger.log_config_loaded(bot_config, config)

    try:
        report = run_cycle(
            RunInputs(
                as_of=as_of,
                portfolio=PortfolioState(cash=cash_value, equity=equity, holdings=holding_list),
                quotes=quote_map,
                targets=target_list,
                regimes=regime_ctx,
                prior_regimes=prior_ctx,
                dislocation_phase=DislocationPhase(dislocation_phase),
                tier_engaged=tier_engaged,
                sleeve_positions=sleeve_positions,
                option_positions=positions,
                option_marks=marks,
                drawdown=_parse_decimal_or_exit(drawdown, "drawdown"),
            ),
            bot_config,
            JsonFileStateStore(bot_config.state_dir),
            decision_logger=decision_logger,
        )
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    save_sleeve_positions(report.sleeve_positions, sleeve_positions_path)
    orders_path = out_dir / f"orders_{bot_config.account_key}_{as_of:%Y%m%dT%H%M}.csv"
    save_orders(report.orders, orders_path, report.approved)

    b = report.budgets
    click.echo()
    click.echo(f"Run {report.run_id} ({as_of:%Y-%m-%d %H:%M}):")
    click.echo(f"  NAV: ${b.nav:,.2f}  core ${b.core_budget:,.2f}  reserve ${b.reserve_budget:,.2f}")
    click.echo(f"  Deploy budget: ${b.deploy_budget_usd:,.2f}")
    click.echo(f"  Rebalance: {report.rebalance.status.value} "
               f"({len(report.core_orders)} core orders)")
    for result in (report.insurance, report.growth):
        line = f"  {result.sleeve.value.capitalize()}: {result.state.status.value}, " \
               f"{result.planned_action.value}"
        if result.reason:
            line += f" ({result.reason})"
        click.echo(line)
    click.echo(f"  Risk: {'APPROVED' if report.approved else 'BLOCKED'}")
    for reason in report.risk.blocked_reasons:
        click.echo(f"    - {reason}")
    click.echo(f"  Orders saved: {orders_path}")
    click.echo()
    click.echo("  Note: All orders are proposals only. Review before execution.")


@main.command()
@click.option(
    "--scenario", "-s",
    type=click.Choice(["mild", "flat"]),
    default="mild",
    help="Preset scenario (default: mild)",
)
@click.option(
    "--initial-cash",
    type=float,
    default=100000,
    help="Initial cash amount (default: 100000)",
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default="output",
    help="Output directory",
)
def simulate(scenario: str, initial_cash: float, output_dir: str):
    """
    Run a preset weekly scenario through the allocation cycle.

    Example:
        sleeve-pilot simulate --scenario mild --initial-cash 250000
    """
    from sleeve_pilot.simulation import (
        SimulationConfig,
        SimulationEngine,
        build_scenario,
        calculate_metrics,
    )

    config = SimulationConfig(initial_cash=Decimal(str(initial_cash)))
    engine = SimulationEngine(config, build_scenario(scenario))
    result = engine.run()

    weeks = result.to_dataframe()
    metrics = calculate_metrics(weeks)

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    weeks_path = save_simulation_weeks(weeks, out_dir / f"simulation_{scenario}.csv")
    metrics_path = out_dir / f"simulation_{scenario}_metrics.json"
    metrics.to_json(metrics_path)

    click.echo(f"\n{'='*60}")
    click.echo(f"  Scenario Simulation: {scenario}")
    click.echo(f"{'='*60}")
    click.echo(f"  Weeks:              {metrics.weeks}")
    click.echo(f"  Final NAV:          ${metrics.final_nav:,.2f}")
    click.echo(f"  Total return:       {metrics.total_return:.2%}")
    click.echo(f"  Max drawdown:       {metrics.max_drawdown:.2%}")
    click.echo(f"  Insurance weeks:    {metrics.insurance_deployed_weeks}")
    click.echo(f"  Growth weeks:       {metrics.growth_deployed_weeks}")
    click.echo(f"  Min reserve left:   ${metrics.min_reserve_remaining:,.2f}")
    click.echo(f"  Blocked runs:       {metrics.blocked_runs}")
    click.echo(f"{'='*60}\n")
    click.echo(f"Outputs saved to: {out_dir}")
    click.echo(f"  - weeks: {weeks_path.name}")
    click.echo(f"  - metrics: {metrics_path.name}")


if __name__ == "__main__":
    main()
