"""
CLI interface for the AI gateway.

Inspects configuration and the persisted cost ledger.
"""

import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_gateway.config.loader import GatewayConfig, load_config
from ai_gateway.core.ledger import CostLedger
from ai_gateway.storage.db import DEFAULT_DB_PATH
from ai_gateway.storage.repository import SQLiteCostEntryStore, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _build_ledger(db_path: str, config: GatewayConfig) -> CostLedger:
    """Ledger backed by the sqlite store at ``db_path``."""
    return CostLedger(
        limits=config.cost_limits,
        pricing=config.pricing,
        store=SQLiteCostEntryStore(db_path),
    )


def _format_currency(amount: float) -> str:
    return f"${amount:,.4f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AI gateway CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AI Gateway - Use --help to see available commands")


@app.command()
def init(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the sqlite cost ledger"),
):
    """Initialize the cost ledger database."""
    try:
        initialize_schema(db)
        console.print(f"[green]✓[/] Cost ledger initialized at {db}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("check-config")
def check_config(path: str = typer.Argument(..., help="YAML configuration file")):
    """Validate a configuration file and list its models."""
    try:
        config = load_config(path)
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Configured models")
    table.add_column("Key")
    table.add_column("Family")
    table.add_column("Model")
    table.add_column("Fallback")
    for key, model in sorted(config.models.items()):
        table.add_row(key, model.family.value, model.model_id, model.fallback_model_id or "-")

    console.print(f"[green]✓[/] Configuration valid (region {config.region})")
    console.print(table)
    console.print(
        f"Limits: daily {_format_currency(config.cost_limits.daily)}, "
        f"monthly {_format_currency(config.cost_limits.monthly)}, "
        f"warning at {config.cost_limits.warning_threshold:.0f}%"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def summary(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the sqlite cost ledger"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
):
    """Show the month-to-date cost summary and remaining budget."""
    try:
        config = load_config(config_path)
        ledger = _build_ledger(db, config)
        result = ledger.summary()
        remaining = ledger.remaining_budget()
        status = ledger.is_within_limits()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("\n[bold]Cost Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Requests: {result.request_count}")
    console.print(f"Total cost: {_format_currency(result.total_cost)}")
    console.print(f"Average per request: {_format_currency(result.average_cost_per_request)}")
    console.print(f"Last 24 hours: {_format_currency(result.daily_cost)}")
    console.print(f"This month: {_format_currency(result.monthly_cost)}")

    if result.cost_by_model:
        table = Table(title="Cost by model")
        table.add_column("Model")
        table.add_column("Cost", justify="right")
        for model_id, cost in sorted(result.cost_by_model.items(), key=lambda kv: -kv[1]):
            table.add_row(model_id, _format_currency(cost))
        console.print(table)

    console.print(
        f"\nRemaining budget: daily {_format_currency(remaining.daily)}, "
        f"monthly {_format_currency(remaining.monthly)}"
    )
    if status.ok:
        console.print("[green]✓[/] Within limits")
    else:
        console.print("[red]✗[/] Budget exhausted, invocations are being refused")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def trend(
    days: int = typer.Option(30, "--days", "-d", help="Number of days ending today"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the sqlite cost ledger"),
):
    """Show daily cost totals."""
    try:
        ledger = _build_ledger(db, load_config())
        points = ledger.trend(days)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"Daily cost, last {days} days")
    table.add_column("Date")
    table.add_column("Requests", justify="right")
    table.add_column("Cost", justify="right")
    for point in points:
        table.add_row(point.date.isoformat(), str(point.request_count), _format_currency(point.cost))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def purge(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the sqlite cost ledger"),
):
    """Remove cost entries older than the retention period."""
    try:
        removed = _build_ledger(db, load_config()).purge_expired()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Removed {removed} expired cost entries")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
