"""
CLI interface for Token Economy.

Thin operational wrappers over the budget gate and router: status, threshold
check, manual reset, and dry runs of admission and routing.
"""

import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from token_economy.config.loader import EngineConfig, load_engine_config
from token_economy.core.budget_gate import BudgetGate
from token_economy.core.classifier import classify, describe_category, match_rule
from token_economy.core.errors import RoutingError
from token_economy.core.models import FailureDescriptor, FailureKind, TaskCategory
from token_economy.core.router import route, validate_policy
from token_economy.observability import setup_logging
from token_economy.storage.audit_log import JsonlAuditSink
from token_economy.storage.snapshot import JsonSnapshotStore

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_WARN = 1  # Threshold checks fail scripts on warnings too
EXIT_CODE_FAIL = 1

_state = {"config_path": None}


def build_gate(config: EngineConfig) -> BudgetGate:
    """Create the process's budget gate from configuration."""
    return BudgetGate(
        config=config.budgets,
        audit_sink=JsonlAuditSink(config.paths.audit_log),
        snapshot_store=JsonSnapshotStore(config.paths.budget_state),
        pricing=config.pricing,
    )


def _load_config() -> EngineConfig:
    try:
        return load_engine_config(_state["config_path"])
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML config (defaults to $TOKEN_ECONOMY_CONFIG)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Token Economy CLI."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    _state["config_path"] = config
    if ctx.invoked_subcommand is None:
        console.print("Token Economy - Use --help to see available commands")


def _format_currency(amount: float, places: int = 4) -> str:
    return f"${amount:,.{places}f}"


def _usage_bar(percent: float, length: int = 40) -> str:
    filled = min(length, max(0, int((percent / 100) * length)))
    return "█" * filled + "░" * (length - filled)


@app.command()
def status():
    """Show current budget status."""
    gate = build_gate(_load_config())
    try:
        current = gate.get_status()
    finally:
        gate.close()

    console.print("\n[bold]Budget Status[/bold]")
    console.print("-" * 40)
    console.print(f"Date: {current.period_key}")
    console.print(f"Today's Spend: {_format_currency(current.cumulative_spend_usd)}")
    console.print(f"Daily Limit: {_format_currency(current.daily_limit, 2)}")
    console.print(f"Remaining: {_format_currency(current.remaining)}")
    console.print(f"[{_usage_bar(current.percent_used)}] {current.percent_used:.1f}%")

    table = Table(title="Limits")
    table.add_column("Limit")
    table.add_column("Value", justify="right")
    table.add_row("Max tokens/task", f"{current.limits['max_tokens_per_task']:,}")
    table.add_row("Max cost/task", _format_currency(current.limits["max_cost_per_task_usd"], 2))
    table.add_row("Max daily cost", _format_currency(current.limits["max_daily_cost_usd"], 2))
    console.print(table)

    if current.percent_used >= 90:
        console.print(f"[red]WARNING:[/] Budget usage at {current.percent_used:.1f}%")
    elif current.percent_used >= 80:
        console.print(f"[yellow]CAUTION:[/] Budget usage at {current.percent_used:.1f}%")
    else:
        console.print("[green]✓[/] Budget healthy")


@app.command()
def check():
    """Check alert thresholds; exit 1 on warning or exceeded budget."""
    config = _load_config()
    gate = build_gate(config)
    try:
        current = gate.get_status()
    finally:
        gate.close()

    has_warnings = False
    alert = config.budgets.alert_thresholds.daily_cost_usd
    if current.cumulative_spend_usd >= alert:
        console.print(
            f"[yellow]Daily spend ({_format_currency(current.cumulative_spend_usd, 2)}) "
            f"exceeds alert threshold ({_format_currency(alert, 2)})[/]"
        )
        has_warnings = True

    if current.cumulative_spend_usd >= current.daily_limit:
        console.print(
            f"[red]BUDGET EXCEEDED! Daily spend ({_format_currency(current.cumulative_spend_usd, 2)}) "
            f"over limit ({_format_currency(current.daily_limit, 2)})[/]"
        )
        has_warnings = True

    if not has_warnings:
        console.print("[green]✓[/] All thresholds OK")
        sys.exit(EXIT_CODE_PASS)
    sys.exit(EXIT_CODE_WARN)


@app.command()
def reset():
    """Reset today's spend counter."""
    gate = build_gate(_load_config())
    try:
        gate.reset_daily()
    finally:
        gate.close()
    console.print("[green]✓[/] Daily budget reset")


@app.command()
def simulate(
    category: str = typer.Argument("write", help="Task category"),
    resource: str = typer.Argument("anthropic/claude-sonnet-4-5", help="Resource identifier"),
    tokens: int = typer.Argument(10000, help="Estimated total tokens")
):
    """Dry-run an admission check without recording spend."""
    try:
        task_category = TaskCategory(category)
    except ValueError:
        valid = [c.value for c in TaskCategory]
        console.print(f"[red]Error:[/] category must be one of: {valid}")
        sys.exit(EXIT_CODE_FAIL)

    if tokens < 0:
        console.print("[red]Error:[/] tokens must be >= 0")
        sys.exit(EXIT_CODE_FAIL)

    gate = build_gate(_load_config())
    try:
        result = gate.check_budget(task_category, resource, tokens)
    finally:
        gate.close()

    console.print("\n[bold]Simulating Task[/bold]")
    console.print("-" * 40)
    console.print(f"Task Type: {task_category.value}")
    console.print(f"Model: {resource}")
    console.print(f"Estimated Tokens: {tokens:,}")

    if not result.allowed:
        console.print("\n[red]Task would be BLOCKED[/]")
        console.print(f"Reason: {result.reason}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("\n[green]Task would be ALLOWED[/]")
    console.print(f"Estimated Cost: {_format_currency(result.estimated_cost_usd)}")
    console.print(f"Today's Spend: {_format_currency(result.cumulative_spend_usd)}")
    console.print(f"Projected Spend: {_format_currency(result.projected_spend_usd)}")
    if result.warnings:
        console.print("\n[yellow]Warnings:[/]")
        for warning in result.warnings:
            console.print(f"  - {warning}")
    sys.exit(EXIT_CODE_PASS)


@app.command("route")
def route_command(
    text: str = typer.Argument(..., help="Task text to classify"),
    trigger: Optional[str] = typer.Option(None, "--trigger", "-t", help="Trigger source"),
    attempt: int = typer.Option(0, "--attempt", "-a", help="Attempt number (0-indexed)"),
    failure: Optional[str] = typer.Option(
        None, "--failure", "-f", help="Previous failure: validation, tool_error or uncertainty"
    ),
    failure_count: int = typer.Option(1, "--failure-count", help="Times the failure occurred")
):
    """Classify a task and show which resource it would route to."""
    config = _load_config()
    last_failure = None
    if failure is not None:
        try:
            last_failure = FailureDescriptor(FailureKind(failure), failure_count)
        except ValueError:
            valid = [k.value for k in FailureKind]
            console.print(f"[red]Error:[/] failure must be one of: {valid}")
            sys.exit(EXIT_CODE_FAIL)

    meta = {"trigger_source": trigger}
    category = classify(text, meta)
    rule = match_rule(text, meta)
    try:
        validate_policy(config.policy, config.pricing)
        decision = route(category, attempt, last_failure, config.policy)
    except RoutingError as e:
        console.print(f"[red]Routing failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"Category: {category.value} ({describe_category(category)})")
    console.print(f"Matched rule: {rule.name if rule else 'default'}")
    console.print(f"Tier: {decision.effective_tier.value}" + (" (escalated)" if decision.escalated else ""))
    console.print(f"Resource: {decision.resource_id or 'none'}")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
