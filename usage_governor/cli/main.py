"""
CLI interface for Usage Governor.

Provides command-line access to pricing, cost estimates and replay of
recorded task outcomes through a session.
"""

import logging
import sys
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from usage_governor.config.loader import EngineConfig, load_engine_config
from usage_governor.core.analytics import (
    CostProjection,
    SessionSummary,
    WarningSeverity,
    check_limits,
    get_cost_projection,
    get_health_assessment,
    get_summary,
)
from usage_governor.core.errors import UsageGovernorError
from usage_governor.core.pricing import calculate_cost
from usage_governor.core.session import (
    SessionTracker,
    complete_task,
    create_session,
    end_session,
    start_task,
)
from usage_governor.core.token_counter import TokenUsage

app = typer.Typer()
console = Console()

# Exit codes - WARN is non-failing (0)
EXIT_CODE_PASS = 0
EXIT_CODE_WARN = 0
EXIT_CODE_FAIL = 1

_REPLAY_TASK_KEYS = {
    'task_id', 'model', 'category', 'level', 'input_tokens', 'output_tokens',
    'succeeded', 'error_message', 'duration_ms', 'metrics', 'metadata',
}


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Usage Governor CLI."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    if ctx.invoked_subcommand is None:
        console.print("Usage Governor - Use --help to see available commands")


def _load_config(config_path: Optional[str]) -> EngineConfig:
    if config_path is None:
        return EngineConfig()
    return load_engine_config(config_path)


@app.command()
def pricing(
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Engine YAML configuration"
    ),
):
    """Show the pricing table in USD per million tokens."""
    try:
        config = _load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Model Pricing (USD / 1M tokens)")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Max tokens", justify="right")
    for model, entry in sorted(config.pricing.entries.items()):
        name = f"{model} (default)" if model == config.pricing.default_model else model
        table.add_row(
            name,
            f"${entry.input_rate_per_million}",
            f"${entry.output_rate_per_million}",
            f"{entry.max_tokens:,}",
        )
    console.print(table)


@app.command()
def estimate(
    model: str = typer.Argument(..., help="Model identifier"),
    input_tokens: int = typer.Argument(..., min=0, help="Input token count"),
    output_tokens: int = typer.Argument(..., min=0, help="Output token count"),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Engine YAML configuration"
    ),
):
    """Estimate the cost of one call."""
    try:
        config = _load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    cost = calculate_cost(model, TokenUsage(input_tokens, output_tokens), config.pricing)
    if cost.used_fallback:
        console.print(
            f"[yellow]Unknown model {model}, priced as {config.pricing.default_model}[/]"
        )
    console.print(f"Input cost:  {_format_currency(cost.input_cost)}")
    console.print(f"Output cost: {_format_currency(cost.output_cost)}")
    console.print(f"[bold]Total cost:  {_format_currency(cost.total_cost)}[/bold]")


@app.command()
def replay(
    replay_path: str = typer.Argument(..., help="YAML file of recorded task outcomes"),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Engine YAML configuration"
    ),
    max_session_cost: Optional[float] = typer.Option(
        None, "--max-session-cost", "-s", help="Override the session cost limit"
    ),
    max_task_cost: Optional[float] = typer.Option(
        None, "--max-task-cost", "-t", help="Override the per-task cost limit"
    ),
    remaining_tasks: int = typer.Option(
        0, "--remaining-tasks", "-r", min=0, help="Tasks still expected, for the cost projection"
    ),
    enforced: bool = typer.Option(
        False, "--enforced", "-e", help="Exit with error code on critical warnings"
    ),
):
    """
    Replay recorded task outcomes through a session.

    Prints the session summary, cost projection, limit warnings and hierarchy
    health. This is a read-only operation on the input file.
    """
    try:
        config = _load_config(config_path)
        with open(replay_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        session = replay_tasks(raw, config)

        limits = config.limits
        if max_session_cost is not None:
            limits = replace(limits, max_session_cost=Decimal(str(max_session_cost)))
        if max_task_cost is not None:
            limits = replace(limits, max_task_cost=Decimal(str(max_task_cost)))
    except (OSError, ValueError, yaml.YAMLError, UsageGovernorError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    warnings = check_limits(
        session,
        max_session_cost=limits.max_session_cost,
        max_task_cost=limits.max_task_cost,
        warning_ratio=limits.warning_ratio,
    )

    _display_summary(get_summary(session))
    _display_projection(
        get_cost_projection(session, remaining_tasks, config.maturity_tasks)
    )
    _display_warnings(warnings)
    _display_health(session)

    critical = any(w.severity == WarningSeverity.CRITICAL for w in warnings)
    if enforced and critical:
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_WARN if warnings else EXIT_CODE_PASS)


def replay_tasks(raw: Any, config: EngineConfig) -> SessionTracker:
    """Feed a parsed replay document through a fresh session.

    Tasks run back to back from the session start; each one lasts its
    ``duration_ms`` (default 0). The returned session has ended.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get('tasks'), list):
        raise ValueError("Replay file must contain a 'tasks' list")

    cursor = datetime.now()
    session = create_session(
        raw.get('session_id'),
        pricing=config.pricing,
        hierarchy_config=config.hierarchy,
        now=cursor,
    )

    tasks: List[Dict[str, Any]] = raw['tasks']
    for index, task in enumerate(tasks):
        if not isinstance(task, dict):
            raise ValueError(f"Task at index {index} must be a dictionary")
        unknown_keys = set(task.keys()) - _REPLAY_TASK_KEYS
        if unknown_keys:
            raise ValueError(f"Unknown keys in task {index}: {unknown_keys}")
        for key in ('model', 'category', 'input_tokens', 'output_tokens'):
            if key not in task:
                raise ValueError(f"Missing required '{key}' in task {index}")

        task_id = str(task.get('task_id') or f"task-{index + 1}")
        session = start_task(
            session, task_id, task['model'], task['category'], task.get('level'), now=cursor
        )
        cursor = cursor + timedelta(milliseconds=int(task.get('duration_ms', 0)))
        session = complete_task(
            session,
            task_id,
            task['input_tokens'],
            task['output_tokens'],
            succeeded=bool(task.get('succeeded', True)),
            error_message=task.get('error_message'),
            metrics=task.get('metrics'),
            metadata=task.get('metadata'),
            now=cursor,
        )

    return end_session(session, now=cursor)


def _format_currency(amount: Decimal) -> str:
    """Format currency with four decimal places."""
    return f"${amount:,.4f}"


def _display_summary(summary: SessionSummary) -> None:
    console.print(f"\n[bold]Session {summary.session_id}[/bold]")
    console.print("-" * 40)
    console.print(f"Total cost: {_format_currency(summary.total_cost)}")
    console.print(f"Total tokens: {summary.total_tokens:,}")
    console.print(f"Tasks: {summary.tasks_completed}/{summary.tasks_total} completed")
    console.print(f"Success rate: {summary.success_rate:.1%}")
    if summary.used_fallback_pricing:
        console.print(
            f"[yellow]Default pricing used for: {', '.join(summary.pricing_substitutions)}[/]"
        )

    if summary.model_breakdown:
        table = Table(title="By model")
        table.add_column("Model")
        table.add_column("Tasks", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("Avg cost", justify="right")
        table.add_column("Success", justify="right")
        for model, bucket in sorted(summary.model_breakdown.items()):
            table.add_row(
                model,
                str(bucket.task_count),
                _format_currency(bucket.total_cost),
                _format_currency(bucket.avg_cost_per_task),
                f"{bucket.success_rate:.0%}",
            )
        console.print(table)

    if summary.category_breakdown:
        table = Table(title="By category")
        table.add_column("Category")
        table.add_column("Tasks", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("Models")
        for category, bucket in sorted(summary.category_breakdown.items()):
            table.add_row(
                category,
                str(bucket.task_count),
                _format_currency(bucket.total_cost),
                ", ".join(sorted(bucket.models_used)),
            )
        console.print(table)


def _display_projection(projection: CostProjection) -> None:
    console.print(
        f"\nProjected cost: {_format_currency(projection.projected_total_cost)} "
        f"(confidence {projection.confidence:.0%})"
    )


def _display_warnings(warnings) -> None:
    if not warnings:
        console.print("\n[green]✓[/] No limit warnings")
        return
    for warning in warnings:
        color = "red" if warning.severity == WarningSeverity.CRITICAL else "yellow"
        console.print(f"\n[{color}]{warning.severity.name}[/] {warning.message}")
        for breach in warning.tasks:
            console.print(
                f"  {breach.task_id} ({breach.model_id}): {_format_currency(breach.cost)}"
            )


def _display_health(session: SessionTracker) -> None:
    assessment = get_health_assessment(session)
    console.print(f"\n[bold]Hierarchy health:[/bold] {assessment.tier.value}")
    console.print(f"Reusability index: {assessment.reusability_index:.2f}")
    console.print(f"Base-to-composite ratio: {session.hierarchy.base_to_composite_ratio:.2f}")
    for recommendation in assessment.recommendations:
        console.print(f"  - {recommendation}")


if __name__ == "__main__":
    app()
