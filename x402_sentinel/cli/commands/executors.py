"""CLI — Condition evaluator inspection commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from x402_sentinel.config import Settings
from x402_sentinel.evaluators.registry import build_default_registry

app = typer.Typer(help="Inspect the built-in condition evaluators.")
console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
]


@app.command("list")
def list_executors(config: ConfigOption = None) -> None:
    """List registered condition evaluators."""
    registry = build_default_registry(Settings.load(config_file=config))

    table = Table(title="Condition Evaluators")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category", style="green")
    table.add_column("Description")

    for info in registry.describe_all():
        table.add_row(
            info.get("id", ""),
            info.get("name", ""),
            info.get("category", "-"),
            info.get("description", ""),
        )
    console.print(table)


@app.command("inspect")
def inspect_executor(
    executor_id: str = typer.Argument(help="Executor ID to inspect."),
    config: ConfigOption = None,
) -> None:
    """Print an evaluator's config schema."""
    registry = build_default_registry(Settings.load(config_file=config))
    evaluator = registry.resolve(executor_id)
    if evaluator is None:
        console.print(f"[red]Unknown executor: {executor_id}[/red]")
        raise typer.Exit(1)

    schema = evaluator.describe().get("config_schema", {})
    console.print(Syntax(json.dumps(schema, indent=2), "json"))
