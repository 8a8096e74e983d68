"""CLI — Run a trigger cycle against the local database."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from x402_sentinel.config import Settings
from x402_sentinel.triggers.engine import CycleSummary

app = typer.Typer(help="Run trigger cycles without the HTTP service.")
console = Console()


async def _run_once(settings: Settings, expire: bool) -> CycleSummary:
    from x402_sentinel.services import open_services

    async with open_services(settings, start_scheduler=False) as services:
        if expire:
            await services.lifecycle.expire_overdue()
        return await services.engine.run_cycle()


@app.command("run")
def run(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    trigger_mode: Annotated[
        str | None, typer.Option("--trigger-mode", help="Override engine.trigger_mode (level|edge).")
    ] = None,
    expire: bool = typer.Option(True, "--expire/--no-expire", help="Expire overdue watchers first."),
) -> None:
    """Evaluate every active watcher once and print the summary."""
    from x402_sentinel.logging import configure_logging

    settings = Settings.load(config_file=config)
    if trigger_mode is not None:
        if trigger_mode not in ("level", "edge"):
            console.print(f"[red]Invalid trigger mode: {trigger_mode}[/red]")
            raise typer.Exit(2)
        settings.engine.trigger_mode = trigger_mode  # type: ignore[assignment]

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    try:
        summary = asyncio.run(_run_once(settings, expire))
    except Exception as exc:
        console.print(f"[red]Cycle failed: {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Cycle {summary.cycle_id}")
    table.add_column("Checked", style="cyan")
    table.add_column("Triggered", style="green")
    table.add_column("Skipped", style="yellow")
    table.add_column("Errors", style="red")
    table.add_column("Duration")
    table.add_row(
        str(summary.checked),
        str(summary.triggered),
        str(summary.skipped),
        str(summary.errors),
        f"{summary.duration_ms} ms",
    )
    console.print(table)
