"""CLI — Service management commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Start and inspect the x402-sentinel HTTP service.")
console = Console()


@app.command("start")
def start(
    host: Annotated[str | None, typer.Option(help="Host to bind to.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to listen on.")] = None,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    scheduler: Annotated[
        bool | None,
        typer.Option(
            "--scheduler/--no-scheduler",
            help="Run trigger cycles in-process (overrides engine.scheduler_enabled).",
        ),
    ] = None,
    log_level: str = typer.Option("info", help="Log level."),
) -> None:
    """Start the x402-sentinel service."""
    from x402_sentinel.api.server import create_app
    from x402_sentinel.config import Settings

    settings = Settings.load(config_file=config)
    if host is not None:
        settings.server.host = host
    if port is not None:
        settings.server.port = port
    if scheduler is not None:
        settings.engine.scheduler_enabled = scheduler

    console.print(
        f"[bold green]Starting x402-sentinel on "
        f"{settings.server.host}:{settings.server.port}[/bold green]"
    )

    app_instance = create_app(settings=settings)

    uvicorn.run(
        app_instance,
        host=settings.server.host,
        port=settings.server.port,
        log_level=log_level,
    )


@app.command("status")
def status(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8402),
) -> None:
    """Check service status."""
    import httpx

    try:
        resp = httpx.get(f"http://{host}:{port}/health", timeout=5.0)
        data = resp.json()
        table = Table(title="x402-sentinel Status")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for k, v in data.items():
            table.add_row(str(k), str(v))
        console.print(table)
    except Exception as exc:
        console.print(f"[red]Service unreachable: {exc}[/red]")
        raise typer.Exit(1)
