"""x402-sentinel CLI — Entry point.

Usage:
    x402-sentinel daemon start
    x402-sentinel daemon status
    x402-sentinel cycle run
    x402-sentinel executors list
    x402-sentinel executors inspect <executor_id>
"""

from __future__ import annotations

import typer
from rich.console import Console

from x402_sentinel.cli.commands import cycle, daemon, executors

app = typer.Typer(
    name="x402-sentinel",
    help="x402-sentinel — Paid watcher marketplace with a webhook trigger engine.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.add_typer(daemon.app, name="daemon")
app.add_typer(cycle.app, name="cycle")
app.add_typer(executors.app, name="executors")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
