"""CLI entry point and base commands.

Provides the main CLI application with commands for:
- replay: Run a recorded upstream event stream through the reply streamer
- version: Show version information
"""

from typing import Annotated, Optional

import typer
from rich.panel import Panel

from src.cli.commands.replay import replay
from src.cli.utils import console
from src.logging_config import configure_logging

app = typer.Typer(
    name="replies",
    help="Streaming AI reply orchestrator tooling",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR"),
    ] = None,
) -> None:
    """Configure logging before any command runs."""
    level = log_level.upper() if log_level else None
    if level is not None and level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
        raise typer.BadParameter(f"Unknown log level '{log_level}'", param_hint="--log-level")
    configure_logging(level)  # type: ignore[arg-type]


app.command(name="replay")(replay)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(
        Panel(
            "[bold]Replies[/bold] v0.1.0\nStreaming AI reply orchestrator",
            title="Version",
            border_style="blue",
        )
    )


# Entry point for: python -m src.cli.main
if __name__ == "__main__":
    app()
