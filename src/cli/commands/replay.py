"""Replay command — run a recorded upstream stream through the streamer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from rich.markup import escape
from rich.table import Table

from src.ai.streaming.dispatcher import RetryPolicy
from src.ai.streaming.streamer import ReplyStreamer
from src.ai.tools.registry import ToolRegistry
from src.cli.utils import console
from src.exceptions import UpstreamStreamError

if TYPE_CHECKING:
    from src.ai.streaming.models import StreamSummary


class DiscardingRecorder:
    """Run recorder that drops every run (replays are not persisted)."""

    async def record(self, run: Any) -> None:
        return None


def replay(
    events_file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            readable=True,
            help="JSON-lines file with one upstream event per line",
        ),
    ],
    max_concurrency: Annotated[
        int,
        typer.Option("--max-concurrency", "-c", min=1, help="Tool calls running at once"),
    ] = 2,
    timeout: Annotated[
        float,
        typer.Option("--timeout", "-t", help="Per-attempt tool timeout in seconds (0 = none)"),
    ] = 15.0,
    retries: Annotated[
        int,
        typer.Option("--retries", "-r", min=0, help="Retries after a failed tool call"),
    ] = 0,
) -> None:
    """Replay a recorded upstream event stream.

    Prints every event the client would receive, then the reply summary.
    No tools are registered, so tool calls end as ``unknown_tool`` errors.
    """
    try:
        summary = asyncio.run(
            _replay(
                events_file,
                max_concurrency=max_concurrency,
                policy=RetryPolicy(
                    timeout_seconds=timeout,
                    max_retries=retries,
                    retry_delay_seconds=0.0,
                ),
            )
        )
    except UpstreamStreamError as e:
        console.print(f"[red]Upstream error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    _display_summary(summary.to_dict())


def _print_event(event: str, data: Any) -> None:
    console.print(f"[cyan]{event}[/cyan] {escape(json.dumps(data, default=str))}")


async def _replay(
    path: Path,
    *,
    max_concurrency: int,
    policy: RetryPolicy,
) -> StreamSummary:
    streamer = ReplyStreamer(
        tenant_id="replay",
        conversation_id=path.stem,
        config_id=None,
        model="unknown",
        send_event=_print_event,
        executor=ToolRegistry(),
        recorder=DiscardingRecorder(),
        policy=policy,
        max_concurrency=max_concurrency,
    )

    for line_number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            console.print(f"[yellow]Skipping line {line_number}: not valid JSON[/yellow]")
            continue
        streamer.handle_event(payload)
        # Give queued tool calls a chance to start between events
        await asyncio.sleep(0)

    return await streamer.finalize()


def _display_summary(summary: dict[str, Any]) -> None:
    console.print()
    console.print(f"[bold]Model:[/bold] {escape(summary['model'])}")
    console.print(f"[bold]Completed:[/bold] {'yes' if summary['completed'] else 'no'}")
    console.print(f"[bold]Message:[/bold] {escape(summary['message'])}")

    if not summary["toolCalls"]:
        return

    table = Table(title="Tool Calls")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Error")
    for tool in summary["toolCalls"]:
        color = "green" if tool["status"] == "success" else "red"
        table.add_row(
            tool["id"],
            tool["name"],
            f"[{color}]{tool['status']}[/{color}]",
            escape(tool.get("error") or ""),
        )
    console.print(table)
