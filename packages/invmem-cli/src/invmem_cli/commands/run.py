"""Demo runner: feed invoice entries through the pipeline one at a time."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from invmem_core.config import EngineConfig
from invmem_core.errors import InvmemError
from invmem_engine import MemoryEngine
from rich.console import Console
from rich.panel import Panel

from invmem_cli.commands._common import load_engine_config
from invmem_cli.loader import DemoEntry, load_entries

console = Console()


async def _run_entries(
    config: EngineConfig, entries: list[DemoEntry]
) -> None:
    async with await MemoryEngine.open(config) as engine:
        for idx, entry in enumerate(entries, start=1):
            output = await engine.run(entry.invoice, entry.human)
            label = entry.invoice.id or entry.invoice.invoice_number
            console.rule(f"Run #{idx} — Invoice {label}")
            console.print_json(json.dumps(output.to_dict()))


def run_command(
    data: Path = typer.Argument(
        ..., help="JSON file with [{invoice, human?}] entries"
    ),
    db: str | None = typer.Option(
        None, "--db", help="Memory database path (overrides config)"
    ),
    reset: bool = typer.Option(
        False, "--reset", help="Delete the memory database before running"
    ),
) -> None:
    """Run every invoice in DATA through the memory pipeline."""
    config = load_engine_config(db)
    try:
        entries = load_entries(data)
    except InvmemError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    if reset:
        for suffix in ("", "-wal", "-shm"):
            Path(config.storage_path + suffix).unlink(missing_ok=True)

    console.print("[bold]Memory-driven demo starting...[/bold]\n")
    try:
        asyncio.run(_run_entries(config, entries))
    except InvmemError as exc:
        console.print(Panel(
            f"[red]{type(exc).__name__}: {exc}[/red]",
            title="Pipeline Error",
            border_style="red",
        ))
        raise typer.Exit(1) from exc
    console.print(
        f"\n[dim]Demo finished. Inspect {config.storage_path}"
        " for persisted learnings.[/dim]"
    )
