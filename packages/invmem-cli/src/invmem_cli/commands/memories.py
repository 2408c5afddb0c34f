"""Memory inspection commands: memories, audit, decay."""
from __future__ import annotations

import asyncio

import typer
from invmem_core.errors import InvmemError
from invmem_core.types import AuditEntry, MemoryKind, MemoryRecord
from invmem_store import MemoryStore
from rich.console import Console
from rich.table import Table

from invmem_cli.commands._common import load_engine_config

console = Console()

_DB_HELP = "Memory database path (overrides config)"


async def _fetch_memories(
    path: str,
    kind: MemoryKind | None,
    vendor: str | None,
    min_confidence: float,
) -> list[MemoryRecord]:
    async with await MemoryStore.open(path) as store:
        if vendor is None:
            records = await store.list_memories(kind)
            return [r for r in records if r.confidence >= min_confidence]
        return await store.query_memories(kind, vendor, min_confidence)


async def _fetch_audit(path: str, limit: int) -> list[AuditEntry]:
    async with await MemoryStore.open(path) as store:
        return await store.list_audit(limit)


async def _decay(path: str) -> int:
    async with await MemoryStore.open(path) as store:
        return await store.decay_memories()


def _fail(exc: InvmemError) -> typer.Exit:
    console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
    return typer.Exit(1)


def memories_command(
    kind: str | None = typer.Option(
        None, "--kind", "-k", help="vendor | correction | resolution"
    ),
    vendor: str | None = typer.Option(
        None, "--vendor", "-v", help="Show memories visible to this vendor"
    ),
    min_confidence: float = typer.Option(
        0.0, "--min-confidence", help="Confidence floor"
    ),
    db: str | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """List learned memories, strongest first."""
    try:
        memory_kind = MemoryKind(kind) if kind else None
    except ValueError as exc:
        console.print(f"[red]Unknown memory kind:[/red] {kind!r}")
        raise typer.Exit(1) from exc

    config = load_engine_config(db)
    try:
        records = asyncio.run(_fetch_memories(
            config.storage_path, memory_kind, vendor, min_confidence
        ))
    except InvmemError as exc:
        raise _fail(exc) from exc

    if not records:
        console.print("[yellow]No memories found.[/yellow]")
        raise typer.Exit(0)

    table = Table(
        title="Memories",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Kind", style="bold")
    table.add_column("Vendor")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Confidence", justify="right")
    table.add_column("Hits", justify="right")

    for record in records:
        table.add_row(
            record.kind.value,
            record.vendor or "-",
            record.key,
            record.value,
            f"{record.confidence:.2f}",
            str(record.hits),
        )

    console.print(table)
    console.print(f"\n[dim]{len(records)} memory(ies) found.[/dim]")


def audit_command(
    limit: int = typer.Option(50, "--limit", "-n", help="Entries to show"),
    db: str | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """Show the most recent audit trail entries."""
    config = load_engine_config(db)
    try:
        entries = asyncio.run(_fetch_audit(config.storage_path, limit))
    except InvmemError as exc:
        raise _fail(exc) from exc

    if not entries:
        console.print("[yellow]Audit trail is empty.[/yellow]")
        raise typer.Exit(0)

    table = Table(
        title="Audit Trail",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Timestamp", style="dim")
    table.add_column("Step", style="bold")
    table.add_column("Details")
    for entry in entries:
        table.add_row(entry.timestamp, entry.step.value, entry.details)
    console.print(table)


def decay_command(
    db: str | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """Apply time decay to every stored memory."""
    config = load_engine_config(db)
    try:
        changed = asyncio.run(_decay(config.storage_path))
    except InvmemError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Decayed {changed} memory(ies).[/green]")
