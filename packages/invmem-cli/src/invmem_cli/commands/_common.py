from __future__ import annotations

from dataclasses import replace

import typer
from invmem_core.config import EngineConfig, InvmemConfig
from invmem_core.errors import ConfigError
from invmem_core.logging import setup_logging
from rich.console import Console

console = Console()


def load_engine_config(db: str | None = None) -> EngineConfig:
    """Load layered config, set up logging, and apply a ``--db`` override.

    A broken config file is reported and ends the command with exit code 1.
    """
    try:
        config = InvmemConfig.load()
    except ConfigError as exc:
        console.print(f"[red]ConfigError: {exc}[/red]")
        raise typer.Exit(1) from exc
    setup_logging(config.logging.level, config.logging.json_output)
    if db:
        return replace(config.engine, storage_path=db)
    return config.engine
