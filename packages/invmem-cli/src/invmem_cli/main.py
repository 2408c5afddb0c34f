from __future__ import annotations

import typer

from invmem_cli.commands.memories import (
    audit_command,
    decay_command,
    memories_command,
)
from invmem_cli.commands.run import run_command

app = typer.Typer(
    name="invmem",
    help="invmem — learn from invoice corrections",
    no_args_is_help=True,
)

app.command("run")(run_command)
app.command("memories")(memories_command)
app.command("audit")(audit_command)
app.command("decay")(decay_command)


@app.command()
def version() -> None:
    """Show the invmem version."""
    from invmem_core import __version__
    from rich.console import Console
    Console().print(f"invmem {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
