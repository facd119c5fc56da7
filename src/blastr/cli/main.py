"""
Main CLI entry point for blastr.

Provides subcommands:
- blast: Run one BLAST search per ASV and collect the hits
- deps: Provision and check the conda environments for external tools
- entrez: Download reference records by accession
"""

from __future__ import annotations

import typer
from rich import print as rprint
from rich.console import Console

from blastr import __version__

app = typer.Typer(
    name="blastr",
    help="Parallel BLAST searches for amplicon sequence variants",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"blastr version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    blastr: parallel BLAST searches for amplicon sequence variants.

    Runs BLAST+ from a managed conda environment, one search per query
    sequence, and gathers every hit into a single table.
    """


from blastr.cli import blast, deps, entrez

app.add_typer(blast.app, name="blast")
app.add_typer(deps.app, name="deps")
app.add_typer(entrez.app, name="entrez")


if __name__ == "__main__":
    app()
