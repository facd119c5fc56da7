"""
Entrez commands: download reference records by accession.
"""

from __future__ import annotations

from pathlib import Path

import polars as pl
import typer
from rich.console import Console

from blastr.cli.utils import QuietConsole, exit_with_error, setup_logging, spinner_progress
from blastr.core.exceptions import BlastrError
from blastr.core.fetch import fetch_by_accession
from blastr.core.io_utils import write_dataframe

app = typer.Typer(
    name="entrez",
    help="Retrieve reference records from NCBI",
    no_args_is_help=True,
)

console = Console()


def _read_accession_file(path: Path) -> list[str]:
    """One accession per line; blank lines and '#' comments are skipped."""
    accessions = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            accessions.append(line.split()[0])
    return accessions


def _write_records(records: pl.DataFrame, output: Path) -> None:
    suffix = output.suffix.lower()
    if suffix in (".fasta", ".fa", ".fna"):
        lines = []
        for accession, description, sequence in records.iter_rows():
            header = f"{accession} {description}".strip()
            lines.append(f">{header}\n{sequence}\n")
        output.write_text("".join(lines))
    elif suffix == ".parquet":
        write_dataframe(records, output, "parquet")
    else:
        write_dataframe(records, output, "csv")


@app.command(name="fetch")
def fetch(
    accessions: list[str] | None = typer.Argument(
        None,
        help="Accessions to download (e.g. MN908947.3)",
    ),
    accession_file: Path | None = typer.Option(
        None,
        "--accession-file", "-a",
        help="File with one accession per line",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Output file (.fasta, .csv or .parquet)",
    ),
    db: str = typer.Option(
        "nucleotide",
        "--db",
        help="Entrez database",
    ),
    env_name: str = typer.Option(
        "entrez-env",
        "--env-name",
        help="Conda environment for entrez-direct",
    ),
    batch_size: int = typer.Option(
        200,
        "--batch-size",
        help="Accessions per efetch request",
        min=1,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Suppress progress output",
    ),
) -> None:
    """
    Download sequences for a list of accessions through efetch.

    Example:

        blastr entrez fetch MN908947.3 NC_045512.2 -o refs.fasta
        blastr entrez fetch -a accessions.txt -o refs.parquet
    """
    out = QuietConsole(console, quiet=quiet)
    setup_logging(console, verbose)

    requested = list(accessions or [])
    if accession_file is not None:
        requested.extend(_read_accession_file(accession_file))
    if not requested:
        console.print("[red]Error: no accessions given[/red]")
        raise typer.Exit(code=1)

    if not output.parent.exists():
        console.print(f"[red]Error: output directory does not exist: {output.parent}[/red]")
        raise typer.Exit(code=1)

    try:
        with spinner_progress(f"Fetching {len(requested)} accessions...", console, quiet):
            records = fetch_by_accession(
                requested,
                db=db,
                env_name=env_name,
                batch_size=batch_size,
            )
    except BlastrError as e:
        exit_with_error(console, e)

    _write_records(records, output)
    out.print(f"[green]Wrote {records.height} records to {output}[/green]")
