"""
BLAST command: search every query sequence in a file against a database.
"""

from __future__ import annotations

from pathlib import Path

import polars as pl
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from blastr.cli.utils import (
    QuietConsole,
    bar_progress,
    exit_with_error,
    setup_logging,
)
from blastr.core.exceptions import BlastrError
from blastr.core.io_utils import read_sequences
from blastr.core.pipeline import run_config
from blastr.core.search import make_aligner, query_id
from blastr.external.conda import CondaManager
from blastr.models.blast import SearchStatus
from blastr.models.config import BatchConfig, SearchParams

app = typer.Typer(
    name="blast",
    help="Parallel BLAST searches for ASVs",
    no_args_is_help=True,
)

console = Console()


def _load_config(
    config: Path | None,
    database: str | None,
    overrides: dict[str, object],
) -> BatchConfig:
    """Build the batch configuration from a YAML file and/or CLI options.

    With --config, the file supplies every search setting and only
    --database, --output and --snapshot from the command line override it.
    """
    if config is not None:
        loaded = BatchConfig.from_yaml(config)
        if database:
            loaded = loaded.model_copy(
                update={"search": loaded.search.model_copy(update={"db_path": database})}
            )
        return loaded

    if not database:
        console.print("[red]Error: --database is required unless --config is given[/red]")
        raise typer.Exit(code=1)

    total_cores = overrides.pop("total_cores")
    return BatchConfig(
        search=SearchParams(db_path=database, **overrides),
        total_cores=total_cores,
    )


def _summary_table(collection: pl.DataFrame) -> Table:
    per_query = collection.group_by("query_index").agg(pl.col("status").first())
    table = Table(title="Search summary")
    table.add_column("Status")
    table.add_column("Queries", justify="right")
    for status in SearchStatus:
        n = per_query.filter(pl.col("status") == status.value).height
        table.add_row(status.value, str(n))
    return table


@app.command(name="search")
def search(
    query: Path = typer.Option(
        ...,
        "--query", "-i",
        help="Query sequences: FASTA, or one sequence per line",
        exists=True,
        dir_okay=False,
    ),
    database: str | None = typer.Option(
        None,
        "--database", "-d",
        help="BLAST database prefix (e.g. /data/databases/nt/nt)",
    ),
    output: Path | None = typer.Option(
        None,
        "--output", "-o",
        help="CSV file for the results (directory must exist)",
    ),
    snapshot: Path | None = typer.Option(
        None,
        "--snapshot",
        help="Parquet snapshot of the results (directory must exist)",
    ),
    config: Path | None = typer.Option(
        None,
        "--config", "-c",
        help="YAML file with search and batch settings",
        exists=True,
        dir_okay=False,
    ),
    blast_type: str = typer.Option(
        "blastn",
        "--blast-type", "-b",
        help="BLAST+ program (blastn, blastp, blastx, tblastn, tblastx)",
    ),
    perc_id: float = typer.Option(
        80.0,
        "--perc-id",
        help="Minimum percent identity",
        min=0.0,
        max=100.0,
    ),
    perc_qcov_hsp: float = typer.Option(
        80.0,
        "--perc-qcov-hsp",
        help="Minimum percent query coverage per HSP",
        min=0.0,
        max=100.0,
    ),
    num_alignments: int = typer.Option(
        4,
        "--num-alignments", "-n",
        help="Maximum aligned sequences per query",
        min=1,
    ),
    num_threads: int = typer.Option(
        1,
        "--threads", "-t",
        help="Threads per search (sequential mode only)",
        min=1,
    ),
    total_cores: int = typer.Option(
        1,
        "--total-cores", "-j",
        help="Concurrent searches; each runs single-threaded when > 1",
        min=1,
    ),
    env_name: str = typer.Option(
        "blast-env",
        "--env-name",
        help="Conda environment for BLAST+",
    ),
    columns: str | None = typer.Option(
        None,
        "--columns",
        help="Comma-separated -outfmt 6 columns (default: standard 12 + qcovhsp,qlen,slen)",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Per-search timeout in seconds",
        min=1.0,
    ),
    sort: bool = typer.Option(
        True,
        "--sort/--no-sort",
        help="Sort results by input order",
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
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the aligner command for the first query without running",
    ),
) -> None:
    """
    Run one BLAST search per query sequence and collect the hits.

    Every query yields at least one row. Queries without hits get a
    'no_hit' row and failed searches a 'failed' row with the error.

    Example:

        blastr blast search \\
            --query asvs.fasta \\
            --database /data/databases/nt/nt \\
            --output blast.csv \\
            --total-cores 8 \\
            --num-alignments 3
    """
    out = QuietConsole(console, quiet=quiet)
    setup_logging(console, verbose)

    out.print("\n[bold blue]blastr BLAST search[/bold blue]\n")

    try:
        batch = _load_config(
            config,
            database,
            {
                "blast_type": blast_type,
                "perc_id": perc_id,
                "perc_qcov_hsp": perc_qcov_hsp,
                "num_alignments": num_alignments,
                "num_threads": num_threads,
                "env_name": env_name,
                "verbose": verbose,
                "columns": tuple(c.strip() for c in columns.split(",") if c.strip())
                if columns else None,
                "timeout": timeout,
                "total_cores": total_cores,
            },
        )
    except BlastrError as e:
        exit_with_error(console, e)
    except ValueError as e:
        console.print(f"[red]Error: invalid configuration[/red]\n{escape(str(e))}")
        raise typer.Exit(code=1) from None

    params = batch.search
    sequences = read_sequences(query)
    if not sequences:
        console.print(f"[red]Error: no sequences found in {query}[/red]")
        raise typer.Exit(code=1)

    out.print("[bold]Input:[/bold]")
    out.print(f"  Query:     {query} ({len(sequences)} sequences)")
    out.print(f"  Database:  {params.db_path}")
    out.print("\n[bold]Parameters:[/bold]")
    out.print(f"  Program:        {params.blast_type}")
    out.print(f"  Identity:       {params.perc_id}%")
    out.print(f"  Query coverage: {params.perc_qcov_hsp}%")
    out.print(f"  Alignments:     {params.num_alignments}")
    out.print(f"  Workers:        {batch.total_cores}")

    if dry_run:
        try:
            manager = CondaManager()
            aligner = make_aligner(params, manager.run_prefix(params.env_name))
            command = aligner.build_command(
                query=Path(f"{query_id(0)}.fasta"),
                database=params.db_path,
                outfmt=params.output_schema.outfmt,
                threads=params.num_threads if batch.total_cores <= 1 else 1,
                perc_identity=params.perc_id if params.supports_perc_identity else None,
                qcov_hsp_perc=params.perc_qcov_hsp,
                max_target_seqs=params.num_alignments,
            )
        except BlastrError as e:
            exit_with_error(console, e)
        console.print(f"\n[dim]Command: {escape(' '.join(command))}[/dim]", soft_wrap=True)
        console.print("\n[green]Dry run complete. No searches were run.[/green]")
        raise typer.Exit(code=0)

    out.print()
    with bar_progress("Searching", len(sequences), console, quiet) as (progress, task_id):
        try:
            collection = run_config(
                batch,
                sequences,
                out_file=output,
                out_snapshot=snapshot,
                on_result=lambda _index, _frame: progress.advance(task_id),
            )
        except BlastrError as e:
            progress.stop()
            exit_with_error(console, e)
        except OSError as e:
            progress.stop()
            console.print(f"[red]Error: could not write results: {e}[/red]")
            raise typer.Exit(code=1) from None

    if sort:
        collection = collection.sort("query_index", maintain_order=True)

    out.print()
    out.print(_summary_table(collection))

    if output:
        out.print(f"\n[green]Results written to {output}[/green]")
    if snapshot:
        out.print(f"[green]Snapshot written to {snapshot}[/green]")
    if not output and not snapshot:
        console.print(collection)
