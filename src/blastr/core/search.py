"""
Single-query BLAST runner.

Runs the aligner once for one query sequence and returns its hits as a
tagged polars DataFrame. A query always yields at least one row: real hits
are tagged ``hit``, an empty search gives one ``no_hit`` placeholder, and
(through search_or_placeholder) a failed search gives one ``failed``
placeholder carrying the error message.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import polars as pl

from blastr.core.exceptions import SearchError, SearchFailedError
from blastr.external.base import ToolTimeoutError
from blastr.external.blast import BlastSearch, blast_program
from blastr.external.conda import CondaManager
from blastr.models.blast import OutputSchema, SearchStatus
from blastr.models.config import SearchParams

logger = logging.getLogger(__name__)


def query_id(query_index: int) -> str:
    """FASTA header used for a query at ``query_index``."""
    return f"query_{query_index}"


def write_query_fasta(
    sequence: str,
    query_index: int,
    directory: Path | None = None,
) -> Path:
    """Write a single-record FASTA file for the aligner and return its path."""
    fd, path_str = tempfile.mkstemp(
        suffix=".fasta",
        prefix=f"blastr_{query_id(query_index)}_",
        dir=directory,
    )
    with os.fdopen(fd, "w") as fh:
        fh.write(f">{query_id(query_index)}\n{sequence.strip()}\n")
    return Path(path_str)


def placeholder_frame(
    sequence: str,
    schema: OutputSchema,
    query_index: int,
    status: SearchStatus,
    error: str | None = None,
) -> pl.DataFrame:
    """One-row frame with null hit fields for a query without hits."""
    data: dict[str, list[object]] = {
        "query_index": [query_index],
        "query_sequence": [sequence],
        "status": [status.value],
        "error": [error],
    }
    for name in schema.names:
        data[name] = [query_id(query_index) if name == "qseqid" else None]
    return pl.DataFrame(data, schema=schema.collection_schema)


def _tag_hits(
    hits: pl.DataFrame,
    sequence: str,
    schema: OutputSchema,
    query_index: int,
) -> pl.DataFrame:
    tagged = hits.with_columns(
        pl.lit(query_index, dtype=pl.Int64).alias("query_index"),
        pl.lit(sequence, dtype=pl.Utf8).alias("query_sequence"),
        pl.lit(SearchStatus.HIT.value, dtype=pl.Utf8).alias("status"),
        pl.lit(None, dtype=pl.Utf8).alias("error"),
    )
    return tagged.select(list(schema.collection_schema))


def make_aligner(
    params: SearchParams,
    command_prefix: Sequence[str] | None = None,
) -> BlastSearch:
    """Aligner wrapper that runs inside the configured conda environment."""
    if command_prefix is None:
        command_prefix = CondaManager().run_prefix(params.env_name)
    return blast_program(params.blast_type)(command_prefix=command_prefix)


def run_search(
    sequence: str,
    params: SearchParams,
    *,
    query_index: int = 0,
    command_prefix: Sequence[str] | None = None,
) -> pl.DataFrame:
    """
    Search one query sequence against ``params.db_path``.

    Args:
        sequence: Query residues.
        params: Search parameters.
        query_index: Position of the query in its batch, attached to every row.
        command_prefix: Environment prefix for the aligner
            (default: ``conda run -n <params.env_name>``).

    Returns:
        DataFrame on the collection schema. Zero hits give one ``no_hit`` row.

    Raises:
        SearchFailedError: Aligner exited non-zero or timed out.
        MalformedBlastOutputError: Output does not match the declared schema.
        ToolNotFoundError: No package manager to run the aligner with.
    """
    schema = params.output_schema
    aligner = make_aligner(params, command_prefix)
    query_path = write_query_fasta(sequence, query_index)

    try:
        result = aligner.search(
            query_path,
            params.db_path,
            schema.outfmt,
            timeout=params.timeout,
            threads=params.num_threads,
            perc_identity=params.perc_id if params.supports_perc_identity else None,
            qcov_hsp_perc=params.perc_qcov_hsp,
            max_target_seqs=params.num_alignments,
        )
    except ToolTimeoutError as e:
        raise SearchFailedError(
            query_index, f"timed out after {e.timeout_seconds:.0f} seconds"
        ) from e
    finally:
        query_path.unlink(missing_ok=True)

    if params.verbose:
        logger.info("%s (%.2fs)", result.command_string, result.elapsed_seconds)

    if not result.success:
        stderr = result.stderr.strip().splitlines()
        reason = f"exit code {result.return_code}"
        if stderr:
            reason = f"{reason}: {stderr[-1]}"
        raise SearchFailedError(query_index, reason)

    hits = schema.parse(result.stdout, query_index=query_index)

    if not params.supports_perc_identity and "pident" in hits.columns:
        hits = hits.filter(pl.col("pident") >= params.perc_id)

    if hits.is_empty():
        return placeholder_frame(sequence, schema, query_index, SearchStatus.NO_HIT)

    return _tag_hits(hits, sequence, schema, query_index)


def search_or_placeholder(
    sequence: str,
    params: SearchParams,
    *,
    query_index: int = 0,
    command_prefix: Sequence[str] | None = None,
) -> pl.DataFrame:
    """Like run_search(), but a per-query failure becomes one ``failed`` row."""
    try:
        return run_search(
            sequence,
            params,
            query_index=query_index,
            command_prefix=command_prefix,
        )
    except SearchError as e:
        logger.warning("%s", e.message)
        return placeholder_frame(
            sequence,
            params.output_schema,
            query_index,
            SearchStatus.FAILED,
            error=e.message,
        )
