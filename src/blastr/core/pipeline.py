"""
Batch entry point: search a set of ASVs and optionally save the results.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from pathlib import Path

import polars as pl

from blastr.core.dispatch import ResultCallback, run_batch
from blastr.core.io_utils import persist
from blastr.external.conda import CondaManager
from blastr.models.config import BatchConfig, BlastType, SearchParams

logger = logging.getLogger(__name__)


def parallel_blast(
    asvs: Sequence[str],
    db_path: str | Path,
    out_file: str | Path | None = None,
    out_snapshot: str | Path | None = None,
    num_threads: int = 1,
    blast_type: BlastType = "blastn",
    total_cores: int = 1,
    perc_id: float = 80,
    perc_qcov_hsp: float = 80,
    num_alignments: int = 4,
    verbose: bool = False,
    env_name: str = "blast-env",
    columns: Sequence[str] | None = None,
    timeout: float | None = None,
    *,
    manager: CondaManager | None = None,
    on_result: ResultCallback | None = None,
) -> pl.DataFrame:
    """
    Run one BLAST search per ASV, in parallel when ``total_cores > 1``.

    Args:
        asvs: Query sequences.
        db_path: Prefix of a formatted BLAST database.
        out_file: CSV output path (in an existing directory), or None.
        out_snapshot: Parquet snapshot path (in an existing directory), or None.
        num_threads: Threads per search in sequential mode.
        blast_type: BLAST+ search program.
        total_cores: Maximum number of concurrent searches.
        perc_id: Minimum percent identity.
        perc_qcov_hsp: Minimum percent query coverage per HSP.
        num_alignments: Maximum aligned sequences per query.
        verbose: Log aligner and provisioning commands.
        env_name: Conda environment for the aligner.
        columns: Output columns (default: standard 12 + qcovhsp qlen slen).
        timeout: Per-search timeout in seconds.

    Returns:
        Result collection: at least one row per ASV. With ``total_cores > 1``
        query groups are in completion order.

    Example:
        >>> results = parallel_blast(
        ...     asvs=["ACGT...", "TTGA..."],
        ...     db_path="/data/databases/nt/nt",
        ...     out_file="blast.csv",
        ...     perc_id=80,
        ...     perc_qcov_hsp=80,
        ...     total_cores=8,
        ...     num_alignments=3,
        ... )
    """
    if not asvs:
        msg = "asvs must contain at least one sequence"
        raise ValueError(msg)

    params = SearchParams(
        db_path=str(db_path),
        perc_id=perc_id,
        perc_qcov_hsp=perc_qcov_hsp,
        num_alignments=num_alignments,
        num_threads=num_threads,
        blast_type=blast_type,
        verbose=verbose,
        env_name=env_name,
        columns=tuple(columns) if columns else None,
        timeout=timeout,
    )
    return run_config(
        BatchConfig(search=params, total_cores=total_cores),
        asvs,
        out_file=out_file,
        out_snapshot=out_snapshot,
        manager=manager,
        on_result=on_result,
    )


def run_config(
    config: BatchConfig,
    asvs: Sequence[str],
    *,
    out_file: str | Path | None = None,
    out_snapshot: str | Path | None = None,
    manager: CondaManager | None = None,
    on_result: ResultCallback | None = None,
) -> pl.DataFrame:
    """Run a batch described by a BatchConfig.

    Output paths given here take precedence over those in the config.
    """
    start = time.perf_counter()
    collection = run_batch(
        asvs,
        config.search,
        worker_budget=config.total_cores,
        manager=manager,
        on_result=on_result,
    )
    persist(
        collection,
        csv_path=out_file if out_file is not None else config.out_file,
        snapshot_path=out_snapshot if out_snapshot is not None else config.out_snapshot,
    )
    logger.info("BLAST finished in %.1f min", (time.perf_counter() - start) / 60)
    return collection
