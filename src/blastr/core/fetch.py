"""
Reference record retrieval by accession through efetch.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import polars as pl

from blastr.core.environment import ensure_tool
from blastr.core.io_utils import parse_fasta
from blastr.external.conda import CondaManager
from blastr.external.entrez import EFetch
from blastr.models.config import Verbosity

logger = logging.getLogger(__name__)

# Seconds between efetch calls, keeping under NCBI's anonymous request rate
DEFAULT_BATCH_DELAY = 0.4

RECORD_SCHEMA: dict[str, type[pl.DataType]] = {
    "accession": pl.Utf8,
    "description": pl.Utf8,
    "sequence": pl.Utf8,
}


def _split_header(header: str) -> tuple[str, str]:
    accession, _, description = header.partition(" ")
    return accession, description.strip()


def fetch_by_accession(
    accessions: Sequence[str],
    *,
    db: str = "nucleotide",
    env_name: str = "entrez-env",
    batch_size: int = 200,
    verbose: Verbosity | bool = "silent",
    timeout: float | None = 600.0,
    batch_delay: float = DEFAULT_BATCH_DELAY,
    manager: CondaManager | None = None,
) -> pl.DataFrame:
    """
    Download FASTA records for a list of accessions.

    Accessions are de-duplicated (first occurrence wins) and requested in
    batches of ``batch_size``.

    Returns:
        DataFrame with columns accession, description, sequence, in the
        order efetch returned them.

    Raises:
        ValueError: If batch_size < 1.
        ToolExecutionError: If an efetch call fails.
    """
    if batch_size < 1:
        msg = f"batch_size must be >= 1, got {batch_size}"
        raise ValueError(msg)

    unique = list(dict.fromkeys(a.strip() for a in accessions if a.strip()))
    if not unique:
        return pl.DataFrame(schema=RECORD_SCHEMA)

    manager = manager or CondaManager()
    ensure_tool("efetch", env_name, verbose, manager=manager)
    efetch = EFetch(command_prefix=manager.run_prefix(env_name))

    rows: list[tuple[str, str, str]] = []
    batches = [unique[i:i + batch_size] for i in range(0, len(unique), batch_size)]
    for batch_num, batch in enumerate(batches, start=1):
        if batch_num > 1 and batch_delay > 0:
            time.sleep(batch_delay)
        logger.info("Fetching batch %d/%d (%d accessions)", batch_num, len(batches), len(batch))
        text = efetch.fetch(batch, db=db, timeout=timeout)
        for header, sequence in parse_fasta(text):
            accession, description = _split_header(header)
            rows.append((accession, description, sequence))

    if not rows:
        return pl.DataFrame(schema=RECORD_SCHEMA)
    return pl.DataFrame(rows, schema=RECORD_SCHEMA, orient="row")
