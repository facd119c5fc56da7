"""
I/O utilities for query input and result persistence.

Reads query sequences from FASTA or plain text and writes result
collections as CSV and/or a Parquet snapshot.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import polars as pl

logger = logging.getLogger(__name__)

OutputFormat = Literal["csv", "parquet"]


def write_dataframe(
    df: pl.DataFrame,
    path: Path,
    output_format: OutputFormat = "csv",
) -> None:
    """
    Write DataFrame to file in specified format.

    Parquet output uses zstd compression.

    Args:
        df: Polars DataFrame to write.
        path: Output file path.
        output_format: Output format - 'csv' or 'parquet'.
    """
    if output_format == "parquet":
        df.write_parquet(path, compression="zstd")
    else:
        df.write_csv(path)


def read_dataframe(path: Path) -> pl.DataFrame:
    """
    Read DataFrame from file, auto-detecting format from extension.

    Supports: .csv, .tsv, .parquet, .csv.gz, .tsv.gz

    Raises:
        ValueError: If file extension is not recognized.
    """
    suffix = path.suffix.lower()
    name = path.name.lower()

    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix == ".csv" or name.endswith(".csv.gz"):
        return pl.read_csv(path)
    if suffix == ".tsv" or name.endswith(".tsv.gz"):
        return pl.read_csv(path, separator="\t")
    msg = f"Unrecognized file format: {path}"
    raise ValueError(msg)


def _requested(path: str | Path | None) -> bool:
    return path is not None and str(path).strip() != ""


def persist(
    collection: pl.DataFrame,
    csv_path: str | Path | None = None,
    snapshot_path: str | Path | None = None,
) -> list[Path]:
    """
    Write a result collection to CSV and/or a Parquet snapshot.

    Each output is written only when its path is given and non-empty. Write
    errors (missing directory, permissions) propagate to the caller.

    Returns:
        Paths that were written.
    """
    written: list[Path] = []

    if _requested(csv_path):
        path = Path(csv_path)
        write_dataframe(collection, path, "csv")
        logger.info("Wrote %d rows to %s", collection.height, path)
        written.append(path)

    if _requested(snapshot_path):
        path = Path(snapshot_path)
        write_dataframe(collection, path, "parquet")
        logger.info("Wrote snapshot to %s", path)
        written.append(path)

    return written


def parse_fasta(text: str) -> list[tuple[str, str]]:
    """Parse FASTA text into (header, sequence) pairs, in file order."""
    records: list[tuple[str, str]] = []
    header: str | None = None
    chunks: list[str] = []

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith(">"):
            if header is not None:
                records.append((header, "".join(chunks)))
            header = line[1:].strip()
            chunks = []
        elif header is not None:
            chunks.append(line)

    if header is not None:
        records.append((header, "".join(chunks)))
    return records


def read_sequences(path: Path) -> list[str]:
    """
    Read query sequences from FASTA or plain text.

    FASTA input gives one sequence per record (headers are dropped; query
    identity is the record position). Any other file is read as one
    sequence per non-blank line.
    """
    text = path.read_text()
    if text.lstrip().startswith(">"):
        return [seq for _, seq in parse_fasta(text)]
    return [line.strip() for line in text.splitlines() if line.strip()]
