"""
Column schemas and result-table layout for BLAST tabular output.

BLAST+ writes whatever columns ``-outfmt "6 ..."`` asks for, so the column
set is declared per invocation with an :class:`OutputSchema` rather than
assumed globally. The same schema builds the ``-outfmt`` argument and
validates the rows that come back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

import polars as pl

from blastr.core.exceptions import MalformedBlastOutputError


class SearchStatus(str, Enum):
    """
    Outcome tag carried by every row of a result collection.

    Categories:
        HIT: A real alignment reported by the aligner
        NO_HIT: The search ran but nothing passed the cutoffs (placeholder row)
        FAILED: The search could not be completed (placeholder row with error)
    """

    HIT = "hit"
    NO_HIT = "no_hit"
    FAILED = "failed"


# BLAST+ format specifiers with non-string values. Anything else is read as text.
BLAST_COLUMN_TYPES: dict[str, type[pl.DataType]] = {
    "pident": pl.Float64,
    "evalue": pl.Float64,
    "bitscore": pl.Float64,
    "qcovs": pl.Float64,
    "qcovhsp": pl.Float64,
    "qcovus": pl.Float64,
    "ppos": pl.Float64,
    "length": pl.Int64,
    "mismatch": pl.Int64,
    "gapopen": pl.Int64,
    "gaps": pl.Int64,
    "nident": pl.Int64,
    "positive": pl.Int64,
    "qstart": pl.Int64,
    "qend": pl.Int64,
    "sstart": pl.Int64,
    "send": pl.Int64,
    "qlen": pl.Int64,
    "slen": pl.Int64,
    "score": pl.Int64,
    "qframe": pl.Int64,
    "sframe": pl.Int64,
    "staxid": pl.Int64,
}

STANDARD_COLUMNS: tuple[str, ...] = (
    "qseqid",
    "sseqid",
    "pident",
    "length",
    "mismatch",
    "gapopen",
    "qstart",
    "qend",
    "sstart",
    "send",
    "evalue",
    "bitscore",
)

DEFAULT_COLUMNS: tuple[str, ...] = (*STANDARD_COLUMNS, "qcovhsp", "qlen", "slen")

# Leading columns of every result collection, ahead of the aligner columns
COLLECTION_COLUMNS: dict[str, type[pl.DataType]] = {
    "query_index": pl.Int64,
    "query_sequence": pl.Utf8,
    "status": pl.Utf8,
    "error": pl.Utf8,
}


@dataclass(frozen=True)
class ColumnSpec:
    """One typed output column."""

    name: str
    dtype: type[pl.DataType] = pl.Utf8


@dataclass(frozen=True)
class OutputSchema:
    """Ordered, typed column list for one aligner invocation.

    Example:
        >>> schema = OutputSchema.from_names(["qseqid", "sseqid", "pident"])
        >>> schema.outfmt
        '6 qseqid sseqid pident'
    """

    columns: tuple[ColumnSpec, ...]

    def __post_init__(self) -> None:
        if not self.columns:
            msg = "OutputSchema requires at least one column"
            raise ValueError(msg)
        names = self.names
        if len(set(names)) != len(names):
            msg = f"Duplicate column names in schema: {names}"
            raise ValueError(msg)
        reserved = set(names) & set(COLLECTION_COLUMNS)
        if reserved:
            msg = f"Column names clash with result columns: {sorted(reserved)}"
            raise ValueError(msg)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> OutputSchema:
        """Build a schema from BLAST format specifiers, typing known names."""
        return cls(
            tuple(ColumnSpec(n, BLAST_COLUMN_TYPES.get(n, pl.Utf8)) for n in names)
        )

    @classmethod
    def for_variant(
        cls,
        blast_type: str = "blastn",
        columns: Sequence[str] | None = None,
    ) -> OutputSchema:
        """Schema used for an aligner variant unless columns are given.

        All BLAST+ search programs accept the default column set; the
        variant is kept in the signature so callers always declare both.
        """
        if columns:
            return cls.from_names(columns)
        return cls.from_names(DEFAULT_COLUMNS)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    @property
    def outfmt(self) -> str:
        """Value for the aligner's ``-outfmt`` option."""
        return "6 " + " ".join(self.names)

    @property
    def polars_schema(self) -> dict[str, type[pl.DataType]]:
        return {c.name: c.dtype for c in self.columns}

    @property
    def collection_schema(self) -> dict[str, type[pl.DataType]]:
        """Full schema of a result collection built on this column set."""
        return {**COLLECTION_COLUMNS, **self.polars_schema}

    def empty_frame(self) -> pl.DataFrame:
        return pl.DataFrame(schema=self.polars_schema)

    def empty_collection(self) -> pl.DataFrame:
        return pl.DataFrame(schema=self.collection_schema)

    def parse(self, text: str, *, query_index: int = 0) -> pl.DataFrame:
        """
        Parse tab-separated aligner output into a typed DataFrame.

        Blank lines and ``#`` comment lines are skipped. Row order is kept.

        Raises:
            MalformedBlastOutputError: If a row has the wrong number of fields
                or a value does not fit its column type.
        """
        names = self.names
        rows: list[list[str]] = []
        line_numbers: list[int] = []

        for line_num, line in enumerate(text.splitlines(), start=1):
            if not line.strip() or line.startswith("#"):
                continue
            fields = line.split("\t")
            if len(fields) != len(names):
                raise MalformedBlastOutputError(
                    query_index, len(names), len(fields), line_num
                )
            rows.append(fields)
            line_numbers.append(line_num)

        if not rows:
            return self.empty_frame()

        raw = pl.DataFrame(
            rows,
            schema={n: pl.Utf8 for n in names},
            orient="row",
        )
        try:
            return raw.cast(self.polars_schema, strict=True)
        except pl.exceptions.PolarsError as e:
            row_pos, column = self._locate_bad_value(raw)
            raise MalformedBlastOutputError(
                query_index,
                len(names),
                len(names),
                line_numbers[row_pos],
                detail=f"column '{column}' has a value that is not {self.polars_schema[column]}",
            ) from e

    def _locate_bad_value(self, raw: pl.DataFrame) -> tuple[int, str]:
        """Find the first (row, column) whose value fails its declared cast."""
        for column in self.columns:
            if column.dtype == pl.Utf8:
                continue
            original = raw[column.name]
            converted = original.cast(column.dtype, strict=False)
            bad = converted.is_null() & original.is_not_null()
            if bad.any():
                return int(bad.arg_true()[0]), column.name
        return 0, self.names[0]
