"""
Pydantic configuration models for blastr.

SearchParams is the immutable parameter bundle carried unchanged through
every aligner invocation of a batch. BatchConfig adds the batch-level
settings (worker budget, output paths). Both can be loaded from YAML.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, Field, ValidationError, field_validator

from blastr.core.exceptions import ConfigurationError
from blastr.models.blast import OutputSchema

logger = logging.getLogger(__name__)

BlastType = Literal["blastn", "blastp", "blastx", "tblastn", "tblastx"]

# Output level handed to the package manager while provisioning
Verbosity = Literal["silent", "output", "full"]

# Only blastn accepts -perc_identity; other programs are filtered after parsing
PERC_IDENTITY_VARIANTS: frozenset[str] = frozenset({"blastn"})


class SearchParams(BaseModel):
    """
    Parameters shared by every BLAST search in a batch.

    Attributes:
        db_path: BLAST database prefix (as given to makeblastdb -out)
        perc_id: Minimum percent identity (0-100)
        perc_qcov_hsp: Minimum percent query coverage per HSP (0-100)
        num_alignments: Maximum number of target sequences reported per query
        num_threads: Threads given to each aligner process
        blast_type: BLAST+ search program
        verbose: Log each aligner command
        env_name: Conda environment the aligner runs in
        columns: Explicit output columns (default: standard 12 + qcovhsp qlen slen)
        timeout: Seconds before a single search is killed (None for no limit)
    """

    db_path: str = Field(min_length=1, description="BLAST database prefix")
    perc_id: float = Field(default=80.0, ge=0, le=100, description="Minimum percent identity")
    perc_qcov_hsp: float = Field(
        default=80.0,
        ge=0,
        le=100,
        description="Minimum percent query coverage per HSP",
    )
    num_alignments: int = Field(
        default=4,
        ge=1,
        description="Maximum aligned sequences kept per query",
    )
    num_threads: int = Field(default=1, ge=1, description="Threads per aligner process")
    blast_type: BlastType = Field(default="blastn", description="BLAST+ search program")
    verbose: bool = Field(default=False, description="Log aligner commands")
    env_name: str = Field(
        default="blast-env",
        min_length=1,
        description="Conda environment holding the aligner",
    )
    columns: tuple[str, ...] | None = Field(
        default=None,
        description="Explicit -outfmt 6 column specifiers",
    )
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Per-search timeout in seconds",
    )

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: tuple[str, ...] | None) -> tuple[str, ...] | None:
        """Column specifiers must be non-empty single tokens."""
        if v is None:
            return v
        if not v:
            msg = "columns must contain at least one column name"
            raise ValueError(msg)
        for name in v:
            if not name or any(ch.isspace() for ch in name):
                msg = f"Invalid column specifier: {name!r}"
                raise ValueError(msg)
        return v

    @property
    def output_schema(self) -> OutputSchema:
        """Output schema declared for this parameter set."""
        return OutputSchema.for_variant(self.blast_type, self.columns)

    @property
    def supports_perc_identity(self) -> bool:
        return self.blast_type in PERC_IDENTITY_VARIANTS

    model_config = {"frozen": True}


class BatchConfig(BaseModel):
    """
    Configuration for a full batch run.

    Example YAML::

        db_path: /data/databases/nt/nt
        perc_id: 90
        num_alignments: 3
        total_cores: 8
        out_file: results/blast.csv
    """

    search: SearchParams
    total_cores: int = Field(
        default=1,
        ge=1,
        description="Worker budget: concurrent aligner processes",
    )
    out_file: Path | None = Field(default=None, description="CSV output path")
    out_snapshot: Path | None = Field(default=None, description="Parquet snapshot path")

    @classmethod
    def from_yaml(cls, path: Path) -> BatchConfig:
        """
        Load a batch configuration from a flat YAML mapping.

        Search parameters and batch settings share one level. Unknown keys
        are ignored with a warning.

        Raises:
            FileNotFoundError: If the YAML file does not exist.
            ConfigurationError: If the YAML is not a mapping or holds invalid values.
        """
        import yaml

        try:
            raw = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"YAML config must be a mapping, got {type(raw).__name__}",
                suggestion="Write settings as top-level keys, e.g. 'db_path: /data/nt/nt'.",
            )
        try:
            return cls.from_mapping(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}:\n{e}") from e

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> Self:
        search_keys = set(SearchParams.model_fields)
        batch_keys = set(cls.model_fields) - {"search"}

        unknown = set(raw) - search_keys - batch_keys
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

        search = {k: v for k, v in raw.items() if k in search_keys}
        batch = {k: v for k, v in raw.items() if k in batch_keys}
        return cls(search=SearchParams(**search), **batch)

    def to_yaml_str(self) -> str:
        """Serialize to the flat YAML layout read by from_yaml()."""
        import yaml

        data: dict[str, Any] = self.search.model_dump(mode="json", exclude_none=True)
        data["total_cores"] = self.total_cores
        if self.out_file is not None:
            data["out_file"] = str(self.out_file)
        if self.out_snapshot is not None:
            data["out_snapshot"] = str(self.out_snapshot)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    def to_yaml(self, path: Path) -> None:
        path.write_text(self.to_yaml_str())

    model_config = {"frozen": True}
