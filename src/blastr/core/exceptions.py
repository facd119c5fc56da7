"""
Custom exceptions with actionable guidance.

Errors fall into two groups. Setup errors (unsupported tool, failed
environment provisioning, missing database) abort a batch before any
search starts. Search errors describe a single query and are turned into
``failed`` rows by the dispatcher instead of aborting the batch.
"""

from __future__ import annotations


class BlastrError(Exception):
    """Base exception for blastr errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class SetupError(BlastrError):
    """Base class for errors that abort a batch before dispatch."""


class UnsupportedToolError(SetupError):
    """Raised when a tool name has no known package coordinate."""

    def __init__(self, tool_name: str, supported: tuple[str, ...]):
        super().__init__(
            message=(
                f"Unsupported command: '{tool_name}'. "
                f"Only {', '.join(repr(s) for s in supported)} variants are supported."
            ),
            suggestion=(
                "Use a BLAST+ executable name (blastn, blastp, blastx, tblastn, "
                "tblastx) or 'efetch'."
            ),
        )
        self.tool_name = tool_name


class EnvironmentProvisionError(SetupError):
    """Raised when a conda environment cannot be created or replaced."""

    def __init__(self, env_name: str, packages: tuple[str, ...], detail: str = ""):
        pkg_str = ", ".join(packages) if packages else "(no packages)"
        detail_str = f"\n\n{detail.strip()[:500]}" if detail.strip() else ""
        super().__init__(
            message=(
                f"Failed to provision conda environment '{env_name}' "
                f"with {pkg_str}{detail_str}"
            ),
            suggestion=(
                "Check that conda, mamba or micromamba is installed and can reach "
                "the bioconda and conda-forge channels. Retry with force=True to "
                "rebuild a broken environment."
            ),
        )
        self.env_name = env_name
        self.packages = packages


class DatabaseNotFoundError(SetupError):
    """Raised when the BLAST database prefix does not resolve to any files."""

    def __init__(self, db_path: str):
        super().__init__(
            message=f"BLAST database not found or unreadable: {db_path}",
            suggestion=(
                "Pass the database prefix used with makeblastdb (for example "
                "'/data/nt/nt', not '/data/nt/nt.nal') and check read permissions."
            ),
        )
        self.db_path = db_path


class ConfigurationError(BlastrError):
    """Raised when configuration is invalid."""


class SearchError(BlastrError):
    """Base class for failures scoped to a single query."""

    def __init__(self, message: str, suggestion: str | None = None, *, query_index: int = -1):
        super().__init__(message, suggestion)
        self.query_index = query_index


class SearchFailedError(SearchError):
    """Raised when the aligner process fails for one query."""

    def __init__(self, query_index: int, reason: str):
        super().__init__(
            message=f"BLAST search failed for query {query_index}: {reason}",
            suggestion=(
                "Inspect the query sequence and aligner parameters. "
                "Other queries in the batch are unaffected."
            ),
            query_index=query_index,
        )
        self.reason = reason


class MalformedBlastOutputError(SearchError):
    """Raised when aligner output does not match the declared column schema."""

    def __init__(
        self,
        query_index: int,
        expected_cols: int,
        actual_cols: int,
        line_num: int,
        detail: str = "",
    ):
        detail_str = f" ({detail})" if detail else ""
        super().__init__(
            message=(
                f"Malformed BLAST output for query {query_index} at line {line_num}: "
                f"expected {expected_cols} columns, got {actual_cols}{detail_str}"
            ),
            suggestion=(
                "The -outfmt column list and the parser schema must match. "
                "Custom columns must be valid BLAST+ format specifiers."
            ),
            query_index=query_index,
        )
        self.expected_cols = expected_cols
        self.actual_cols = actual_cols
        self.line_num = line_num
