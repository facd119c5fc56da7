"""
NCBI Entrez Direct efetch wrapper.

Retrieves reference records by accession. Used alongside the search
path (for example to pull the subject sequences of reported hits), never
inside it.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import ClassVar

from blastr.external.base import ExternalTool


class EFetch(ExternalTool):
    """Wrapper for the Entrez Direct ``efetch`` utility.

    Example:
        >>> efetch = EFetch(command_prefix=["conda", "run", "-n", "entrez-env"])
        >>> efetch.fetch(["MN908947.3"]).startswith(">")
        True
    """

    TOOL_NAME: ClassVar[str] = "efetch"
    INSTALL_HINT: ClassVar[str] = "conda install -c bioconda entrez-direct"

    def build_command(
        self,
        *,
        accessions: Sequence[str],
        db: str = "nucleotide",
        rettype: str = "fasta",
    ) -> list[str]:
        """Build an efetch command for a batch of accessions.

        Args:
            accessions: Accession identifiers (sent as one comma-joined list).
            db: Entrez database name.
            rettype: Entrez return format.

        Returns:
            Command as list of strings.
        """
        if not accessions:
            msg = "accessions parameter is required"
            raise ValueError(msg)

        cmd = self.executable_args()
        cmd.extend(["-db", db])
        cmd.extend(["-id", ",".join(accessions)])
        cmd.extend(["-format", rettype])
        return cmd

    def fetch(
        self,
        accessions: Sequence[str],
        *,
        db: str = "nucleotide",
        rettype: str = "fasta",
        timeout: float | None = None,
    ) -> str:
        """Download records for a batch of accessions.

        Returns:
            Raw efetch output (FASTA text by default).

        Raises:
            ToolExecutionError: If efetch exits non-zero.
            ToolTimeoutError: If the request exceeds ``timeout``.
        """
        result = self.run_or_raise(
            accessions=accessions,
            db=db,
            rettype=rettype,
            timeout=timeout,
        )
        return result.stdout
