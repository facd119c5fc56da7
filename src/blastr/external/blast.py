"""
BLAST+ search program wrappers.

Provides Python interfaces for the five BLAST+ search programs. They share
one command layout: a FASTA query file, a database prefix, a tabular
output format written to stdout, and the identity/coverage/target cutoffs.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from blastr.external.base import ExternalTool, ToolResult, validate_path_safe


class BlastSearch(ExternalTool):
    """Base wrapper for BLAST+ search programs.

    Example:
        >>> blastn = BlastN(command_prefix=["conda", "run", "-n", "blast-env"])
        >>> result = blastn.search(
        ...     Path("query_0.fasta"),
        ...     "/data/databases/nt/nt",
        ...     "6 qseqid sseqid pident",
        ...     max_target_seqs=4,
        ... )
        >>> result.success
        True
    """

    TOOL_NAME: ClassVar[str] = "blastn"
    INSTALL_HINT: ClassVar[str] = "conda install -c bioconda blast"

    def build_command(
        self,
        *,
        query: Path,
        database: str,
        outfmt: str,
        threads: int = 1,
        perc_identity: float | None = None,
        qcov_hsp_perc: float | None = None,
        max_target_seqs: int = 4,
    ) -> list[str]:
        """Build the search command.

        Args:
            query: Query FASTA file.
            database: BLAST database prefix or name.
            outfmt: Output format string, e.g. "6 qseqid sseqid pident".
            threads: Number of threads for this process.
            perc_identity: Minimum percent identity (blastn only).
            qcov_hsp_perc: Minimum percent query coverage per HSP.
            max_target_seqs: Maximum aligned sequences to keep.

        Returns:
            Command as list of strings.
        """
        query = validate_path_safe(query, must_exist=False)

        cmd = self.executable_args()
        cmd.extend(["-query", str(query)])
        cmd.extend(["-db", database])
        cmd.extend(["-outfmt", outfmt])
        cmd.extend(["-num_threads", str(threads)])

        if perc_identity is not None:
            cmd.extend(["-perc_identity", str(perc_identity)])

        if qcov_hsp_perc is not None:
            cmd.extend(["-qcov_hsp_perc", str(qcov_hsp_perc)])

        cmd.extend(["-max_target_seqs", str(max_target_seqs)])

        return cmd

    def search(
        self,
        query: Path,
        database: str,
        outfmt: str,
        *,
        timeout: float | None = None,
        threads: int = 1,
        perc_identity: float | None = None,
        qcov_hsp_perc: float | None = None,
        max_target_seqs: int = 4,
    ) -> ToolResult:
        """Run one search with tabular output captured from stdout.

        A non-zero exit is returned, not raised, so the caller decides how
        a failed search is reported.

        Raises:
            ToolTimeoutError: If the search exceeds ``timeout``.
        """
        return self.run(
            timeout=timeout,
            query=query,
            database=database,
            outfmt=outfmt,
            threads=threads,
            perc_identity=perc_identity,
            qcov_hsp_perc=qcov_hsp_perc,
            max_target_seqs=max_target_seqs,
        )


class BlastN(BlastSearch):
    """Nucleotide query against a nucleotide database."""

    TOOL_NAME = "blastn"


class BlastP(BlastSearch):
    """Protein query against a protein database."""

    TOOL_NAME = "blastp"


class BlastX(BlastSearch):
    """Translated nucleotide query against a protein database."""

    TOOL_NAME = "blastx"


class TBlastN(BlastSearch):
    """Protein query against a translated nucleotide database."""

    TOOL_NAME = "tblastn"


class TBlastX(BlastSearch):
    """Translated nucleotide query against a translated nucleotide database."""

    TOOL_NAME = "tblastx"


BLAST_PROGRAMS: dict[str, type[BlastSearch]] = {
    cls.TOOL_NAME: cls for cls in (BlastN, BlastP, BlastX, TBlastN, TBlastX)
}


def blast_program(blast_type: str) -> type[BlastSearch]:
    """Look up the wrapper class for a BLAST+ program name.

    Raises:
        KeyError: If the program is not a supported BLAST+ search program.
    """
    try:
        return BLAST_PROGRAMS[blast_type]
    except KeyError:
        msg = f"Unknown BLAST program '{blast_type}'. Choose from: {', '.join(BLAST_PROGRAMS)}"
        raise KeyError(msg) from None
