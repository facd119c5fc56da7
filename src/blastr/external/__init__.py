"""
Wrappers for external command-line tools.

Provides Python interfaces to the BLAST+ search programs, Entrez Direct
efetch, and the conda package manager that provisions them.
"""

from blastr.external.base import (
    ExternalTool,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResult,
    ToolTimeoutError,
    UnsafePathError,
)
from blastr.external.blast import (
    BLAST_PROGRAMS,
    BlastN,
    BlastP,
    BlastSearch,
    BlastX,
    TBlastN,
    TBlastX,
    blast_program,
)
from blastr.external.conda import CondaManager
from blastr.external.entrez import EFetch

__all__ = [
    "BLAST_PROGRAMS",
    "BlastN",
    "BlastP",
    "BlastSearch",
    "BlastX",
    "CondaManager",
    "EFetch",
    "ExternalTool",
    "TBlastN",
    "TBlastX",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResult",
    "ToolTimeoutError",
    "UnsafePathError",
    "blast_program",
]
