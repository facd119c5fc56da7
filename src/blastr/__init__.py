"""
blastr: parallel BLAST searches for amplicon sequence variants.

Dispatches one BLAST+ search per ASV against a reference database over a
bounded process pool, runs every external tool from a pinned conda
environment, and returns the hits as a single polars DataFrame.
"""

__version__ = "0.4.0"

from blastr.core.dispatch import run_batch
from blastr.core.environment import ensure_tool, install_dependencies
from blastr.core.fetch import fetch_by_accession
from blastr.core.pipeline import parallel_blast
from blastr.core.search import run_search
from blastr.models.blast import OutputSchema, SearchStatus
from blastr.models.config import BatchConfig, SearchParams

__all__ = [
    "BatchConfig",
    "OutputSchema",
    "SearchParams",
    "SearchStatus",
    "__version__",
    "ensure_tool",
    "fetch_by_accession",
    "install_dependencies",
    "parallel_blast",
    "run_batch",
    "run_search",
]
