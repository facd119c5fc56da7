"""
Data models for blastr.

Provides the per-invocation BLAST output schema and the pydantic
configuration models for searches and batches.
"""

from blastr.models.blast import ColumnSpec, OutputSchema, SearchStatus
from blastr.models.config import BatchConfig, SearchParams

__all__ = [
    "BatchConfig",
    "ColumnSpec",
    "OutputSchema",
    "SearchParams",
    "SearchStatus",
]
