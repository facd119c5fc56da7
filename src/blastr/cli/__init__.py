"""
CLI commands for blastr.

Provides command-line interface for BLAST searches, dependency
provisioning, and reference record retrieval.
"""

__all__ = ["blast", "deps", "entrez", "main"]
