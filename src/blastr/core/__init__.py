"""
Core orchestration: environment gate, single-query runner, parallel
dispatcher and result persistence.
"""

from blastr.core.exceptions import (
    BlastrError,
    ConfigurationError,
    DatabaseNotFoundError,
    EnvironmentProvisionError,
    MalformedBlastOutputError,
    SearchError,
    SearchFailedError,
    SetupError,
    UnsupportedToolError,
)

__all__ = [
    "BlastrError",
    "ConfigurationError",
    "DatabaseNotFoundError",
    "EnvironmentProvisionError",
    "MalformedBlastOutputError",
    "SearchError",
    "SearchFailedError",
    "SetupError",
    "UnsupportedToolError",
]
