"""
Environment gate for external command-line tools.

Makes sure a BLAST+ program or efetch can be run from a named conda
environment before any work is dispatched. Each supported tool maps to one
pinned bioconda package; the environment is created on first use and left
alone afterwards unless a rebuild is forced.
"""

from __future__ import annotations

import logging

from blastr.core.exceptions import EnvironmentProvisionError, UnsupportedToolError
from blastr.external.base import ToolExecutionError
from blastr.external.conda import CondaManager
from blastr.models.config import Verbosity

logger = logging.getLogger(__name__)

# (substring of the tool name, pinned package coordinate)
TOOL_PACKAGES: tuple[tuple[str, str], ...] = (
    ("blast", "bioconda::blast==2.16"),
    ("efetch", "bioconda::entrez-direct==22.4"),
)

DEFAULT_ENVIRONMENTS: dict[str, str] = {
    "blastn": "blast-env",
    "efetch": "entrez-env",
}


def resolve_tool_package(tool_name: str) -> str:
    """Return the pinned package coordinate providing ``tool_name``.

    Raises:
        UnsupportedToolError: If the tool is neither a BLAST variant nor efetch.
    """
    for marker, package in TOOL_PACKAGES:
        if marker in tool_name:
            return package
    raise UnsupportedToolError(tool_name, tuple(marker for marker, _ in TOOL_PACKAGES))


def as_verbosity(verbose: Verbosity | bool) -> Verbosity:
    """Map a boolean verbose flag onto a provisioning output level."""
    if isinstance(verbose, bool):
        return "output" if verbose else "silent"
    return verbose


def ensure_tool(
    tool_name: str = "blastn",
    env_name: str = "blast-env",
    verbose: Verbosity | bool = "silent",
    force: bool = False,
    *,
    manager: CondaManager | None = None,
) -> bool:
    """
    Make ``tool_name`` runnable inside the conda environment ``env_name``.

    Decision order:
        1. ``force``: (re)create the environment with the pinned package.
        2. Environment exists: nothing to do.
        3. Tool not on PATH: create the environment with the pinned package.
        4. Tool on PATH: create an empty environment so every later call
           still runs through ``env_name``.

    Args:
        tool_name: Executable name, e.g. "blastn" or "efetch".
        env_name: Conda environment name.
        verbose: Package manager output level ("silent", "output", "full").
        force: Rebuild the environment even if it exists.
        manager: Package manager wrapper (default: CondaManager()).

    Returns:
        True once the tool is available.

    Raises:
        UnsupportedToolError: Unknown tool; raised before any subprocess runs.
        EnvironmentProvisionError: The environment could not be created.
        ToolNotFoundError: No conda-compatible package manager is installed.
    """
    package = resolve_tool_package(tool_name)
    level = as_verbosity(verbose)
    manager = manager or CondaManager()

    try:
        if force:
            logger.info("Rebuilding environment '%s' with %s", env_name, package)
            manager.create_env([package], env_name, verbose=level, overwrite=True)
            return True

        if manager.env_exists(env_name):
            logger.debug("Environment '%s' already exists", env_name)
            return True

        if manager.which(tool_name):
            logger.info(
                "'%s' found on PATH; creating empty environment '%s'",
                tool_name,
                env_name,
            )
            manager.create_env([], env_name, verbose=level)
        else:
            logger.info("Installing %s into new environment '%s'", package, env_name)
            manager.create_env([package], env_name, verbose=level)
    except ToolExecutionError as e:
        raise EnvironmentProvisionError(env_name, (package,), e.stderr) from e

    return True


def install_dependencies(
    verbose: Verbosity | bool = "silent",
    force: bool = False,
    *,
    manager: CondaManager | None = None,
) -> bool:
    """Provision every external tool blastr uses, each in its default environment."""
    manager = manager or CondaManager()
    for tool_name, env_name in DEFAULT_ENVIRONMENTS.items():
        ensure_tool(tool_name, env_name, verbose=verbose, force=force, manager=manager)
    return True
