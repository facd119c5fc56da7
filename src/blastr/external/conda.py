"""
Conda environment management.

Wraps conda, mamba or micromamba for the three operations the environment
gate needs: checking whether a named environment exists, creating (or
replacing) one with pinned packages, and building the ``run -n <env>``
prefix that executes a tool inside it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import ClassVar

from blastr.core.exceptions import EnvironmentProvisionError
from blastr.external.base import ExternalTool, ToolResult
from blastr.models.config import Verbosity

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS: tuple[str, ...] = ("conda-forge", "bioconda")


class CondaManager(ExternalTool):
    """Wrapper for conda-compatible package managers.

    Example:
        >>> conda = CondaManager()
        >>> if not conda.env_exists("blast-env"):
        ...     conda.create_env(["bioconda::blast==2.16"], "blast-env")
        >>> conda.run_prefix("blast-env")
        ['/opt/conda/bin/conda', 'run', '-n', 'blast-env']
    """

    TOOL_NAME: ClassVar[str] = "conda"
    TOOL_ALIASES: ClassVar[tuple[str, ...]] = ("mamba", "micromamba")
    INSTALL_HINT: ClassVar[str] = (
        "https://github.com/conda-forge/miniforge (or install micromamba)"
    )

    def build_command(self, *, args: Sequence[str] = ()) -> list[str]:
        """Build a package manager command from raw arguments."""
        return [*self.executable_args(), *args]

    def which(self, tool: str) -> str | None:
        """Look a tool up on the ambient PATH."""
        return type(self)._executable_resolver(tool)

    def list_envs(self) -> list[Path]:
        """Return the prefixes of all known environments."""
        result = self.run_or_raise(args=["env", "list", "--json"])
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            logger.warning("Could not parse environment list: %s", result.stdout[:200])
            return []
        return [Path(p) for p in payload.get("envs", [])]

    def env_exists(self, env_name: str) -> bool:
        """Check whether a named environment exists."""
        return any(prefix.name == env_name for prefix in self.list_envs())

    def remove_env(self, env_name: str, *, verbose: Verbosity = "silent") -> ToolResult:
        """Remove a named environment."""
        return self.run(
            args=["env", "remove", "-y", "-n", env_name],
            capture_output=verbose == "silent",
        )

    def create_env(
        self,
        packages: Sequence[str] = (),
        env_name: str = "blast-env",
        *,
        verbose: Verbosity = "silent",
        overwrite: bool = False,
        channels: Sequence[str] = DEFAULT_CHANNELS,
    ) -> ToolResult:
        """Create a named environment, optionally replacing an existing one.

        Args:
            packages: Package specs such as ``bioconda::blast==2.16``. May be
                empty to create a bare environment.
            env_name: Environment name.
            verbose: ``silent`` captures all output, ``output`` and ``full``
                stream it to the terminal.
            overwrite: Remove an existing environment of the same name first.
            channels: Channels searched for dependencies.

        Raises:
            EnvironmentProvisionError: If the package manager fails.
        """
        packages = tuple(packages)

        if overwrite and self.env_exists(env_name):
            removed = self.remove_env(env_name, verbose=verbose)
            if not removed.success:
                raise EnvironmentProvisionError(env_name, packages, removed.stderr)

        args = ["create", "-y", "-n", env_name]
        for channel in channels:
            args.extend(["-c", channel])
        if verbose == "silent":
            args.append("--quiet")
        args.extend(packages)

        if verbose == "full":
            logger.info("Provisioning environment: %s", " ".join(args))

        result = self.run(args=args, capture_output=verbose == "silent")
        if not result.success:
            raise EnvironmentProvisionError(env_name, packages, result.stderr)

        logger.info(
            "Created environment '%s' (%s) in %.1fs",
            env_name,
            ", ".join(packages) or "empty",
            result.elapsed_seconds,
        )
        return result

    def run_prefix(self, env_name: str) -> list[str]:
        """Command prefix that executes a program inside ``env_name``."""
        return [*self.executable_args(), "run", "-n", env_name]
