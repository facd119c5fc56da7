"""
Dependency commands: provision and inspect the conda environments that
hold BLAST+ and efetch.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from blastr.cli.utils import QuietConsole, exit_with_error, setup_logging, spinner_progress
from blastr.core.environment import DEFAULT_ENVIRONMENTS, ensure_tool, resolve_tool_package
from blastr.core.exceptions import BlastrError
from blastr.external.conda import CondaManager

app = typer.Typer(
    name="deps",
    help="Provision conda environments for external tools",
    no_args_is_help=True,
)

console = Console()


@app.command(name="install")
def install(
    tool: list[str] | None = typer.Option(
        None,
        "--tool", "-t",
        help="Tool to provision (repeatable; default: blastn and efetch)",
    ),
    env_name: str | None = typer.Option(
        None,
        "--env-name",
        help="Environment name (only with a single --tool)",
    ),
    force: bool = typer.Option(
        False,
        "--force", "-f",
        help="Recreate environments even if they exist",
    ),
    output_level: str = typer.Option(
        "silent",
        "--output-level",
        help="Package manager output: silent, output or full",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Suppress progress output",
    ),
) -> None:
    """
    Create the conda environments for BLAST+ and efetch.

    Existing environments are left alone unless --force is given.

    Example:

        blastr deps install
        blastr deps install --tool blastn --env-name blast-2.16 --force
    """
    out = QuietConsole(console, quiet=quiet)
    setup_logging(console, verbose)

    if output_level not in ("silent", "output", "full"):
        console.print(f"[red]Error: invalid --output-level '{output_level}'[/red]")
        raise typer.Exit(code=1)

    tools = tool or list(DEFAULT_ENVIRONMENTS)
    if env_name and len(tools) != 1:
        console.print("[red]Error: --env-name requires exactly one --tool[/red]")
        raise typer.Exit(code=1)

    try:
        manager = CondaManager()
        for name in tools:
            env = env_name or DEFAULT_ENVIRONMENTS.get(name, f"{name}-env")
            # No spinner while the package manager writes to the terminal
            with spinner_progress(
                f"Provisioning {name} in '{env}'...",
                console,
                quiet=quiet or output_level != "silent",
            ):
                ensure_tool(name, env, verbose=output_level, force=force, manager=manager)
            out.print(f"[green]{name}[/green] ready in environment [bold]{env}[/bold]")
    except BlastrError as e:
        exit_with_error(console, e)


@app.command(name="check")
def check(
    tool: list[str] | None = typer.Option(
        None,
        "--tool", "-t",
        help="Tool to check (repeatable; default: blastn and efetch)",
    ),
) -> None:
    """
    Report which tools have an environment and which are on PATH.
    """
    tools = tool or list(DEFAULT_ENVIRONMENTS)

    try:
        manager = CondaManager()
        env_names = {prefix.name for prefix in manager.list_envs()}
    except BlastrError as e:
        exit_with_error(console, e)

    table = Table(title="External tools")
    table.add_column("Tool")
    table.add_column("Package")
    table.add_column("Environment")
    table.add_column("Env exists")
    table.add_column("On PATH")

    missing = False
    for name in tools:
        try:
            package = resolve_tool_package(name)
        except BlastrError as e:
            exit_with_error(console, e)
        env = DEFAULT_ENVIRONMENTS.get(name, f"{name}-env")
        exists = env in env_names
        missing = missing or not exists
        table.add_row(
            name,
            package,
            env,
            "[green]yes[/green]" if exists else "[red]no[/red]",
            "yes" if manager.which(name) else "no",
        )

    console.print(table)
    if missing:
        console.print("\n[dim]Run 'blastr deps install' to create missing environments.[/dim]")
        raise typer.Exit(code=1)
