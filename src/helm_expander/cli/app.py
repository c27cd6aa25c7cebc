"""Root Typer application, mounts sub-commands."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from helm_expander.cli.options import LogLevelOption

app = typer.Typer(
    name="hexpand",
    help="Helm Expander - Expand Flux HelmRelease resources into rendered manifests.",
    no_args_is_help=False,
)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logging(level: str) -> None:
    if level.lower() not in _LOG_LEVELS:
        typer.echo(f"Error: invalid --log-level {level}", err=True)
        raise typer.Exit(code=2)
    logging.basicConfig(
        level=_LOG_LEVELS[level.lower()],
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback(invoke_without_command=True)
def root(ctx: typer.Context, log_level: str = LogLevelOption) -> None:
    """Expand HelmReleases read from stdin when no command is given."""
    setup_logging(log_level)
    if ctx.invoked_subcommand is not None:
        return

    from helm_expander.cli.commands.expand_cmd import run_expand
    from helm_expander.core.errors import ExpanderError

    try:
        run_expand()
    except ExpanderError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _register_commands() -> None:
    from helm_expander.cli.commands.expand_cmd import app as expand_app
    from helm_expander.cli.commands.version_cmd import app as version_app

    app.add_typer(expand_app, name="expand", help="Expand HelmRelease objects into generated templates")
    app.add_typer(version_app, name="version", help="Show the installed version")


_register_commands()


def main() -> None:
    app()
