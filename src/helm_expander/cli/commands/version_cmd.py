"""hexpand version - Print the installed version."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as package_version

import typer

app = typer.Typer()

DISTRIBUTION = "helm-expander"


def get_version() -> str:
    try:
        return package_version(DISTRIBUTION)
    except PackageNotFoundError:
        return "unknown"


@app.callback(invoke_without_command=True)
def version() -> None:
    """Print the helm-expander version."""
    typer.echo(f"{DISTRIBUTION} {get_version()}")
