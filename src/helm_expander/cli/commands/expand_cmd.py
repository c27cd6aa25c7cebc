"""hexpand expand [FILES...] - Expand HelmRelease objects into generated templates."""

from __future__ import annotations

import io
import logging
import re
import sys
import time
from pathlib import Path
from typing import IO, Optional

import typer

from helm_expander.cli.options import (
    ApiVersionsOption,
    ChartCacheDirOption,
    CredentialsFileOption,
    GitRepoSubstitutionOption,
    KubeVersionOption,
    MaxExpansionsOption,
    MemoryCacheOption,
    split_api_versions,
)
from helm_expander.config.settings import settings
from helm_expander.core.credentials import Credentials, read_credentials
from helm_expander.core.errors import ConfigError, ExpanderError
from helm_expander.core.expander import HelmReleaseExpander
from helm_expander.core.git_loader import GitRepoSubstitution

logger = logging.getLogger(__name__)

# Options may follow the input files.
app = typer.Typer(context_settings={"allow_interspersed_args": True})

_KUBE_VERSION = re.compile(r"^v?\d+\.\d+(\.\d+)?$")


def _load_credentials(path: Path | None) -> Credentials:
    if path is None:
        return Credentials()
    try:
        with open(path, encoding="utf-8") as f:
            return read_credentials(f, str(path))
    except OSError as e:
        raise ConfigError(f"unable to open credentials file {path}: {e}") from e


def _read_input(files: list[Path] | None) -> str:
    if not files:
        return sys.stdin.read()
    documents: list[str] = []
    for path in files:
        try:
            documents.append(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"unable to read {path}: {e}") from e
    return "\n---\n".join(documents)


def run_expand(
    files: list[Path] | None = None,
    credentials_file: Path | None = None,
    kube_version: str = settings.kube_version,
    api_versions: list[str] | None = None,
    max_expansions: int = settings.max_expansions,
    chart_cache_dir: str | None = None,
    git_repo_substitution: str = "",
    memory_cache: bool = True,
    output: IO[str] | None = None,
) -> None:
    """Run one expansion with CLI semantics; errors propagate as ExpanderError."""
    start = time.monotonic()
    logger.info("Starting expand command")

    if kube_version and not _KUBE_VERSION.match(kube_version):
        raise ConfigError(f"invalid --kube-version value {kube_version}")
    credentials = _load_credentials(credentials_file)
    substitution = GitRepoSubstitution.parse(git_repo_substitution)
    text = _read_input(files)

    expander = HelmReleaseExpander()
    expander.expand(
        credentials,
        io.StringIO(text),
        output or sys.stdout,
        kube_version=kube_version or None,
        api_versions=split_api_versions(api_versions),
        max_expansions=max_expansions,
        cache_dir=chart_cache_dir or settings.chart_cache_dir or None,
        enable_memory_cache=memory_cache,
        git_substitution=substitution,
    )
    logger.info("Finished expand command in %.2fs", time.monotonic() - start)


@app.callback(invoke_without_command=True)
def expand(
    files: Optional[list[Path]] = typer.Argument(None, help="YAML files to expand (default: stdin)"),
    credentials_file: Optional[Path] = CredentialsFileOption,
    kube_version: str = KubeVersionOption,
    api_versions: Optional[list[str]] = ApiVersionsOption,
    max_expansions: int = MaxExpansionsOption,
    chart_cache_dir: Optional[str] = ChartCacheDirOption,
    git_repo_substitution: str = GitRepoSubstitutionOption,
    memory_cache: bool = MemoryCacheOption,
) -> None:
    """Expand HelmRelease objects into generated templates."""
    try:
        run_expand(
            files=files,
            credentials_file=credentials_file,
            kube_version=kube_version,
            api_versions=api_versions,
            max_expansions=max_expansions,
            chart_cache_dir=chart_cache_dir,
            git_repo_substitution=git_repo_substitution,
            memory_cache=memory_cache,
        )
    except ExpanderError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
