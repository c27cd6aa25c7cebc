"""Shared CLI options."""

from __future__ import annotations

import typer

from helm_expander.config.settings import settings

LogLevelOption = typer.Option("warning", "--log-level", help="Log level: debug, info, warning, error")
CredentialsFileOption = typer.Option(None, "--credentials-file", help="Name of the repository credentials file")
KubeVersionOption = typer.Option(
    settings.kube_version, "--kube-version",
    help="Kubernetes version used for Capabilities.KubeVersion in charts",
)
ApiVersionsOption = typer.Option(
    None, "--api-versions",
    help="Kubernetes API versions used for Capabilities.APIVersions in charts (repeatable, comma separated)",
)
MaxExpansionsOption = typer.Option(
    settings.max_expansions, "--max-expansions", min=0,
    help="Maximum number of expansions to perform recursively",
)
ChartCacheDirOption = typer.Option(
    None, "--chart-cache-dir",
    help="Directory to cache Helm charts (default: $HELM_EXPANDER_CHART_CACHE_DIR or a temporary directory)",
)
GitRepoSubstitutionOption = typer.Option(
    "", "--git-repo-substitution",
    help="Use a local working copy for a Git repository: <repo-url>#[<branch>#]<path>",
)
MemoryCacheOption = typer.Option(
    True, "--memory-cache/--no-memory-cache",
    help="Reuse charts resolved earlier in the same run",
)


def split_api_versions(values: list[str] | None) -> list[str]:
    result: list[str] = []
    for value in values or []:
        result.extend(v.strip() for v in value.split(",") if v.strip())
    return result
