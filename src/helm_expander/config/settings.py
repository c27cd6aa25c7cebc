"""Application configuration and defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _default_chart_cache_dir() -> str:
    """Return the chart cache directory from the environment.

    An empty value means no persistent cache: every invocation works in a
    temporary directory that is removed afterwards.
    """
    return os.environ.get("HELM_EXPANDER_CHART_CACHE_DIR", "")


def _default_helm_binary() -> str:
    # HELM_BIN is exported by helm itself when running plugins
    return os.environ.get("HELM_BIN", "") or "helm"


@dataclass
class Settings:
    chart_cache_dir: str = field(default_factory=_default_chart_cache_dir)
    helm_binary: str = field(default_factory=_default_helm_binary)
    kube_version: str = "1.28"
    max_expansions: int = 1
    git_timeout: float = 60.0
    default_git_branch: str = "master"
    ephemeral_dir_name: str = "ephemeral"
    http_timeout: float | None = None


# Global singleton
settings = Settings()
