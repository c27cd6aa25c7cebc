"""Loading contract shared by the Git, Helm and OCI chart backends."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Mapping

from helm_expander.config.settings import settings
from helm_expander.core.cache import ChartCache, evict, save_chart_files
from helm_expander.core.chart_loader import load_dir, load_files, read_archive_files
from helm_expander.core.credentials import Credentials, RepositoryCredentials
from helm_expander.core.errors import CacheCorruptionError, ExpanderError
from helm_expander.models import RepositoryKind
from helm_expander.models.chart import Chart, ChartContext
from helm_expander.models.repo import RepositoryRef

if TYPE_CHECKING:
    from helm_expander.core.git_client import GitClient
    from helm_expander.core.git_loader import GitRepoSubstitution
    from helm_expander.core.http_client import HttpGetter
    from helm_expander.core.oci_client import RegistryClient

logger = logging.getLogger(__name__)


def _default_git_client_factory() -> GitClient:
    from helm_expander.core.git_client import GitPythonClient
    return GitPythonClient()


def _default_registry_client_factory(insecure: bool) -> RegistryClient:
    from helm_expander.core.oci_client import OrasRegistryClient
    return OrasRegistryClient(insecure=insecure)


def _default_http_getter_factory(creds: RepositoryCredentials | None) -> HttpGetter:
    from helm_expander.core.http_client import RequestsGetter
    return RequestsGetter(creds, timeout=settings.http_timeout)


def _default_ecr_login(host: str) -> tuple[str, str]:
    from helm_expander.core.ecr import ecr_login
    return ecr_login(host)


@dataclass
class LoaderConfig:
    """Collaborators shared by every loader of one expansion.

    The factories are the seams tests replace with in-memory fakes.
    """

    cache: ChartCache
    credentials: Credentials = field(default_factory=Credentials)
    environ: Mapping[str, str] | None = None
    git_client_factory: Callable[[], GitClient] = _default_git_client_factory
    registry_client_factory: Callable[[bool], RegistryClient] = _default_registry_client_factory
    http_getter_factory: Callable[[RepositoryCredentials | None], HttpGetter] = _default_http_getter_factory
    ecr_login: Callable[[str], tuple[str, str]] = _default_ecr_login
    git_substitution: GitRepoSubstitution | None = None
    git_timeout: float = field(default_factory=lambda: settings.git_timeout)

    def find_credentials(self, url: str) -> RepositoryCredentials | None:
        environ = os.environ if self.environ is None else self.environ
        return self.credentials.find_for_repo(url, environ)


class ChartLoader(ABC):
    """Resolves a chart from one kind of repository."""

    kind: RepositoryKind

    def __init__(self, config: LoaderConfig):
        self.config = config

    @property
    def cache(self) -> ChartCache:
        return self.config.cache

    @abstractmethod
    def load_chart(
        self,
        repository: RepositoryRef,
        chart_name: str,
        version: str,
        context: ChartContext | None = None,
    ) -> Chart:
        """Return ``chart_name`` at ``version`` with its dependencies attached.

        ``context`` is set when resolving a relative dependency of a chart
        this loader produced earlier.
        """

    def load_cached_chart(self, chart_dir: Path) -> Chart | None:
        """Load a chart from the disk cache.

        An entry that fails to load is removed so the caller downloads it again.
        """
        if not chart_dir.is_dir():
            return None
        try:
            chart = load_dir(chart_dir)
        except (ExpanderError, OSError) as e:
            corruption = CacheCorruptionError(f"unable to load cached chart {chart_dir}: {e}")
            logger.warning("%s; downloading it again", corruption)
            evict(chart_dir)
            return None
        logger.debug("Using chart from file cache %s", chart_dir)
        return chart

    def store_archive(self, data: bytes, chart_dir: Path, source: str) -> Chart:
        files = read_archive_files(data, source)
        chart = load_files(files, source)
        save_chart_files(chart_dir, files)
        return chart

    def resolve_dependencies(self, chart: Chart, context: ChartContext | None) -> None:
        from helm_expander.core.dependencies import DependencyResolver
        DependencyResolver(self.config).resolve(chart, context)
