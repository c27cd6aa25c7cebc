"""Resolve the repository-backed dependencies of a loaded chart."""

from __future__ import annotations

import logging
import posixpath
from urllib.parse import urlsplit

from helm_expander.core.cache import normalize_url
from helm_expander.core.errors import ConfigError, ExpanderError
from helm_expander.core.loader_base import LoaderConfig
from helm_expander.core.loader_factory import loader_for_url
from helm_expander.models.chart import Chart, ChartContext, ChartDependency
from helm_expander.models.repo import RepositoryRef

logger = logging.getLogger(__name__)

_LOCAL_SCHEMES = ("", "file")


def join_chart_path(parent: str, path: str) -> str:
    if posixpath.isabs(path):
        return posixpath.normpath(path)
    return posixpath.normpath(posixpath.join(parent, path))


def local_dependency_path(repository_url: str) -> str:
    """Path of a ``file://`` or scheme-less dependency relative to its parent.

    ``file://../sibling`` parses with ``..`` as its host and means ``../sibling``.
    """
    parts = urlsplit(repository_url)
    if parts.netloc == "..":
        return posixpath.join("..", parts.path.lstrip("/"))
    return parts.path


class DependencyResolver:
    """Attaches a resolved chart for every dependency that names a repository.

    Dependencies without a repository ship inside the parent's ``charts/``
    directory and are left to the renderer.
    """

    def __init__(self, config: LoaderConfig):
        self.config = config

    def resolve(self, chart: Chart, context: ChartContext | None) -> None:
        for dependency in chart.metadata.dependencies:
            if not dependency.repository:
                continue
            repository_url = self._repository_url(dependency)
            try:
                resolved = self._load(chart, dependency, repository_url, context)
            except ExpanderError as e:
                raise e.wrap(
                    f"unable to load chart {dependency.name}/{dependency.version} "
                    f"from {repository_url} (a dependency of {chart.name})"
                ) from e
            if resolved is not None:
                chart.add_dependency(resolved)

    @staticmethod
    def _repository_url(dependency: ChartDependency) -> str:
        repository = dependency.repository
        if repository.startswith("@") or repository.startswith("alias:"):
            raise ConfigError(
                f"repository alias {repository} of dependency {dependency.name} is not supported"
            )
        return normalize_url(repository)

    def _load(
        self,
        chart: Chart,
        dependency: ChartDependency,
        repository_url: str,
        context: ChartContext | None,
    ) -> Chart | None:
        if urlsplit(repository_url).scheme in _LOCAL_SCHEMES:
            if context is None or context.repository is None:
                if chart.bundles(dependency.name):
                    logger.debug("Using bundled copy of %s in %s", dependency.name, chart.name)
                    return None
                raise ConfigError(
                    f"relative dependency {dependency.name} of {chart.name} "
                    f"cannot be resolved outside a Git checkout"
                )
            path = join_chart_path(context.chart_name, local_dependency_path(repository_url))
            logger.debug("Loading relative dependency %s of %s from %s", dependency.name, chart.name, path)
            return context.loader.load_chart(context.repository, path, dependency.version, context)

        loader = loader_for_url(repository_url, self.config)
        repository = RepositoryRef.from_url(loader.kind, repository_url)
        logger.debug("Loading dependency %s of %s from %s", dependency.name, chart.name, repository_url)
        return loader.load_chart(repository, dependency.name, dependency.version)
