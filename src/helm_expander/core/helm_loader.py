"""Chart loading from HTTP Helm chart repositories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import yaml

from helm_expander.core.cache import normalize_url
from helm_expander.core.errors import CacheCorruptionError, ConfigError, ExpanderError, NotFoundError
from helm_expander.core.http_client import HttpGetter
from helm_expander.core.loader_base import ChartLoader
from helm_expander.models import RepositoryKind
from helm_expander.models.chart import Chart, ChartContext
from helm_expander.models.repo import ChartIdentity, RepositoryRef
from helm_expander.utils.version_compare import highest_matching

logger = logging.getLogger(__name__)

# Prefer the C-accelerated YAML loader when available; indexes can be large.
_YamlLoader = getattr(yaml, "CSafeLoader", yaml.SafeLoader)

INDEX_FILE = "repo-index.yaml"


@dataclass
class IndexEntry:
    name: str
    version: str
    urls: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, d: dict) -> IndexEntry:
        return cls(
            name=name,
            version=str(d.get("version", "") or ""),
            urls=[str(u) for u in d.get("urls") or []],
        )


class RepositoryIndex:
    """The ``entries`` section of a repository ``index.yaml``."""

    def __init__(self, url: str, entries: dict[str, list[IndexEntry]]):
        self.url = url
        self.entries = entries

    @classmethod
    def parse(cls, url: str, data: bytes | str) -> RepositoryIndex:
        try:
            doc = yaml.load(data, Loader=_YamlLoader)
        except yaml.YAMLError as e:
            raise ConfigError(f"unable to parse index of Helm repository {url}: {e}") from e
        if not isinstance(doc, dict) or not isinstance(doc.get("entries"), dict):
            raise ConfigError(f"index of Helm repository {url} has no entries")
        entries: dict[str, list[IndexEntry]] = {}
        for chart_name, chart_entries in doc["entries"].items():
            entries[chart_name] = [
                IndexEntry.from_dict(chart_name, e)
                for e in chart_entries or []
                if isinstance(e, dict) and "version" in e
            ]
        return cls(url, entries)

    @classmethod
    def load(cls, url: str, path: Path) -> RepositoryIndex:
        return cls.parse(url, path.read_bytes())

    def get(self, chart_name: str, constraint: str) -> IndexEntry:
        """Return the entry for ``chart_name`` best matching ``constraint``.

        An entry whose version equals ``constraint`` verbatim wins, otherwise
        the highest version satisfying it.
        """
        entries = self.entries.get(chart_name)
        if not entries:
            raise NotFoundError(f"chart {chart_name} not found in Helm repository {self.url}")

        # Exact version match
        for entry in entries:
            if constraint and entry.version == constraint:
                return entry

        best = highest_matching((e.version for e in entries), constraint or "*")
        if best is None:
            raise NotFoundError(
                f"no version of chart {chart_name} matches {constraint or '*'} "
                f"in Helm repository {self.url}"
            )
        return next(e for e in entries if e.version == best)


class HelmLoader(ChartLoader):
    """Loads charts listed in the ``index.yaml`` of an HTTP chart repository."""

    kind = RepositoryKind.HELM

    def load_chart(
        self,
        repository: RepositoryRef,
        chart_name: str,
        version: str,
        context: ChartContext | None = None,
    ) -> Chart:
        url = normalize_url(repository.url, RepositoryKind.HELM)
        logger.debug("Loading chart %s %s from Helm repository %s", chart_name, version, url)

        repo_path = self.cache.repo_path(url)
        getter = self.config.http_getter_factory(self.config.find_credentials(url))
        index = self._load_index(url, repo_path, getter)
        try:
            entry = index.get(chart_name, version)
        except ExpanderError as e:
            raise e.wrap(f"unable to get chart {chart_name}/{version} from Helm repository {url}") from e

        identity = ChartIdentity(url=url, chart=chart_name, version=entry.version)
        chart = self.cache.get(identity)
        if chart is not None:
            return chart

        chart_dir = repo_path / f"{chart_name}-{entry.version}"
        chart = self.load_cached_chart(chart_dir)
        if chart is None:
            chart = self._download(url, entry, chart_dir, getter)

        try:
            self.resolve_dependencies(chart, None)
        except ExpanderError as e:
            raise e.wrap(f"unable to load chart dependencies for {chart_name}/{chart.version} in {url}") from e

        self.cache.put(identity, chart)
        logger.debug("Finished loading chart %s version %s", chart_name, chart.version)
        return chart

    def _load_index(self, url: str, repo_path: Path, getter: HttpGetter) -> RepositoryIndex:
        index_path = repo_path / INDEX_FILE
        if not index_path.exists():
            try:
                data = getter.get(urljoin(url, "index.yaml"))
            except ExpanderError as e:
                raise e.wrap(f"unable to download index file for Helm repository {url}") from e
            try:
                repo_path.mkdir(parents=True, exist_ok=True)
                index_path.write_bytes(data)
            except OSError as e:
                raise CacheCorruptionError(f"unable to write index file {index_path}: {e}") from e
        else:
            logger.debug("Using cached index %s", index_path)
        try:
            return RepositoryIndex.load(url, index_path)
        except ExpanderError as e:
            raise e.wrap(f"unable to load index file for Helm repository {url}") from e

    def _download(self, url: str, entry: IndexEntry, chart_dir: Path, getter: HttpGetter) -> Chart:
        if not entry.urls:
            raise ConfigError(f"chart {entry.name}/{entry.version} in {url} has no download URL")
        chart_url = urljoin(url, entry.urls[0])
        scheme = urlsplit(chart_url).scheme
        if scheme not in ("http", "https"):
            raise ConfigError(f"unknown scheme {scheme} for chart {entry.urls[0]}")

        try:
            data = getter.get(chart_url)
        except ExpanderError as e:
            raise e.wrap(f"unable to download chart {chart_url}") from e

        return self.store_archive(data, chart_dir, f"{entry.name}/{entry.version} in {url}")
