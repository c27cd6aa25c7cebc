"""Chart loading from OCI registries."""

from __future__ import annotations

import logging
import posixpath
from urllib.parse import urlsplit

from helm_expander.core.cache import normalize_url
from helm_expander.core.ecr import is_ecr_host
from helm_expander.core.errors import ExpanderError, NotFoundError
from helm_expander.core.loader_base import ChartLoader
from helm_expander.core.oci_client import RegistryClient
from helm_expander.models import RepositoryKind
from helm_expander.models.chart import Chart, ChartContext
from helm_expander.models.repo import ChartIdentity, RepositoryRef
from helm_expander.utils.version_compare import highest_matching, is_concrete_version

logger = logging.getLogger(__name__)

_SECURE_SCHEMES = ("https", "oci")


def is_insecure(repository: RepositoryRef) -> bool:
    """Plain HTTP registry access.

    Repository resources say so explicitly; bare URLs are insecure unless
    their scheme is ``https`` or ``oci``.
    """
    if repository.is_resource:
        return repository.insecure
    return urlsplit(repository.url).scheme not in _SECURE_SCHEMES


def registry_path(url: str) -> str:
    """``oci://host:port/path`` becomes ``host:port/path``."""
    _, sep, rest = url.partition("://")
    return rest if sep else url


class OciLoader(ChartLoader):
    """Loads Helm charts stored as OCI artifacts.

    Tags are listed on every lookup of a version range. Only the chart
    content download is avoided by the memory and disk caches.
    """

    kind = RepositoryKind.OCI

    def load_chart(
        self,
        repository: RepositoryRef,
        chart_name: str,
        version: str,
        context: ChartContext | None = None,
    ) -> Chart:
        url = normalize_url(repository.url, RepositoryKind.OCI)
        logger.debug("Loading chart %s %s from OCI repository %s", chart_name, version, url)

        client = self.config.registry_client_factory(is_insecure(repository))
        self._login(client, repository, url)

        chart_ref = posixpath.join(registry_path(url), chart_name)
        try:
            chart_version = self._resolve_version(client, chart_ref, version)
        except ExpanderError as e:
            raise e.wrap(f"unable to find version {version} for chart {chart_name} in repository {url}") from e

        identity = ChartIdentity(url=url, chart=chart_name, version=chart_version)
        chart = self.cache.get(identity)
        if chart is not None:
            return chart

        chart_dir = self.cache.repo_path(url) / f"{chart_name}-{chart_version}"
        chart = self.load_cached_chart(chart_dir)
        if chart is None:
            versioned_ref = f"{chart_ref}:{chart_version}"
            chart = self.store_archive(client.get(versioned_ref), chart_dir, versioned_ref)

        try:
            self.resolve_dependencies(chart, None)
        except ExpanderError as e:
            raise e.wrap(f"unable to load chart dependencies for {chart_name}/{chart.version} in {url}") from e

        self.cache.put(identity, chart)
        logger.debug("Finished loading chart %s version %s", chart_name, chart.version)
        return chart

    def _login(self, client: RegistryClient, repository: RepositoryRef, url: str) -> None:
        parts = urlsplit(url)
        host = parts.netloc
        username = password = ""
        creds = self.config.find_credentials(url)
        if creds is not None:
            username, password = creds.username, creds.password
            logger.debug("Using password from credentials file for %s", host)

        if not username and not password and (
            is_ecr_host(parts.hostname or "") or repository.provider == "aws"
        ):
            try:
                username, password = self.config.ecr_login(host)
            except ExpanderError as e:
                raise e.wrap(f"unable to log in to AWS registry {host}") from e

        if username or password:
            client.login(host, username, password)

    def _resolve_version(self, client: RegistryClient, chart_ref: str, version: str) -> str:
        if is_concrete_version(version):
            return version

        tags = client.tags(chart_ref)
        if not tags:
            raise NotFoundError(f"unable to locate any tags for {chart_ref}")
        result = highest_matching(tags, version or "*")
        if result is None:
            raise NotFoundError(f"unable to find a tag of {chart_ref} matching {version or '*'}")
        return result
