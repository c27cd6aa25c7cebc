"""Expand Flux HelmRelease resources into the manifests their charts render."""

from __future__ import annotations

import logging
import posixpath
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Iterable, Mapping

from helm_expander.core.cache import ChartCache
from helm_expander.core.credentials import Credentials, RepositoryCredentials
from helm_expander.core.errors import ConfigError, ExpanderError, NotFoundError
from helm_expander.core.git_client import GitClient
from helm_expander.core.git_loader import GitRepoSubstitution
from helm_expander.core.http_client import HttpGetter
from helm_expander.core.loader_base import LoaderConfig
from helm_expander.core.loader_factory import loader_for_kind, repository_for_resource
from helm_expander.core.namespace import apply_namespace_if_unset
from helm_expander.core.oci_client import RegistryClient
from helm_expander.core.renderer import Capabilities, HelmCliRenderer, Renderer
from helm_expander.models import RELEASE_GROUP, RELEASE_KIND
from helm_expander.models.resource import ResourceNode
from helm_expander.utils.manifest_parser import (
    as_mapping,
    parse_manifest,
    read_documents,
    resource_counts,
    write_documents,
)

logger = logging.getLogger(__name__)


def is_helm_release(node: ResourceNode) -> bool:
    return node.group == RELEASE_GROUP and node.kind == RELEASE_KIND


def _required_str(node: ResourceNode, path: str) -> str:
    value = node.get(path)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{path} must be a non-empty string in {node}")
    return value


def _optional_str(node: ResourceNode, path: str, default: str = "") -> str:
    value = node.get(path)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ConfigError(f"{path} must be a string in {node}")
    return value


@dataclass
class HelmReleaseSpec:
    """The fields of a HelmRelease that drive its expansion."""

    namespace: str
    name: str
    chart: str
    version: str
    source_kind: str
    source_name: str
    source_namespace: str
    source_api_version: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    target_namespace: str = ""
    release_name: str = ""

    @classmethod
    def from_node(cls, node: ResourceNode) -> HelmReleaseSpec:
        namespace = node.namespace
        target_namespace = _optional_str(node, "spec.targetNamespace", namespace)
        return cls(
            namespace=namespace,
            name=node.name,
            chart=_required_str(node, "spec.chart.spec.chart"),
            version=_optional_str(node, "spec.chart.spec.version"),
            source_kind=_required_str(node, "spec.chart.spec.sourceRef.kind"),
            source_name=_required_str(node, "spec.chart.spec.sourceRef.name"),
            source_namespace=_optional_str(node, "spec.chart.spec.sourceRef.namespace", namespace),
            source_api_version=_optional_str(node, "spec.chart.spec.sourceRef.apiVersion"),
            values=as_mapping(node.get("spec.values"), f"spec.values of {node}"),
            target_namespace=target_namespace,
            release_name=_optional_str(node, "spec.releaseName", f"{target_namespace}-{node.name}"),
        )

    def refers_to(self, node: ResourceNode) -> bool:
        return (
            node.kind == self.source_kind
            and node.name == self.source_name
            and node.namespace == self.source_namespace
            and (not self.source_api_version or node.api_version == self.source_api_version)
        )


def find_repository(nodes: Iterable[ResourceNode], release: HelmReleaseSpec) -> ResourceNode | None:
    for node in nodes:
        if release.refers_to(node):
            return node
    return None


class HelmReleaseExpander:
    """Expands HelmRelease resources found in a stream of documents.

    Every call to :meth:`expand` gets its own chart cache. Collaborators left
    as ``None`` use the production implementations (GitPython, oras, requests,
    boto3 and the ``helm`` binary).
    """

    def __init__(
        self,
        renderer: Renderer | None = None,
        git_client_factory: Callable[[], GitClient] | None = None,
        registry_client_factory: Callable[[bool], RegistryClient] | None = None,
        http_getter_factory: Callable[[RepositoryCredentials | None], HttpGetter] | None = None,
        ecr_login: Callable[[str], tuple[str, str]] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.renderer = renderer or HelmCliRenderer()
        self.git_client_factory = git_client_factory
        self.registry_client_factory = registry_client_factory
        self.http_getter_factory = http_getter_factory
        self.ecr_login = ecr_login
        self.environ = environ

    def expand(
        self,
        credentials: Credentials,
        input: IO[str],
        output: IO[str],
        kube_version: str | None = None,
        api_versions: Iterable[str] = (),
        max_expansions: int = 1,
        cache_dir: str | None = None,
        enable_memory_cache: bool = True,
        git_substitution: GitRepoSubstitution | None = None,
    ) -> None:
        """Read documents from ``input`` and write them, expanded, to ``output``."""
        nodes = read_documents(input)
        expanded = self.expand_nodes(
            credentials,
            nodes,
            kube_version=kube_version,
            api_versions=api_versions,
            max_expansions=max_expansions,
            cache_dir=cache_dir,
            enable_memory_cache=enable_memory_cache,
            git_substitution=git_substitution,
        )
        write_documents(expanded, output)

    def expand_nodes(
        self,
        credentials: Credentials,
        nodes: Iterable[ResourceNode],
        kube_version: str | None = None,
        api_versions: Iterable[str] = (),
        max_expansions: int = 1,
        cache_dir: str | None = None,
        enable_memory_cache: bool = True,
        git_substitution: GitRepoSubstitution | None = None,
    ) -> list[ResourceNode]:
        """Return ``nodes`` followed by the resources of each expansion round.

        Round one scans every input node for releases; later rounds scan only
        the resources produced by the round before. Stops after a round that
        produces nothing or after ``max_expansions`` rounds.
        """
        temp_root = None
        if not cache_dir:
            temp_root = tempfile.mkdtemp(prefix="chart-repo-cache-")
            cache_dir = temp_root
        cache = ChartCache(cache_dir, enable_memory_cache=enable_memory_cache)
        config = self._loader_config(cache, credentials, git_substitution)
        capabilities = Capabilities(kube_version=kube_version, api_versions=tuple(api_versions))

        try:
            all_nodes = list(nodes)
            to_scan = all_nodes
            for round_number in range(1, max_expansions + 1):
                produced = self._expand_round(config, all_nodes, to_scan, capabilities)
                logger.debug("Expansion round %d produced %s", round_number, resource_counts(produced) or "nothing")
                if not produced:
                    break
                all_nodes = all_nodes + produced
                to_scan = produced
            return all_nodes
        finally:
            cache.cleanup()
            if temp_root is not None:
                try:
                    shutil.rmtree(temp_root)
                except OSError as e:
                    logger.error("Unable to remove chart cache %s: %s", temp_root, e)

    def _loader_config(
        self,
        cache: ChartCache,
        credentials: Credentials,
        git_substitution: GitRepoSubstitution | None,
    ) -> LoaderConfig:
        overrides: dict[str, Any] = {}
        if self.git_client_factory is not None:
            overrides["git_client_factory"] = self.git_client_factory
        if self.registry_client_factory is not None:
            overrides["registry_client_factory"] = self.registry_client_factory
        if self.http_getter_factory is not None:
            overrides["http_getter_factory"] = self.http_getter_factory
        if self.ecr_login is not None:
            overrides["ecr_login"] = self.ecr_login
        return LoaderConfig(
            cache=cache,
            credentials=credentials,
            environ=self.environ,
            git_substitution=git_substitution,
            **overrides,
        )

    def _expand_round(
        self,
        config: LoaderConfig,
        all_nodes: list[ResourceNode],
        to_scan: list[ResourceNode],
        capabilities: Capabilities,
    ) -> list[ResourceNode]:
        produced: list[ResourceNode] = []
        for node in to_scan:
            if not is_helm_release(node):
                continue
            try:
                release = HelmReleaseSpec.from_node(node)
                produced.extend(self._expand_release(config, release, all_nodes, capabilities))
            except ExpanderError as e:
                raise e.wrap(f"unable to expand Helm release {node.namespace}/{node.name}") from e
        # sort() is stable, so equal keys keep render order
        produced.sort(key=ResourceNode.sort_key)
        return produced

    def _expand_release(
        self,
        config: LoaderConfig,
        release: HelmReleaseSpec,
        all_nodes: list[ResourceNode],
        capabilities: Capabilities,
    ) -> list[ResourceNode]:
        repo_node = find_repository(all_nodes, release)
        if repo_node is None:
            raise NotFoundError(
                f"missing chart repository for Helm release {release.namespace}/{release.name}"
            )

        repository = repository_for_resource(repo_node)
        loader = loader_for_kind(repository.kind, config)
        try:
            chart = loader.load_chart(repository, release.chart, release.version)
        except ExpanderError as e:
            raise e.wrap(f"unable to load chart for {repository}") from e

        logger.debug(
            "Rendering %s %s as %s in %s",
            chart.name, chart.version, release.release_name, release.target_namespace,
        )
        rendered = self.renderer.render(
            chart,
            release.values,
            release.release_name,
            release.target_namespace,
            capabilities,
        )

        results: list[ResourceNode] = []
        for key in sorted(rendered):
            text = rendered[key]
            if not text.strip() or posixpath.basename(key) == "NOTES.txt":
                continue
            try:
                documents = parse_manifest(text, source=key)
            except ExpanderError as e:
                raise e.wrap(f"unable to parse manifest {key}") from e
            for document in documents:
                document.head_comment = f"Source: {key}"
                results.append(document)
        return apply_namespace_if_unset(results, release.namespace)
