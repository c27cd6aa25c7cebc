"""Select the chart backend for a repository resource or a bare URL."""

from __future__ import annotations

from urllib.parse import urlsplit

from helm_expander.core.errors import ConfigError
from helm_expander.core.git_loader import GitLoader
from helm_expander.core.helm_loader import HelmLoader
from helm_expander.core.loader_base import ChartLoader, LoaderConfig
from helm_expander.core.oci_loader import OciLoader
from helm_expander.models import RepositoryKind
from helm_expander.models.repo import RepositoryRef
from helm_expander.models.resource import ResourceNode

_LOADERS: dict[RepositoryKind, type[ChartLoader]] = {
    RepositoryKind.GIT: GitLoader,
    RepositoryKind.HELM: HelmLoader,
    RepositoryKind.OCI: OciLoader,
}


def loader_kind_for_resource(node: ResourceNode) -> RepositoryKind:
    kind = node.kind
    if kind == "GitRepository":
        return RepositoryKind.GIT
    if kind == "OCIRepository":
        return RepositoryKind.OCI
    if kind == "HelmRepository":
        repo_type = node.get("spec.type")
        if repo_type is None:
            return RepositoryKind.HELM
        if not isinstance(repo_type, str):
            raise ConfigError(
                f"invalid value for spec.type for {kind} {node.namespace}/{node.name}: {repo_type!r}"
            )
        return RepositoryKind.OCI if repo_type == "oci" else RepositoryKind.HELM
    raise ConfigError(f"unknown kind {kind} for repository {node.namespace}/{node.name}")


def loader_kind_for_url(url: str) -> RepositoryKind:
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ConfigError(f"unable to parse chart repository URL {url}: {e}") from e
    if parts.scheme in ("http", "https"):
        # Git remotes over HTTPS are commonly written as https://git@host/...
        return RepositoryKind.GIT if parts.username == "git" else RepositoryKind.HELM
    if parts.scheme == "ssh":
        return RepositoryKind.GIT
    if parts.scheme == "oci":
        return RepositoryKind.OCI
    raise ConfigError(f"unknown type for repository URL {url}")


def loader_for_kind(kind: RepositoryKind, config: LoaderConfig) -> ChartLoader:
    return _LOADERS[kind](config)


def repository_for_resource(node: ResourceNode) -> RepositoryRef:
    return RepositoryRef.from_node(node, loader_kind_for_resource(node))


def loader_for_resource(node: ResourceNode, config: LoaderConfig) -> ChartLoader:
    return loader_for_kind(loader_kind_for_resource(node), config)


def loader_for_url(url: str, config: LoaderConfig) -> ChartLoader:
    return loader_for_kind(loader_kind_for_url(url), config)
