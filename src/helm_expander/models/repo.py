"""Repository references and chart cache identities."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from helm_expander.core.errors import ConfigError
from helm_expander.models import RepositoryKind
from helm_expander.models.resource import ResourceNode

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse a Go-style duration such as ``90s`` or ``1m30s`` into seconds."""
    text = value.strip()
    if text in ("0", ""):
        return 0.0
    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ConfigError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


@dataclass(frozen=True)
class GitReference:
    branch: str = ""
    tag: str = ""
    semver: str = ""
    name: str = ""
    commit: str = ""

    @classmethod
    def from_dict(cls, d: dict | None) -> GitReference:
        if not d:
            return cls()
        return cls(
            branch=str(d.get("branch", "") or ""),
            tag=str(d.get("tag", "") or ""),
            semver=str(d.get("semver", "") or ""),
            name=str(d.get("name", "") or ""),
            commit=str(d.get("commit", "") or ""),
        )

    @property
    def is_empty(self) -> bool:
        return not any(self.slots())

    def normalized(self, default_branch: str = "master") -> GitReference:
        """Return this reference, or ``{branch: default_branch}`` if it is empty."""
        if self.is_empty:
            return GitReference(branch=default_branch)
        return self

    def slots(self) -> tuple[str, str, str, str, str]:
        return (self.branch, self.tag, self.semver, self.name, self.commit)

    @property
    def is_pinned(self) -> bool:
        """True if the reference denotes an immutable revision."""
        return bool(
            self.commit
            or self.tag
            or self.semver
            or self.name.startswith("refs/tags/")
        )

    @property
    def dir_name(self) -> str:
        """Checkout directory name; distinct for every combination of slots."""
        return "#".join(slot.replace("/", "%") for slot in self.slots())

    def __str__(self) -> str:
        parts = [
            f"{label}={value}"
            for label, value in zip(("branch", "tag", "semver", "name", "commit"), self.slots())
            if value
        ]
        return ",".join(parts) or "<default>"


@dataclass(frozen=True)
class RepositoryRef:
    """A chart source, parsed from a repository resource or a bare URL."""

    kind: RepositoryKind
    url: str
    resource_kind: str = ""
    api_version: str = ""
    namespace: str = ""
    name: str = ""
    git_ref: GitReference = field(default_factory=GitReference)
    timeout: float | None = None
    insecure: bool = False
    provider: str = ""

    @classmethod
    def from_node(cls, node: ResourceNode, kind: RepositoryKind) -> RepositoryRef:
        url = node.get("spec.url")
        if not isinstance(url, str) or not url:
            raise ConfigError(f"missing spec.url for {node}")

        timeout: float | None = None
        raw_timeout: Any = node.get("spec.timeout")
        if raw_timeout is not None:
            try:
                timeout = parse_duration(str(raw_timeout))
            except ConfigError as e:
                raise e.wrap(f"invalid spec.timeout for {node}") from e

        raw_ref = node.get("spec.ref")
        if raw_ref is not None and not isinstance(raw_ref, dict):
            raise ConfigError(f"invalid spec.ref for {node}: {raw_ref!r}")

        insecure = node.get("spec.insecure", False)
        if insecure is None:
            insecure = False
        if not isinstance(insecure, bool):
            raise ConfigError(f"invalid spec.insecure for {node}: {insecure!r}")

        return cls(
            kind=kind,
            url=url,
            resource_kind=node.kind,
            api_version=node.api_version,
            namespace=node.namespace,
            name=node.name,
            git_ref=GitReference.from_dict(raw_ref) if kind == RepositoryKind.GIT else GitReference(),
            timeout=timeout,
            insecure=insecure,
            provider=str(node.get("spec.provider", "") or ""),
        )

    @classmethod
    def from_url(cls, kind: RepositoryKind, url: str) -> RepositoryRef:
        return cls(kind=kind, url=url)

    @property
    def is_resource(self) -> bool:
        return bool(self.resource_kind)

    def __str__(self) -> str:
        if self.is_resource:
            return f"{self.resource_kind} {self.namespace}/{self.name}"
        return self.url


@dataclass(frozen=True)
class ChartIdentity:
    """Memory cache key of a resolved chart.

    ``ref`` carries the backend-specific reference tuple (all five Git
    reference slots for Git, empty for Helm and OCI).
    """

    url: str
    chart: str
    version: str = ""
    ref: tuple[str, ...] = ()
