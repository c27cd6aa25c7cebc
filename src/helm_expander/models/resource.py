"""Kubernetes resource documents as read from and written to YAML streams."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_MISSING = object()


@dataclass
class ResourceNode:
    """One parsed YAML document plus the comment written above it."""

    raw: dict[str, Any] = field(default_factory=dict)
    head_comment: str = ""

    @property
    def api_version(self) -> str:
        return self._str(self.raw.get("apiVersion"))

    @property
    def kind(self) -> str:
        return self._str(self.raw.get("kind"))

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.raw.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str:
        return self._str(self.metadata.get("name"))

    @property
    def namespace(self) -> str:
        return self._str(self.metadata.get("namespace"))

    @property
    def group(self) -> str:
        """API group of the resource, empty for the core group."""
        group, sep, _ = self.api_version.rpartition("/")
        return group if sep else ""

    def get(self, path: str, default: Any = None) -> Any:
        """Look up a dotted field path such as ``spec.chart.spec.chart``."""
        value: Any = self.raw
        for part in path.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default
        return value

    def sort_key(self) -> tuple[str, str, str, str]:
        return (self.kind, self.api_version, self.namespace, self.name)

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"

    @staticmethod
    def _str(value: Any) -> str:
        return value if isinstance(value, str) else ""
