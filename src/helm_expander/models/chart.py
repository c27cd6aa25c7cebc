"""Chart metadata and chart tree models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from helm_expander.core.loader_base import ChartLoader
    from helm_expander.models.repo import RepositoryRef


@dataclass
class ChartDependency:
    name: str = ""
    version: str = ""
    repository: str = ""
    condition: str = ""
    alias: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> ChartDependency:
        return cls(
            name=str(d.get("name", "") or ""),
            version=str(d.get("version", "") or ""),
            repository=str(d.get("repository", "") or ""),
            condition=str(d.get("condition", "") or ""),
            alias=str(d.get("alias", "") or ""),
        )


@dataclass
class ChartMetadata:
    name: str = ""
    version: str = ""
    app_version: str = ""
    description: str = ""
    api_version: str = ""
    chart_type: str = ""
    dependencies: list[ChartDependency] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict) -> ChartMetadata:
        if not d:
            return cls()
        return cls(
            name=str(d.get("name", "") or ""),
            version=str(d.get("version", "") or ""),
            app_version=str(d.get("appVersion", "") or ""),
            description=d.get("description", "") or "",
            api_version=d.get("apiVersion", "") or "",
            chart_type=d.get("type", "") or "",
            dependencies=[ChartDependency.from_dict(dep) for dep in d.get("dependencies") or []],
            annotations=d.get("annotations") or {},
        )


@dataclass
class ChartFile:
    """A file of a chart, named relative to the chart root."""

    name: str
    data: bytes


@dataclass
class Chart:
    """A loaded chart and the dependency charts attached to it.

    ``files`` holds every file of the chart, including bundled sub-charts
    under ``charts/``.  Attached dependencies are charts resolved from a
    repository and are rendered in place of any bundled copy.
    """

    metadata: ChartMetadata
    files: list[ChartFile] = field(default_factory=list)
    values: dict[str, Any] = field(default_factory=dict)
    dependencies: list[Chart] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def templates(self) -> list[ChartFile]:
        return [f for f in self.files if f.name.startswith("templates/")]

    def add_dependency(self, chart: Chart) -> None:
        self.dependencies.append(chart)

    def bundles(self, chart_name: str) -> bool:
        """True if a sub-chart named ``chart_name`` ships inside ``charts/``."""
        directory = f"charts/{chart_name}/"
        archive = f"charts/{chart_name}-"
        return any(
            f.name.startswith(directory) or (f.name.startswith(archive) and f.name.endswith(".tgz"))
            for f in self.files
        )


@dataclass
class ChartContext:
    """Where a Git-backed parent chart was materialized.

    Passed down to dependency resolution so that relative dependencies are
    read from the same checkout through the loader that produced the parent.
    """

    local_path: Path
    chart_name: str
    loader: ChartLoader
    repository: RepositoryRef | None
