"""Two-tier chart cache: per-invocation memory map plus on-disk chart trees."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from helm_expander.config.settings import settings
from helm_expander.core.errors import CacheCorruptionError
from helm_expander.models import RepositoryKind
from helm_expander.models.chart import Chart, ChartFile
from helm_expander.models.repo import ChartIdentity

logger = logging.getLogger(__name__)


def normalize_url(url: str, kind: RepositoryKind | None = None) -> str:
    """OCI URLs lose trailing slashes, every other URL ends with exactly one."""
    if kind == RepositoryKind.OCI or url.startswith("oci://"):
        return url.rstrip("/")
    return url.rstrip("/") + "/"


def repository_dir_name(url: str) -> str:
    """Flatten a repository URL into one directory name."""
    return url.rstrip("/").replace("/", "#")


class ChartCache:
    """Chart cache scoped to one top-level expansion.

    The memory tier lives only as long as this object. The disk tier is
    rooted at ``root``; everything under ``<root>/ephemeral`` is removed by
    :meth:`cleanup`.
    """

    def __init__(self, root: str | Path, enable_memory_cache: bool = True):
        self.root = Path(root)
        self.enable_memory_cache = enable_memory_cache
        self._charts: dict[ChartIdentity, Chart] = {}

    @property
    def ephemeral_root(self) -> Path:
        return self.root / settings.ephemeral_dir_name

    def get(self, identity: ChartIdentity) -> Chart | None:
        if not self.enable_memory_cache:
            return None
        chart = self._charts.get(identity)
        if chart is not None:
            logger.debug("Memory cache hit for %s", identity)
        return chart

    def put(self, identity: ChartIdentity, chart: Chart) -> None:
        if self.enable_memory_cache:
            self._charts[identity] = chart

    def repo_path(self, url: str, ephemeral: bool = False) -> Path:
        base = self.ephemeral_root if ephemeral else self.root
        return base / repository_dir_name(url)

    def cleanup(self) -> None:
        """Remove the ephemeral subtree. Failures are logged, never raised."""
        path = self.ephemeral_root
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.debug("Removed ephemeral cache %s", path)
        except OSError as e:
            logger.error("Unable to remove ephemeral cache %s: %s", path, e)


def save_chart_files(chart_dir: Path, files: list[ChartFile]) -> None:
    """Persist raw chart files so later runs can load ``chart_dir`` directly."""
    try:
        for chart_file in files:
            target = chart_dir / chart_file.name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(chart_file.data)
    except OSError as e:
        shutil.rmtree(chart_dir, ignore_errors=True)
        raise CacheCorruptionError(f"unable to write chart to cache {chart_dir}: {e}") from e


def evict(chart_dir: Path) -> None:
    if chart_dir.exists():
        shutil.rmtree(chart_dir)
