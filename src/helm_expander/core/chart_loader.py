"""Load charts from directories and archives, and write chart trees back out."""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path, PurePosixPath

import yaml

from helm_expander.core.errors import ConfigError
from helm_expander.models.chart import Chart, ChartDependency, ChartFile, ChartMetadata

logger = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
REQUIREMENTS_FILE = "requirements.yaml"

_SKIPPED_PARTS = frozenset({".git"})


def _load_yaml(data: bytes, name: str) -> dict:
    try:
        doc = yaml.safe_load(data.decode("utf-8")) or {}
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ConfigError(f"unable to parse {name}: {e}") from e
    if not isinstance(doc, dict):
        raise ConfigError(f"{name} must be a mapping")
    return doc


def load_files(files: list[ChartFile], source: str = "<archive>") -> Chart:
    """Build a chart from its files, named relative to the chart root."""
    by_name = {f.name: f for f in files}
    chart_file = by_name.get(CHART_FILE)
    if chart_file is None:
        raise ConfigError(f"{source}: {CHART_FILE} is missing")

    metadata = ChartMetadata.from_dict(_load_yaml(chart_file.data, f"{source}/{CHART_FILE}"))
    if not metadata.name:
        raise ConfigError(f"{source}: chart name is missing from {CHART_FILE}")

    # apiVersion v1 charts declare their dependencies in requirements.yaml
    requirements = by_name.get(REQUIREMENTS_FILE)
    if requirements is not None and not metadata.dependencies:
        doc = _load_yaml(requirements.data, f"{source}/{REQUIREMENTS_FILE}")
        metadata.dependencies = [ChartDependency.from_dict(d) for d in doc.get("dependencies") or []]

    values: dict = {}
    values_file = by_name.get(VALUES_FILE)
    if values_file is not None:
        values = _load_yaml(values_file.data, f"{source}/{VALUES_FILE}")

    return Chart(metadata=metadata, files=list(files), values=values)


def read_dir_files(path: Path) -> list[ChartFile]:
    files: list[ChartFile] = []
    for item in sorted(path.rglob("*")):
        relative = item.relative_to(path)
        if _SKIPPED_PARTS.intersection(relative.parts) or not item.is_file():
            continue
        files.append(ChartFile(name=relative.as_posix(), data=item.read_bytes()))
    return files


def load_dir(path: str | Path) -> Chart:
    """Load the chart rooted at directory ``path``."""
    path = Path(path)
    if not path.is_dir():
        raise ConfigError(f"chart directory {path} does not exist")
    return load_files(read_dir_files(path), str(path))


def read_archive_files(data: bytes, source: str = "<archive>") -> list[ChartFile]:
    """Extract a ``.tgz`` chart archive, dropping its top-level directory."""
    files: list[ChartFile] = []
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                parts = PurePosixPath(member.name).parts
                if len(parts) < 2 or member.name.startswith("/") or ".." in parts:
                    logger.debug("Skipping archive member %s of %s", member.name, source)
                    continue
                extracted = archive.extractfile(member)
                if extracted is None:
                    continue
                files.append(ChartFile(name="/".join(parts[1:]), data=extracted.read()))
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ConfigError(f"unable to read chart archive {source}: {e}") from e
    return files


def load_archive(data: bytes, source: str = "<archive>") -> Chart:
    return load_files(read_archive_files(data, source), source)


def write_chart_tree(chart: Chart, dest: Path) -> None:
    """Write ``chart`` to ``dest`` with attached dependencies under ``charts/``.

    An attached dependency replaces any bundled copy of the same chart.
    """
    attached = {dep.name for dep in chart.dependencies}
    for chart_file in chart.files:
        if _is_bundled_copy(chart_file.name, attached):
            continue
        target = dest / chart_file.name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(chart_file.data)
    for dep in chart.dependencies:
        write_chart_tree(dep, dest / "charts" / dep.name)


def _is_bundled_copy(name: str, attached: set[str]) -> bool:
    if not name.startswith("charts/"):
        return False
    rest = name[len("charts/"):]
    head = rest.split("/", 1)[0]
    if "/" in rest:
        return head in attached
    return head.endswith(".tgz") and any(head.startswith(f"{dep}-") for dep in attached)
