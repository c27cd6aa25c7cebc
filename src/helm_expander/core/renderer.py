"""Render a resolved chart into manifests.

The template engine itself is external. :class:`HelmCliRenderer` drives
``helm template`` on a materialized copy of the chart tree.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml

from helm_expander.config.settings import settings
from helm_expander.core.chart_loader import write_chart_tree
from helm_expander.core.errors import RenderError
from helm_expander.models.chart import Chart

logger = logging.getLogger(__name__)

SOURCE_MARKER = "# Source: "


@dataclass(frozen=True)
class Capabilities:
    kube_version: str | None = None
    api_versions: tuple[str, ...] = field(default_factory=tuple)


class Renderer(Protocol):
    def render(
        self,
        chart: Chart,
        values: dict[str, Any],
        release_name: str,
        namespace: str,
        capabilities: Capabilities,
    ) -> dict[str, str]:
        """Return rendered template text keyed by template path."""


def split_sources(output: str) -> dict[str, str]:
    """Split ``helm template`` output into documents keyed by ``# Source:`` path.

    Several documents rendered from the same template are joined with ``---``.
    """
    rendered: dict[str, list[str]] = {}
    key: str | None = None
    lines: list[str] = []
    for line in output.splitlines(keepends=True) + ["---\n"]:
        if line.rstrip() == "---":
            document = "".join(lines)
            if key is not None and document.strip():
                rendered.setdefault(key, []).append(document)
            key, lines = None, []
        elif key is None and line.startswith(SOURCE_MARKER):
            key = line[len(SOURCE_MARKER):].strip()
        elif key is not None:
            lines.append(line)
    return {k: "---\n".join(documents) for k, documents in rendered.items()}


class HelmCliRenderer:
    """Renderer backed by the ``helm`` binary.

    Testable by mocking subprocess.run.
    """

    def __init__(self, helm_binary: str | None = None):
        self.helm_binary = helm_binary or settings.helm_binary

    def _run(self, argv: list[str]) -> subprocess.CompletedProcess:
        logger.debug("Running %s", " ".join(argv))
        try:
            cp = subprocess.run(argv, check=False, text=True, capture_output=True)
        except OSError as e:
            raise RenderError(f"unable to run {argv[0]}: {e}") from e
        if cp.returncode != 0:
            stderr = getattr(cp, "stderr", "") or ""
            raise RenderError(f"helm failed (rc={cp.returncode}): {stderr.strip()}")
        return cp

    def render(
        self,
        chart: Chart,
        values: dict[str, Any],
        release_name: str,
        namespace: str,
        capabilities: Capabilities,
    ) -> dict[str, str]:
        with tempfile.TemporaryDirectory(prefix="hexpand-render-") as tmp:
            chart_dir = Path(tmp) / chart.name
            values_file = Path(tmp) / "values.yaml"
            try:
                write_chart_tree(chart, chart_dir)
                values_file.write_text(yaml.safe_dump(values or {}, sort_keys=False), encoding="utf-8")
            except OSError as e:
                raise RenderError(f"unable to write chart {chart.name} to {tmp}: {e}") from e

            argv = [
                self.helm_binary, "template", release_name, str(chart_dir),
                "--namespace", namespace,
                "--values", str(values_file),
            ]
            if capabilities.kube_version:
                argv += ["--kube-version", capabilities.kube_version]
            for api_version in capabilities.api_versions:
                argv += ["--api-versions", api_version]

            cp = self._run(argv)
        return split_sources(cp.stdout or "")
