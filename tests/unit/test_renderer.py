"""Tests for the helm CLI renderer. subprocess.run is mocked throughout."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest
import yaml

from helm_expander.core.errors import RenderError
from helm_expander.core.renderer import Capabilities, HelmCliRenderer, split_sources
from helm_expander.models.chart import Chart, ChartFile, ChartMetadata


class DummyCP:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


_OUTPUT = """---
# Source: test-chart/templates/configmap.yaml
apiVersion: v1
kind: ConfigMap
metadata:
  name: a
---
# Source: test-chart/templates/service.yaml
apiVersion: v1
kind: Service
metadata:
  name: b
---
# Source: test-chart/templates/configmap.yaml
apiVersion: v1
kind: ConfigMap
metadata:
  name: c
"""


def _chart() -> Chart:
    return Chart(
        metadata=ChartMetadata(name="test-chart", version="0.1.0"),
        files=[
            ChartFile(name="Chart.yaml", data=b"apiVersion: v2\nname: test-chart\nversion: 0.1.0\n"),
            ChartFile(name="templates/configmap.yaml", data=b"kind: ConfigMap\n"),
        ],
    )


class TestSplitSources:
    def test_groups_by_source(self) -> None:
        rendered = split_sources(_OUTPUT)
        assert sorted(rendered) == ["test-chart/templates/configmap.yaml", "test-chart/templates/service.yaml"]
        configmaps = list(yaml.safe_load_all(rendered["test-chart/templates/configmap.yaml"]))
        assert [d["metadata"]["name"] for d in configmaps] == ["a", "c"]

    def test_documents_without_source_dropped(self) -> None:
        assert split_sources("kind: A\n---\n") == {}

    def test_empty(self) -> None:
        assert split_sources("") == {}


class TestHelmCliRenderer:
    def test_argv_and_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: dict = {}

        def fake_run(argv, check, text, capture_output):
            seen["argv"] = argv
            values_file = Path(argv[argv.index("--values") + 1])
            seen["values"] = yaml.safe_load(values_file.read_text())
            chart_dir = Path(argv[3])
            seen["files"] = sorted(p.relative_to(chart_dir).as_posix() for p in chart_dir.rglob("*") if p.is_file())
            return DummyCP(stdout=_OUTPUT)

        monkeypatch.setattr(subprocess, "run", fake_run)
        renderer = HelmCliRenderer(helm_binary="/usr/bin/helm")
        rendered = renderer.render(
            _chart(),
            {"data": {"foo": "baz"}},
            "testns-test",
            "testns",
            Capabilities(kube_version="1.29", api_versions=("monitoring.coreos.com/v1", "x/v1")),
        )

        argv = seen["argv"]
        assert argv[:3] == ["/usr/bin/helm", "template", "testns-test"]
        assert argv[argv.index("--namespace") + 1] == "testns"
        assert argv[argv.index("--kube-version") + 1] == "1.29"
        assert [argv[i + 1] for i, a in enumerate(argv) if a == "--api-versions"] == [
            "monitoring.coreos.com/v1", "x/v1",
        ]
        assert seen["values"] == {"data": {"foo": "baz"}}
        assert seen["files"] == ["Chart.yaml", "templates/configmap.yaml"]
        assert "test-chart/templates/service.yaml" in rendered

    def test_no_kube_version_flag_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: dict = {}

        def fake_run(argv, **kwargs):
            seen["argv"] = argv
            return DummyCP()

        monkeypatch.setattr(subprocess, "run", fake_run)
        HelmCliRenderer(helm_binary="helm").render(_chart(), {}, "r", "ns", Capabilities())
        assert "--kube-version" not in seen["argv"]
        assert "--api-versions" not in seen["argv"]

    def test_nonzero_exit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(subprocess, "run", lambda argv, **kw: DummyCP(returncode=1, stderr="parse error\n"))
        with pytest.raises(RenderError, match=r"helm failed \(rc=1\): parse error"):
            HelmCliRenderer(helm_binary="helm").render(_chart(), {}, "r", "ns", Capabilities())

    def test_missing_binary(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_run(argv, **kwargs):
            raise FileNotFoundError(2, "No such file or directory")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(RenderError, match="unable to run helm"):
            HelmCliRenderer(helm_binary="helm").render(_chart(), {}, "r", "ns", Capabilities())

    def test_chart_write_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail(argv, **kwargs):
            raise AssertionError("helm must not run")

        monkeypatch.setattr(subprocess, "run", fail)
        chart = _chart()
        chart.files.append(ChartFile(name="Chart.yaml/extra.yaml", data=b""))
        with pytest.raises(RenderError, match="unable to write chart test-chart"):
            HelmCliRenderer(helm_binary="helm").render(chart, {}, "r", "ns", Capabilities())
