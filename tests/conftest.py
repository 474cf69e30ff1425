"""Root pytest configuration for chartpush tests."""
import io
import tarfile
from pathlib import Path

import pytest

from chartpush.models import ChartMetadata, RepositoryTarget
from chartpush.settings import Settings

from .fakes import FakeHttpExecutor, FakeRegistry

REPO_URL = "https://r.example.com/myuser"

CHART_YAML = """\
apiVersion: v2
name: test-chart
version: 0.0.1
description: A Helm chart for Kubernetes
home: https://example.com/test-chart
sources:
  - https://github.com/example/test-chart
maintainers:
  - name: Jane Doe
    email: jane@example.com
type: application
appVersion: "1.16.0"
"""

_ENV_VARS = [
    "CHARTPUSH_REGISTRY_URL",
    "CHARTPUSH_REGISTRY_USERNAME",
    "CHARTPUSH_REGISTRY_PASSWORD",
    "CHARTPUSH_REGISTRY_INSECURE",
    "CHARTPUSH_HTTP_TIMEOUT",
    "CHARTPUSH_HTTP_RETRY",
    "CHARTPUSH_PARALLEL_UPLOADS",
]


def build_chart_tgz(path: Path, chart_yaml: str = CHART_YAML, chart_dir: str = "test-chart",
                    extra_files=None) -> Path:
    """Write a packaged chart the way `helm package` lays it out."""
    files = {f"{chart_dir}/Chart.yaml": chart_yaml, f"{chart_dir}/values.yaml": "replicaCount: 1\n"}
    files.update(extra_files or {})
    with tarfile.open(path, "w:gz") as tar:
        for name, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return path


# Isolate tests from the developer's environment and Docker config
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Clear chartpush environment variables and point Docker config at nothing."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CHARTPUSH_DOCKER_CONFIG", str(tmp_path / "no-docker-config.json"))


@pytest.fixture
def settings(tmp_path):
    """Standard test settings."""
    return Settings(
        registry_url=REPO_URL,
        registry_user="myuser",
        registry_pass="secret",
        docker_config=tmp_path / "no-docker-config.json",
    )


@pytest.fixture
def target():
    """Push target with credentials."""
    return RepositoryTarget(url=REPO_URL, username="myuser", password="secret")


@pytest.fixture
def fake_http():
    """Scripted HTTP executor."""
    return FakeHttpExecutor()


@pytest.fixture
def fake_registry():
    """In-memory registry without authentication."""
    return FakeRegistry()


@pytest.fixture
def chart_tgz(tmp_path):
    """Packaged test-chart 0.0.1."""
    return build_chart_tgz(tmp_path / "test-chart-0.0.1.tgz")


@pytest.fixture
def metadata():
    """Metadata matching the chart_tgz fixture."""
    return ChartMetadata(
        name="test-chart",
        version="0.0.1",
        description="A Helm chart for Kubernetes",
        home="https://example.com/test-chart",
        sources=["https://github.com/example/test-chart"],
        maintainers=[{"name": "Jane Doe", "email": "jane@example.com"}],
    )
