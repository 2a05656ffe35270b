from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from reprise.core.lifecycle import LifecycleController
from reprise.core.network import NetworkIdentityResolver
from reprise.core.registry import ReuseRegistry
from reprise.core.settings import RepriseSettings
from reprise.models.network import NetworkRef
from reprise.models.specification import BindMode, ContainerSpecification
from tests.helpers.fake_runtime import (
    FakeNetworkProvider,
    FakeRuntime,
    RecordingStartupCheck,
)


# --- Global Test Configuration ---


@pytest.fixture(autouse=True)
def clean_reprise_env(monkeypatch):
    """
    Clears REPRISE_* variables so a developer's shell cannot change test outcomes.
    """
    for name in (
        "REPRISE_REUSE_ENABLE",
        "REPRISE_STARTUP_TIMEOUT_SECONDS",
        "REPRISE_STARTUP_POLL_SECONDS",
        "REPRISE_LABEL_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)


# --- Core Fixtures ---


@pytest.fixture
def settings() -> RepriseSettings:
    """Settings with reuse enabled, as a developer machine opted into reuse."""
    return RepriseSettings(reuse_enabled=True, startup_timeout_seconds=5.0)


@pytest.fixture
def runtime(settings: RepriseSettings) -> FakeRuntime:
    """A shared in-memory daemon. Share it between controllers to simulate processes."""
    return FakeRuntime(settings=settings)


@pytest.fixture
def network_provider() -> FakeNetworkProvider:
    return FakeNetworkProvider()


@pytest.fixture
def resolver(
    network_provider: FakeNetworkProvider, settings: RepriseSettings
) -> NetworkIdentityResolver:
    return NetworkIdentityResolver(provider=network_provider, settings=settings)


@pytest.fixture
def registry(runtime: FakeRuntime) -> ReuseRegistry:
    return ReuseRegistry(runtime)


@pytest.fixture
def startup_check() -> RecordingStartupCheck:
    return RecordingStartupCheck()


@pytest.fixture
def controller(
    runtime: FakeRuntime,
    resolver: NetworkIdentityResolver,
    registry: ReuseRegistry,
    startup_check: RecordingStartupCheck,
    settings: RepriseSettings,
) -> LifecycleController:
    return LifecycleController(
        runtime=runtime,
        resolver=resolver,
        registry=registry,
        startup_check=startup_check,
        settings=settings,
    )


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    """
    A host directory holding an index.html, mounted read-only into nginx.
    """
    path = tmp_path / "content"
    path.mkdir(parents=True, exist_ok=True)
    (path / "index.html").write_text("<html><body>This worked</body></html>\n")
    return path


@pytest.fixture
def nginx_spec(content_dir: Path):
    """
    Factory for the nginx specification used across reuse tests.

    Each call builds a brand-new specification object; pass the network ref to
    attach it to.
    """

    def _make(network: NetworkRef, reuse: bool = True) -> ContainerSpecification:
        return (
            ContainerSpecification(image="nginx:1.9.4")
            .with_command("nginx", "-g", "daemon off;")
            .with_reuse(reuse)
            .with_network(network)
            .with_network_aliases("nginx")
            .with_exposed_ports(80)
            .with_bind_mount(content_dir, "/usr/share/nginx/html", BindMode.READ_ONLY)
        )

    return _make


@pytest.fixture
def cli_runner(runtime: FakeRuntime) -> CliRunner:
    """
    Provides a Typer CliRunner with get_runtime patched to use the shared fake daemon.
    """
    runner = CliRunner()
    with patch("reprise.cli.get_runtime", return_value=runtime):
        yield runner
