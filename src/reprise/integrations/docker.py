"""
Reprise Docker Integration

Docker-backed implementations of the runtime collaborator contracts. Reuse
identity is stored as labels on the containers themselves, so a later process
can read it back through ``list_live_containers`` without any local state.

-   **`DockerRuntime`**: lists labelled running containers, creates containers
    (attaching them to a network with aliases) and removes them.
-   **`DockerNetworkProvider`**: creates bridge networks and finds them again
    through a key label.
-   **`RunningStartupCheck`**: polls until the container reports ``running``.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import docker
from docker.errors import APIError, ImageNotFound, NotFound
from docker.types import Mount

from reprise.core.errors import (
    ContainerConflictError,
    CreationFailedError,
    NotFoundError,
    StartupFailedError,
    StartupTimeoutError,
)
from reprise.core.settings import RepriseSettings
from reprise.integrations.runtime import (
    ContainerRuntime,
    LiveContainer,
    NetworkProvider,
    StartupCheck,
)
from reprise.models.specification import BindMode, ContainerSpecification

logger = logging.getLogger(__name__)

_CONFLICT = 409


def _client_or_env(client: Optional[Any]) -> Any:
    # Unit tests inject a mock client; everything else talks to the local daemon.
    if client is not None:
        return client
    return docker.from_env()


def parse_docker_timestamp(value: Optional[str]) -> datetime:
    """
    Parse Docker's RFC 3339 timestamps, which carry nanosecond precision.

    Unparseable values map to the epoch so they sort first and stay
    deterministic.
    """
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    text = value.strip().replace("Z", "+00:00")
    head, sep, rest = text.partition(".")
    if sep:
        digits = ""
        for ch in rest:
            if not ch.isdigit():
                break
            digits += ch
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Could not parse docker timestamp {value!r}")
        return datetime.fromtimestamp(0, tz=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DockerRuntime(ContainerRuntime):
    """
    ``ContainerRuntime`` on top of the Docker SDK.

    Attributes
    ----------
    client : docker.client.DockerClient
        The Docker client instance used to communicate with the Docker daemon.
    settings : RepriseSettings
        Supplies the label names reuse identity is stored under.
    pull_missing : bool
        If True, an image missing locally is pulled once before giving up.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        settings: Optional[RepriseSettings] = None,
        pull_missing: bool = True,
    ) -> None:
        self.client = _client_or_env(client)
        self.settings = settings or RepriseSettings.from_env()
        self.pull_missing = pull_missing

    def list_live_containers(self) -> List[LiveContainer]:
        containers = self.client.containers.list(
            filters={"label": self.settings.fingerprint_label, "status": "running"}
        )
        live = []
        for container in containers:
            labels = container.labels or {}
            live.append(
                LiveContainer(
                    runtime_id=container.id,
                    fingerprint=labels.get(self.settings.fingerprint_label),
                    canonical=labels.get(self.settings.canonical_label) or None,
                    created_at=self._created_at(container, labels),
                    name=getattr(container, "name", None),
                )
            )
        return live

    def create_container(
        self,
        spec: ContainerSpecification,
        *,
        network_id: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
    ) -> str:
        create_kwargs = dict(
            command=list(spec.command) or None,
            environment=spec.env,
            mounts=[
                Mount(
                    target=m.container_path,
                    source=m.host_path,
                    type="bind",
                    read_only=m.mode is BindMode.READ_ONLY,
                )
                for m in spec.bind_mounts
            ],
            ports={f"{port}/tcp": None for port in sorted(spec.exposed_ports)},
            labels=dict(labels or {}),
            name=name,
            detach=True,
        )

        logger.info(f"🐳 Creating Docker container: {spec.image} {list(spec.command)}")
        container = self._create(spec.image, name, create_kwargs)

        try:
            if network_id:
                network = self.client.networks.get(network_id)
                network.connect(container, aliases=list(spec.network_aliases) or None)
            container.start()
        except (APIError, NotFound) as e:
            logger.error(f"Docker start failed for {container.id[:12]}: {e}")
            try:
                container.remove(force=True)
            except APIError:
                logger.warning(f"Could not clean up container {container.id[:12]}")
            raise CreationFailedError(
                f"Could not start container for {spec.image}: {e}"
            ) from e
        return container.id

    def remove_container(self, runtime_id: str) -> None:
        try:
            container = self.client.containers.get(runtime_id)
            container.remove(force=True)
        except NotFound as e:
            raise NotFoundError(f"Container {runtime_id} not found") from e

    # --- Internals ---

    def _create(self, image: str, name: Optional[str], kwargs: dict) -> Any:
        try:
            try:
                return self.client.containers.create(image, **kwargs)
            except ImageNotFound:
                if not self.pull_missing:
                    raise
                logger.info(f"🐳 Pulling missing image {image}")
                self.client.images.pull(image)
                return self.client.containers.create(image, **kwargs)
        except ImageNotFound as e:
            raise CreationFailedError(f"Image not found: {image}") from e
        except APIError as e:
            if name and getattr(e, "status_code", None) == _CONFLICT:
                raise ContainerConflictError(name, self._lookup_id(name)) from e
            raise CreationFailedError(
                f"Docker rejected container for {image}: {e}"
            ) from e

    def _lookup_id(self, name: str) -> Optional[str]:
        try:
            return self.client.containers.get(name).id
        except (NotFound, APIError):
            return None

    def _created_at(self, container: Any, labels: Mapping[str, str]) -> datetime:
        raw_ns = labels.get(self.settings.created_label)
        if raw_ns:
            try:
                return datetime.fromtimestamp(int(raw_ns) / 1e9, tz=timezone.utc)
            except ValueError:
                logger.warning(f"Ignoring malformed creation label {raw_ns!r}")
        attrs = getattr(container, "attrs", None) or {}
        return parse_docker_timestamp(attrs.get("Created"))


class DockerNetworkProvider(NetworkProvider):
    def __init__(
        self,
        client: Optional[Any] = None,
        settings: Optional[RepriseSettings] = None,
        driver: str = "bridge",
    ) -> None:
        self.client = _client_or_env(client)
        self.settings = settings or RepriseSettings.from_env()
        self.driver = driver

    def create_network(
        self,
        name: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> str:
        network_name = name or f"reprise-{uuid.uuid4().hex[:12]}"
        network = self.client.networks.create(
            network_name, driver=self.driver, labels=dict(labels or {})
        )
        logger.debug(f"Created docker network {network_name} ({network.id[:12]})")
        return network.id

    def find_network(self, key: str) -> Optional[str]:
        networks = self.client.networks.list(
            filters={"label": f"{self.settings.network_key_label}={key}"}
        )
        if not networks:
            return None
        # Concurrent first runs may have created several; the oldest wins.
        oldest = min(
            networks,
            key=lambda n: (parse_docker_timestamp((n.attrs or {}).get("Created")), n.id),
        )
        return oldest.id

    def remove_network(self, stable_id: str) -> None:
        try:
            self.client.networks.get(stable_id).remove()
        except NotFound as e:
            raise NotFoundError(f"Network {stable_id} not found") from e


class RunningStartupCheck(StartupCheck):
    """Waits until the container's status is ``running``."""

    def __init__(self, client: Optional[Any] = None, poll_seconds: float = 0.5) -> None:
        self.client = _client_or_env(client)
        self.poll_seconds = poll_seconds

    def await_ready(self, runtime_id: str, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while True:
            try:
                container = self.client.containers.get(runtime_id)
            except NotFound as e:
                raise StartupFailedError(f"Container {runtime_id} disappeared") from e
            status = getattr(container, "status", None)
            if status == "running":
                return
            if status in {"exited", "dead"}:
                raise StartupFailedError(
                    f"Container {runtime_id[:12]} stopped with status '{status}'"
                )
            if time.monotonic() >= deadline:
                raise StartupTimeoutError(
                    f"Container {runtime_id[:12]} not running after {timeout:.1f}s"
                )
            time.sleep(self.poll_seconds)
