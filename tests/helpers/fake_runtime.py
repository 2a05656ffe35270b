"""
In-memory stand-ins for the runtime collaborators.

They behave like a container daemon that keeps state for the lifetime of the
test: containers carry labels, names are exclusive, networks carry labels.
Sharing one ``FakeRuntime`` between two controllers simulates two test
processes talking to the same daemon.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Set

from reprise.core.errors import (
    ContainerConflictError,
    CreationFailedError,
    NotFoundError,
    StartupFailedError,
)
from reprise.core.settings import RepriseSettings
from reprise.integrations.runtime import (
    ContainerRuntime,
    LiveContainer,
    NetworkProvider,
    StartupCheck,
)
from reprise.models.specification import ContainerSpecification

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex + uuid.uuid4().hex


@dataclass
class FakeContainer:
    runtime_id: str
    image: str
    labels: Dict[str, str]
    created_at: datetime
    name: Optional[str] = None
    network_id: Optional[str] = None
    aliases: List[str] = field(default_factory=list)
    running: bool = True


class FakeRuntime(ContainerRuntime):
    def __init__(self, settings: Optional[RepriseSettings] = None) -> None:
        self.settings = settings or RepriseSettings(reuse_enabled=True)
        self.containers: Dict[str, FakeContainer] = {}
        self.create_calls: List[dict] = []
        self.remove_calls: List[str] = []
        self.list_calls = 0
        self.failing_images: Set[str] = set()
        self.hidden: Set[str] = set()

    # --- ContainerRuntime ---

    def list_live_containers(self) -> List[LiveContainer]:
        self.list_calls += 1
        live = []
        for c in self.containers.values():
            if not c.running or c.runtime_id in self.hidden:
                continue
            fp = c.labels.get(self.settings.fingerprint_label)
            if not fp:
                continue
            live.append(
                LiveContainer(
                    runtime_id=c.runtime_id,
                    fingerprint=fp,
                    canonical=c.labels.get(self.settings.canonical_label) or None,
                    created_at=c.created_at,
                    name=c.name,
                )
            )
        self.hidden.clear()
        return live

    def create_container(
        self,
        spec: ContainerSpecification,
        *,
        network_id: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
    ) -> str:
        self.create_calls.append(
            {"spec": spec, "network_id": network_id, "labels": dict(labels or {}), "name": name}
        )
        if spec.image in self.failing_images:
            raise CreationFailedError(f"Image not found: {spec.image}")
        for mount in spec.bind_mounts:
            if not os.path.exists(mount.host_path):
                raise CreationFailedError(f"Bind source does not exist: {mount.host_path}")
        if name:
            for c in self.containers.values():
                if c.name == name:
                    raise ContainerConflictError(name, c.runtime_id)

        labels = dict(labels or {})
        created_ns = labels.get(self.settings.created_label)
        created_at = (
            datetime.fromtimestamp(int(created_ns) / 1e9, tz=timezone.utc)
            if created_ns
            else datetime.now(timezone.utc)
        )
        container = FakeContainer(
            runtime_id=_new_id(),
            image=spec.image,
            labels=labels,
            created_at=created_at,
            name=name,
            network_id=network_id,
            aliases=list(spec.network_aliases),
        )
        self.containers[container.runtime_id] = container
        return container.runtime_id

    def remove_container(self, runtime_id: str) -> None:
        self.remove_calls.append(runtime_id)
        if runtime_id not in self.containers:
            raise NotFoundError(f"Container {runtime_id} not found")
        del self.containers[runtime_id]

    # --- Test controls ---

    def seed(
        self,
        fingerprint: str,
        *,
        created_at: datetime = EPOCH,
        canonical: Optional[str] = None,
        runtime_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> str:
        """Place a labelled, running container directly into the daemon."""
        labels = {self.settings.fingerprint_label: fingerprint}
        if canonical is not None:
            labels[self.settings.canonical_label] = canonical
        container = FakeContainer(
            runtime_id=runtime_id or _new_id(),
            image="seeded",
            labels=labels,
            created_at=created_at,
            name=name,
        )
        self.containers[container.runtime_id] = container
        return container.runtime_id

    def kill(self, runtime_id: str) -> None:
        """Make a container vanish behind Reprise's back."""
        self.containers.pop(runtime_id, None)

    def hide_once(self, runtime_id: str) -> None:
        """Leave ``runtime_id`` out of the next listing only."""
        self.hidden.add(runtime_id)


class FakeNetworkProvider(NetworkProvider):
    def __init__(self) -> None:
        self.networks: Dict[str, Dict[str, str]] = {}
        self.created_at: Dict[str, datetime] = {}
        self.create_calls: List[Optional[str]] = []
        self.removed: List[str] = []

    def create_network(
        self,
        name: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> str:
        self.create_calls.append(name)
        stable_id = _new_id()
        self.networks[stable_id] = dict(labels or {})
        self.created_at[stable_id] = EPOCH + timedelta(seconds=len(self.created_at))
        return stable_id

    def find_network(self, key: str) -> Optional[str]:
        matches = [
            nid for nid, labels in self.networks.items() if key in labels.values()
        ]
        if not matches:
            return None
        return min(matches, key=lambda nid: (self.created_at[nid], nid))

    def remove_network(self, stable_id: str) -> None:
        if stable_id not in self.networks:
            raise NotFoundError(f"Network {stable_id} not found")
        del self.networks[stable_id]
        self.removed.append(stable_id)


class RecordingStartupCheck(StartupCheck):
    def __init__(self, fail: bool = False) -> None:
        self.calls: List[tuple] = []
        self.fail = fail

    def await_ready(self, runtime_id: str, timeout: float) -> None:
        self.calls.append((runtime_id, timeout))
        if self.fail:
            raise StartupFailedError(f"Container {runtime_id[:12]} exited")
