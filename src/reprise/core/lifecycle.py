"""
reprise/core/lifecycle.py

Starts containers, reusing a live equivalent one when the caller asks for it.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from reprise.core.errors import (
    ContainerConflictError,
    CreationFailedError,
    NotFoundError,
)
from reprise.core.identity import Fingerprint, FingerprintBuilder
from reprise.core.network import NetworkIdentityResolver
from reprise.core.registry import ReuseRegistry
from reprise.core.settings import RepriseSettings
from reprise.integrations.runtime import ContainerRuntime, StartupCheck
from reprise.models.specification import ContainerSpecification

logger = logging.getLogger(__name__)


class ContainerState(str, Enum):
    UNSTARTED = "unstarted"
    RESOLVING = "resolving"
    REUSED = "reused"
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class ManagedContainer:
    """
    The controller's handle on one logical container request.

    Usable as a context manager: ``__enter__`` starts it if needed and
    ``__exit__`` stops it.
    """

    def __init__(
        self, spec: ContainerSpecification, controller: "LifecycleController"
    ) -> None:
        self.spec = spec
        self.controller = controller
        self.state = ContainerState.UNSTARTED
        self.runtime_id: Optional[str] = None
        self.fingerprint: Optional[Fingerprint] = None
        self.network_id: Optional[str] = None
        self.reused = False
        self.reusable = False

    @property
    def container_id(self) -> Optional[str]:
        return self.runtime_id

    def start(self) -> "ManagedContainer":
        self.controller._start(self)
        return self

    def stop(self) -> None:
        self.controller.stop(self)

    def __enter__(self) -> "ManagedContainer":
        if self.state is ContainerState.UNSTARTED:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def __repr__(self) -> str:
        rid = self.runtime_id[:12] if self.runtime_id else None
        return f"ManagedContainer({self.spec.image}, state={self.state.value}, id={rid})"


class LifecycleController:
    """
    Orchestrates ``start``: resolve, fingerprint, reuse-or-create, await ready.

    State machine per request::

        UNSTARTED -> RESOLVING -> {REUSED | CREATED} -> RUNNING -> STOPPED

    A container is reused only when the specification asks for it, the
    environment allows reuse (``RepriseSettings.reuse_enabled``) and the
    registry finds a live match. Reusable containers are created under an
    exclusive name derived from their fingerprint, so two processes racing to
    create the same logical container end up with one of them reusing the
    other's container.

    Teardown never removes a container that may be shared: reused containers,
    and containers created with reuse enabled, are only released. Containers
    created without reuse are removed.

    Parameters
    ----------
    runtime : ContainerRuntime
        Creates, lists and removes containers.
    resolver : NetworkIdentityResolver
        Resolves (and materializes) the specification's network.
    registry : Optional[ReuseRegistry]
        Reuse lookup. Defaults to a registry over ``runtime``.
    startup_check : Optional[StartupCheck]
        Awaited after CREATED/REUSED. ``None`` skips waiting.
    settings : Optional[RepriseSettings]
        Defaults to ``RepriseSettings.from_env()``.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        resolver: NetworkIdentityResolver,
        registry: Optional[ReuseRegistry] = None,
        startup_check: Optional[StartupCheck] = None,
        settings: Optional[RepriseSettings] = None,
    ) -> None:
        self.runtime = runtime
        self.resolver = resolver
        self.registry = registry or ReuseRegistry(runtime)
        self.startup_check = startup_check
        self.settings = settings or RepriseSettings.from_env()
        self.fingerprints = FingerprintBuilder(resolver)

    def container(self, spec: ContainerSpecification) -> ManagedContainer:
        """Build an unstarted handle for ``spec``."""
        return ManagedContainer(spec, self)

    def start(self, spec: ContainerSpecification) -> ManagedContainer:
        """Start (or reuse) a container for ``spec`` and return its handle."""
        return self.container(spec).start()

    def stop(self, handle: ManagedContainer) -> None:
        """
        Release ``handle``; remove its container only if nothing can share it.
        """
        if handle.state in (ContainerState.UNSTARTED, ContainerState.STOPPED):
            handle.state = ContainerState.STOPPED
            return
        if handle.state is ContainerState.RESOLVING or handle.runtime_id is None:
            handle.state = ContainerState.STOPPED
            return

        if handle.reused or handle.reusable:
            logger.info(
                "[reprise] Releasing reusable container %s without stopping it",
                handle.runtime_id[:12],
            )
        else:
            self._remove(handle.runtime_id)
        handle.state = ContainerState.STOPPED

    # --- Internals ---

    def _start(self, handle: ManagedContainer) -> None:
        if handle.state is not ContainerState.UNSTARTED:
            raise RuntimeError(f"{handle!r} has already been started")

        spec = handle.spec
        handle.state = ContainerState.RESOLVING
        if spec.network is not None:
            handle.network_id = self.resolver.ensure(spec.network)
        fingerprint = self.fingerprints.fingerprint(spec)
        handle.fingerprint = fingerprint
        handle.reusable = self._reuse_allowed(spec)

        if handle.reusable:
            record = self.registry.find_reusable(fingerprint)
            if record is not None:
                self._bind_reused(handle, record.runtime_id)

        if handle.state is ContainerState.RESOLVING:
            self._create(handle, fingerprint)

        self._await_ready(handle)
        handle.state = ContainerState.RUNNING

    def _reuse_allowed(self, spec: ContainerSpecification) -> bool:
        if not spec.reuse:
            return False
        if not self.settings.reuse_enabled:
            logger.warning(
                "[reprise] Reuse was requested for %s but is not enabled for this "
                "environment (set REPRISE_REUSE_ENABLE=true); creating a fresh "
                "container that will be removed on stop.",
                spec.image,
            )
            return False
        return True

    def _bind_reused(self, handle: ManagedContainer, runtime_id: str) -> None:
        handle.runtime_id = runtime_id
        handle.reused = True
        handle.state = ContainerState.REUSED
        logger.info(
            "[reprise] Reusing container %s for %s (%s)",
            runtime_id[:12],
            handle.spec.image,
            handle.fingerprint.short if handle.fingerprint else "-",
        )

    def _create(self, handle: ManagedContainer, fingerprint: Fingerprint) -> None:
        labels: Dict[str, str] = {}
        name: Optional[str] = None
        created_ns = time.time_ns()
        if handle.reusable:
            labels = {
                self.settings.fingerprint_label: fingerprint.digest,
                self.settings.canonical_label: fingerprint.canonical or "",
                self.settings.created_label: str(created_ns),
            }
            name = f"reprise-{fingerprint.digest[:24]}"

        try:
            runtime_id = self._create_named(handle, labels, name)
        except ContainerConflictError as exc:
            # Another process created the container between lookup and create.
            record = self.registry.find_reusable(fingerprint)
            if record is not None:
                self._bind_reused(handle, record.runtime_id)
                return
            if not self._clear_stale_holder(exc):
                raise CreationFailedError(
                    f"Container name {exc.name} is taken by a live container "
                    f"that does not match {fingerprint.short}"
                ) from exc
            try:
                runtime_id = self._create_named(handle, labels, name)
            except ContainerConflictError as retry_exc:
                record = self.registry.find_reusable(fingerprint)
                if record is None:
                    raise CreationFailedError(
                        f"Container name {retry_exc.name} is still taken after "
                        f"removing a stale container"
                    ) from retry_exc
                self._bind_reused(handle, record.runtime_id)
                return

        handle.runtime_id = runtime_id
        handle.state = ContainerState.CREATED
        if handle.reusable:
            self.registry.register(
                fingerprint,
                runtime_id,
                created_at=datetime.fromtimestamp(created_ns / 1e9, tz=timezone.utc),
            )
        logger.info(
            "[reprise] Created container %s for %s (reusable=%s)",
            runtime_id[:12],
            handle.spec.image,
            handle.reusable,
        )

    def _create_named(
        self, handle: ManagedContainer, labels: Dict[str, str], name: Optional[str]
    ) -> str:
        return self.runtime.create_container(
            handle.spec, network_id=handle.network_id, labels=labels, name=name
        )

    def _clear_stale_holder(self, exc: ContainerConflictError) -> bool:
        """
        Remove the container holding a reuse name if it is no longer live.

        A container that exited (daemon restart, crash) keeps its name but is
        never offered for reuse, so it would block every later start.
        """
        if exc.existing_id is None:
            return False
        live_ids = {c.runtime_id for c in self.runtime.list_live_containers()}
        if exc.existing_id in live_ids:
            return False
        logger.warning(
            "[reprise] Container %s holds name %s but is not running; removing it",
            exc.existing_id[:12],
            exc.name,
        )
        self._remove(exc.existing_id)
        return True

    def _await_ready(self, handle: ManagedContainer) -> None:
        if self.startup_check is None or handle.runtime_id is None:
            return
        try:
            self.startup_check.await_ready(
                handle.runtime_id, self.settings.startup_timeout_seconds
            )
        except Exception:
            if not handle.reused:
                self._remove(handle.runtime_id)
            raise

    def _remove(self, runtime_id: str) -> None:
        try:
            self.runtime.remove_container(runtime_id)
            logger.info("[reprise] Removed container %s", runtime_id[:12])
        except NotFoundError:
            logger.debug("[reprise] Container %s was already removed", runtime_id[:12])
