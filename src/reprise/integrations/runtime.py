"""
Reprise Runtime Collaborators

This module defines the abstract contracts through which Reprise talks to a
container runtime. The reuse engine never calls a runtime SDK directly; it is
handed implementations of these interfaces, which keeps it testable in
isolation and lets several runtimes plug in.

Key contracts:
-   **`ContainerRuntime`**: lists live containers together with the reuse labels
    they carry, creates containers from a specification, removes containers.
-   **`NetworkProvider`**: creates, finds (by out-of-band key) and removes
    virtual networks. Only the network resolver uses it.
-   **`StartupCheck`**: waits until a container is ready after create/reuse.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, List, Mapping, Optional

if TYPE_CHECKING:
    from reprise.models.specification import ContainerSpecification


@dataclass(frozen=True)
class LiveContainer:
    """A running container as reported by the runtime, with its reuse labels."""

    runtime_id: str
    fingerprint: Optional[str]
    created_at: datetime
    canonical: Optional[str] = None
    name: Optional[str] = None


class ContainerRuntime(abc.ABC):
    @abc.abstractmethod
    def list_live_containers(self) -> List[LiveContainer]:
        """
        Return every running container that carries a reuse fingerprint label.

        This listing is the source of truth for reuse decisions; any cache kept
        by the registry is only an optimization on top of it.

        Returns
        -------
        List[LiveContainer]
            One entry per running, labelled container.
        """
        pass

    @abc.abstractmethod
    def create_container(
        self,
        spec: "ContainerSpecification",
        *,
        network_id: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
    ) -> str:
        """
        Create and start a container for ``spec``.

        Parameters
        ----------
        spec : ContainerSpecification
            The container to create.
        network_id : Optional[str], optional
            Stable id of the network to attach to, already resolved. The
            runtime registers ``spec.network_aliases`` on that network.
        labels : Optional[Mapping[str, str]], optional
            Labels to store on the container. Reuse identity lives here.
        name : Optional[str], optional
            Exclusive container name. When given, the runtime must refuse to
            create a second container with the same name, which makes creation
            a create-if-absent operation.

        Returns
        -------
        str
            The runtime id of the new container.

        Raises
        ------
        CreationFailedError
            If the runtime rejects the request.
        ContainerConflictError
            If ``name`` is already taken.
        """
        pass

    @abc.abstractmethod
    def remove_container(self, runtime_id: str) -> None:
        """
        Stop and remove a container.

        Raises
        ------
        NotFoundError
            If the container no longer exists.
        """
        pass


class NetworkProvider(abc.ABC):
    @abc.abstractmethod
    def create_network(
        self,
        name: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Create a network and return its stable id."""
        pass

    @abc.abstractmethod
    def find_network(self, key: str) -> Optional[str]:
        """Return the stable id of the network labelled with ``key``, if any."""
        pass

    @abc.abstractmethod
    def remove_network(self, stable_id: str) -> None:
        """
        Remove a network.

        Raises
        ------
        NotFoundError
            If the network no longer exists.
        """
        pass


class StartupCheck(abc.ABC):
    @abc.abstractmethod
    def await_ready(self, runtime_id: str, timeout: float) -> None:
        """
        Block until the container is ready to accept work.

        Raises
        ------
        StartupFailedError
            If the container stops before becoming ready.
        StartupTimeoutError
            If ``timeout`` seconds pass without the container becoming ready.
        """
        pass
