"""
Reprise: reuse running containers across test sessions.

Reprise decides whether an already-running container satisfies a container
specification well enough to be reused, even when the network the
specification refers to is a fresh object in every process run.
"""

# Models
from reprise.models.network import NetworkRef
from reprise.models.specification import BindMode, BindMount, ContainerSpecification

# Core
from reprise.core.errors import (
    ContainerConflictError,
    CreationFailedError,
    NotFoundError,
    RepriseError,
    StartupFailedError,
    StartupTimeoutError,
    UnknownNetworkError,
    UnresolvableNetworkError,
)
from reprise.core.identity import Fingerprint, FingerprintBuilder
from reprise.core.lifecycle import ContainerState, LifecycleController, ManagedContainer
from reprise.core.network import NetworkIdentityResolver
from reprise.core.registry import ReuseRegistry, RunningContainerRecord
from reprise.core.settings import RepriseSettings

__all__ = [
    # Models
    "BindMode",
    "BindMount",
    "ContainerSpecification",
    "NetworkRef",
    # Engine
    "Fingerprint",
    "FingerprintBuilder",
    "NetworkIdentityResolver",
    "ReuseRegistry",
    "RunningContainerRecord",
    "LifecycleController",
    "ManagedContainer",
    "ContainerState",
    "RepriseSettings",
    # Errors
    "RepriseError",
    "UnresolvableNetworkError",
    "UnknownNetworkError",
    "CreationFailedError",
    "ContainerConflictError",
    "NotFoundError",
    "StartupFailedError",
    "StartupTimeoutError",
]
