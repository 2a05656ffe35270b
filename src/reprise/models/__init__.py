"""
The `models` module defines the value objects Reprise reasons about: container
specifications, bind mounts and network handles.
"""

from __future__ import annotations

from reprise.models.network import NetworkIdentity, NetworkRef
from reprise.models.specification import BindMode, BindMount, ContainerSpecification

__all__ = [
    "BindMode",
    "BindMount",
    "ContainerSpecification",
    "NetworkIdentity",
    "NetworkRef",
]
