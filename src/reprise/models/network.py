from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional


def _new_handle() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, eq=False)
class NetworkRef:
    """
    Process-local handle to a virtual network.

    A ref is only a *reference*; its logical identity is the stable network id
    it resolves to through ``NetworkIdentityResolver``. Two refs built in two
    processes never share a ``handle``, so nothing may compare refs directly.

    Attributes
    ----------
    handle : str
        Random token unique to this object, used as the resolver table key.
    stable_id : Optional[str]
        Runtime network id embedded at construction time. Resolution then
        bypasses network creation entirely.
    key : Optional[str]
        Out-of-band stable key persisted as a label on the runtime network, so
        a later process can re-target the network it created earlier.
    name : Optional[str]
        Requested network name when the network has to be created.
    """

    stable_id: Optional[str] = None
    key: Optional[str] = None
    name: Optional[str] = None
    handle: str = field(default_factory=_new_handle)

    @classmethod
    def new(cls, name: Optional[str] = None) -> "NetworkRef":
        """A fresh network, created on first use and owned by this process."""
        return cls(name=name)

    @classmethod
    def of_id(cls, stable_id: str) -> "NetworkRef":
        """Bind to an existing network by its runtime id."""
        if not stable_id:
            raise ValueError("stable_id must be a non-empty string")
        return cls(stable_id=stable_id)

    @classmethod
    def keyed(cls, key: str, name: Optional[str] = None) -> "NetworkRef":
        """Bind to the network labelled with ``key``, creating it if absent."""
        if not key:
            raise ValueError("key must be a non-empty string")
        return cls(key=key, name=name)

    def __repr__(self) -> str:
        if self.stable_id:
            target = f"id={self.stable_id[:12]}"
        elif self.key:
            target = f"key={self.key}"
        else:
            target = "anonymous"
        return f"NetworkRef({target}, handle={self.handle[:8]})"


@dataclass(frozen=True)
class NetworkIdentity:
    stable_id: str
    created_by_this_process: bool = False
