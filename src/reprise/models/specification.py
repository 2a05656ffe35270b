"""
Declarative description of a desired container.

``ContainerSpecification`` is validated once on construction and is frozen
afterwards. The ``with_*`` helpers return new, re-validated copies.
"""

from __future__ import annotations

import os
import shlex
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from reprise.models.network import NetworkRef


class BindMode(str, Enum):
    READ_ONLY = "ro"
    READ_WRITE = "rw"


class BindMount(BaseModel):
    model_config = ConfigDict(frozen=True)

    host_path: str
    container_path: str
    mode: BindMode = BindMode.READ_WRITE

    @field_validator("host_path", mode="before")
    @classmethod
    def _absolute_host_path(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)) and str(value):
            return os.path.abspath(os.fspath(value))
        return value

    @field_validator("container_path")
    @classmethod
    def _absolute_container_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"container_path must be absolute: {value!r}")
        return value


BindMountLike = Union[BindMount, Tuple[Any, ...], Dict[str, Any]]


class ContainerSpecification(BaseModel):
    """
    Immutable description of a container to start (or reuse).

    Every field except ``network`` and ``reuse`` takes part in the reuse
    fingerprint as-is. ``network`` takes part through the stable id it
    resolves to.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    image: str
    command: Tuple[str, ...] = ()
    exposed_ports: FrozenSet[int] = frozenset()
    bind_mounts: Tuple[BindMount, ...] = ()
    network: Optional[NetworkRef] = None
    network_aliases: Tuple[str, ...] = ()
    environment: Tuple[Tuple[str, str], ...] = ()
    reuse: bool = False

    @field_validator("image")
    @classmethod
    def _non_empty_image(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("image must be a non-empty string")
        return value

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(shlex.split(value))
        return value

    @field_validator("exposed_ports")
    @classmethod
    def _valid_ports(cls, value: FrozenSet[int]) -> FrozenSet[int]:
        bad = sorted(p for p in value if not 0 < p < 65536)
        if bad:
            raise ValueError(f"exposed ports out of range: {bad}")
        return value

    @field_validator("bind_mounts", mode="before")
    @classmethod
    def _coerce_mounts(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(_coerce_mount(item) for item in value)

    @field_validator("environment", mode="before")
    @classmethod
    def _freeze_environment(cls, value: Any) -> Any:
        # Stored as sorted pairs so the frozen model cannot be mutated through it.
        if value is None:
            return ()
        if isinstance(value, Mapping):
            value = value.items()
        return tuple(sorted(dict(value).items()))

    @field_validator("network_aliases")
    @classmethod
    def _non_empty_aliases(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if any(not alias.strip() for alias in value):
            raise ValueError("network aliases must be non-empty strings")
        return value

    @model_validator(mode="after")
    def _aliases_need_network(self) -> "ContainerSpecification":
        if self.network_aliases and self.network is None:
            raise ValueError("network_aliases require a network")
        return self

    # --- Copy helpers ---

    def _replace(self, **changes: Any) -> "ContainerSpecification":
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self)(**data)

    def with_command(self, *command: str) -> "ContainerSpecification":
        if len(command) == 1:
            return self._replace(command=command[0])
        return self._replace(command=command)

    def with_exposed_ports(self, *ports: int) -> "ContainerSpecification":
        return self._replace(exposed_ports=self.exposed_ports | frozenset(ports))

    def with_bind_mount(
        self,
        host_path: Union[str, Path],
        container_path: str,
        mode: BindMode = BindMode.READ_WRITE,
    ) -> "ContainerSpecification":
        mount = BindMount(host_path=host_path, container_path=container_path, mode=mode)
        return self._replace(bind_mounts=self.bind_mounts + (mount,))

    def with_network(self, network: Optional[NetworkRef]) -> "ContainerSpecification":
        return self._replace(network=network)

    def with_network_aliases(self, *aliases: str) -> "ContainerSpecification":
        return self._replace(network_aliases=aliases)

    def with_env(self, key: str, value: str) -> "ContainerSpecification":
        return self._replace(environment={**self.env, key: value})

    @property
    def env(self) -> Dict[str, str]:
        """A fresh ``dict`` copy of ``environment``."""
        return dict(self.environment)

    def with_reuse(self, reuse: bool = True) -> "ContainerSpecification":
        return self._replace(reuse=reuse)


def _coerce_mount(item: BindMountLike) -> Any:
    if isinstance(item, (tuple, list)):
        if len(item) == 2:
            return {"host_path": item[0], "container_path": item[1]}
        if len(item) == 3:
            return {"host_path": item[0], "container_path": item[1], "mode": item[2]}
        raise ValueError(f"bind mount must be (host, container[, mode]): {item!r}")
    return item