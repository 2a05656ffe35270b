"""
reprise/core/errors.py

Exception taxonomy for reuse resolution and container lifecycle failures.
"""

from __future__ import annotations

from typing import Optional


class RepriseError(Exception):
    """Base class for all errors raised by Reprise."""


class UnresolvableNetworkError(RepriseError):
    """A network reference could not be turned into a stable network id."""


class UnknownNetworkError(UnresolvableNetworkError):
    """The reference was never registered and carries no embedded stable id."""


class CreationFailedError(RepriseError):
    """The runtime rejected a create request (bad image, bad mount, ...)."""


class ContainerConflictError(RepriseError):
    """
    The runtime refused to create a container because its exclusive name is taken.

    Raised by runtimes that implement create-if-absent through unique names.
    """

    def __init__(self, name: str, existing_id: Optional[str] = None) -> None:
        super().__init__(f"Container name already in use: {name}")
        self.name = name
        self.existing_id = existing_id


class NotFoundError(RepriseError):
    """The runtime entity no longer exists."""


class StartupFailedError(RepriseError):
    """The container stopped before the startup check saw it ready."""


class StartupTimeoutError(StartupFailedError, TimeoutError):
    """The startup check did not observe a ready container in time."""
