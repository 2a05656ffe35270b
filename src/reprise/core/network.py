"""
reprise/core/network.py

Maps process-local network handles to runtime-stable network ids.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Set

from reprise.core.errors import (
    NotFoundError,
    UnknownNetworkError,
    UnresolvableNetworkError,
)
from reprise.core.settings import RepriseSettings
from reprise.integrations.runtime import NetworkProvider
from reprise.models.network import NetworkIdentity, NetworkRef

logger = logging.getLogger(__name__)


class NetworkIdentityResolver:
    """
    Separates network *reference* from network *identity*.

    A test harness typically builds a new network object in every process run
    while meaning "the same network". Reuse fingerprints must therefore never
    use the object, only the stable id it stands for. This resolver owns an
    explicit table ``ref.handle -> NetworkIdentity`` and is the only place in
    Reprise that looks at ``NetworkRef`` objects.

    Three kinds of refs are understood:

    - ``NetworkRef.of_id(id)``: the stable id is embedded; it is recorded on
      first resolution and no network is ever created for it.
    - ``NetworkRef.keyed(key)``: ``ensure`` looks up a network labelled with
      ``key`` through the provider and creates one only if none exists, so a
      later process lands on the same network.
    - ``NetworkRef.new()``: ``ensure`` creates a fresh network owned by this
      process; ``release`` removes it again.

    Parameters
    ----------
    provider : Optional[NetworkProvider]
        Used by ``ensure``/``recreate``/``release``. Without one, only refs with
        an embedded id or an explicit ``register`` can be resolved.
    settings : Optional[RepriseSettings]
        Supplies the label used to persist network keys.
    """

    def __init__(
        self,
        provider: Optional[NetworkProvider] = None,
        settings: Optional[RepriseSettings] = None,
    ) -> None:
        self._provider = provider
        self._settings = settings or RepriseSettings.from_env()
        self._table: Dict[str, NetworkIdentity] = {}
        self._refs: Dict[str, NetworkRef] = {}
        self._expired: Set[str] = set()
        self._lock = threading.RLock()

    # --- Table operations ---

    def register(
        self,
        ref: NetworkRef,
        stable_id: str,
        *,
        created_by_this_process: bool = False,
    ) -> None:
        """Record that ``ref`` stands for the network ``stable_id``."""
        if not stable_id:
            raise ValueError("stable_id must be a non-empty string")
        with self._lock:
            self._table[ref.handle] = NetworkIdentity(
                stable_id=stable_id,
                created_by_this_process=created_by_this_process,
            )
            self._refs[ref.handle] = ref
            self._expired.discard(ref.handle)
        logger.debug("[reprise.network] %r -> %s", ref, stable_id)

    def resolve(self, ref: NetworkRef) -> str:
        """
        Return the stable id ``ref`` stands for.

        Never creates anything.

        Raises
        ------
        UnresolvableNetworkError
            If ``ref`` was invalidated or released and not registered again.
        UnknownNetworkError
            If ``ref`` was never registered and embeds no stable id.
        """
        with self._lock:
            identity = self._table.get(ref.handle)
            if identity is not None:
                return identity.stable_id
            if ref.handle in self._expired:
                raise UnresolvableNetworkError(
                    f"Network reference {ref!r} has been invalidated"
                )
            if ref.stable_id:
                self.register(ref, ref.stable_id, created_by_this_process=False)
                return ref.stable_id
        raise UnknownNetworkError(f"Network reference {ref!r} was never registered")

    def identity(self, ref: NetworkRef) -> Optional[NetworkIdentity]:
        with self._lock:
            return self._table.get(ref.handle)

    def invalidate(self, ref: NetworkRef) -> None:
        """
        Forget the mapping for ``ref``.

        Later ``resolve``/``ensure`` calls fail with ``UnresolvableNetworkError``
        until the caller registers a new stable id for it (or calls
        ``recreate``). The runtime network itself is left alone.
        """
        with self._lock:
            self._table.pop(ref.handle, None)
            self._expired.add(ref.handle)
        logger.debug("[reprise.network] invalidated %r", ref)

    # --- Provider-backed operations ---

    def ensure(self, ref: NetworkRef) -> str:
        """
        Resolve ``ref``, materializing its network through the provider if needed.

        Raises
        ------
        UnresolvableNetworkError
            If ``ref`` was invalidated.
        UnknownNetworkError
            If the network has to be created but no provider is configured.
        """
        with self._lock:
            try:
                return self.resolve(ref)
            except UnknownNetworkError:
                pass
            provider = self._require_provider(ref)

            if ref.key:
                existing = provider.find_network(ref.key)
                if existing:
                    logger.info(
                        "[reprise.network] Re-targeting network %s for key '%s'",
                        existing[:12],
                        ref.key,
                    )
                    self.register(ref, existing, created_by_this_process=False)
                    return existing
                stable_id = provider.create_network(
                    name=ref.name,
                    labels={self._settings.network_key_label: ref.key},
                )
            else:
                stable_id = provider.create_network(name=ref.name)

            logger.info("[reprise.network] Created network %s for %r", stable_id[:12], ref)
            self.register(ref, stable_id, created_by_this_process=True)
            return stable_id

    def recreate(self, ref: NetworkRef) -> str:
        """
        Deliberately give ``ref`` a brand-new network and stable id.

        The previous network is released first. For keyed refs every network
        the provider reports for the key is removed, even ones another process
        created or this resolver no longer tracks, so the key keeps pointing at
        exactly one network.
        """
        if ref.stable_id:
            raise UnresolvableNetworkError(
                f"{ref!r} embeds its stable id and cannot be recreated"
            )
        provider = self._require_provider(ref)
        with self._lock:
            self.release(ref)
            if ref.key:
                self._remove_keyed(provider, ref.key)
            labels = {self._settings.network_key_label: ref.key} if ref.key else None
            stable_id = provider.create_network(name=ref.name, labels=labels)
            self.register(ref, stable_id, created_by_this_process=True)
        logger.info("[reprise.network] Recreated network %s for %r", stable_id[:12], ref)
        return stable_id

    def release(self, ref: NetworkRef) -> None:
        """
        Drop ``ref`` from the table, removing its network if this process owns it.

        Networks bound by id or key are never removed because other processes
        (and later runs) are expected to target them.
        """
        with self._lock:
            identity = self._table.pop(ref.handle, None)
            self._refs.pop(ref.handle, None)
            self._expired.add(ref.handle)
        if identity is None or not identity.created_by_this_process:
            return
        if ref.key or ref.stable_id or self._provider is None:
            return
        try:
            self._provider.remove_network(identity.stable_id)
            logger.debug("[reprise.network] Removed network %s", identity.stable_id[:12])
        except NotFoundError:
            logger.debug(
                "[reprise.network] Network %s already gone", identity.stable_id[:12]
            )

    def close(self) -> None:
        """Release every ref this resolver knows about."""
        with self._lock:
            refs: List[NetworkRef] = list(self._refs.values())
        for ref in refs:
            self.release(ref)

    def _remove_keyed(self, provider: NetworkProvider, key: str) -> None:
        removed: Set[str] = set()
        stale = provider.find_network(key)
        while stale and stale not in removed:
            try:
                provider.remove_network(stale)
                logger.info(
                    "[reprise.network] Removed network %s for key '%s'", stale[:12], key
                )
            except NotFoundError:
                pass
            removed.add(stale)
            stale = provider.find_network(key)

    def _require_provider(self, ref: NetworkRef) -> NetworkProvider:
        if self._provider is None:
            raise UnknownNetworkError(
                f"Network reference {ref!r} is unregistered and no network provider "
                "is configured to create it"
            )
        return self._provider
