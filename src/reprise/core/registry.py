"""
reprise/core/registry.py

Tracks reusable containers and picks a reuse candidate for a fingerprint.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from reprise.core.identity import Fingerprint
from reprise.integrations.runtime import ContainerRuntime, LiveContainer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunningContainerRecord:
    runtime_id: str
    fingerprint: Fingerprint
    created_at: datetime
    alive: bool = True


class ReuseRegistry:
    """
    Reuse lookup over the containers a runtime reports as live.

    The runtime listing is the source of truth. The in-process record table is
    an optimization that ``find_reusable(..., use_cache=True)`` reads from and
    that ``refresh`` reconciles. The registry does not guarantee at most one
    live container per fingerprint; that is up to the runtime's
    create-if-absent primitive used by the lifecycle controller.

    Tie-break: when several live containers share a fingerprint the one with
    the earliest ``created_at`` wins, with ``runtime_id`` ordering as the final
    tie-breaker. Repeated runs therefore keep binding to the same container
    even though the runtime does not enforce fingerprint uniqueness.

    Concurrency: all table access happens under one lock, and every
    ``find_reusable`` call decides on a snapshot taken when it starts. A record
    that ``refresh`` marks dead meanwhile is not returned, because dead
    records never enter a snapshot.
    """

    def __init__(self, runtime: ContainerRuntime) -> None:
        self._runtime = runtime
        self._records: Dict[str, RunningContainerRecord] = {}
        self._lock = threading.RLock()

    # --- Queries ---

    def find_reusable(
        self, fingerprint: Fingerprint, *, use_cache: bool = False
    ) -> Optional[RunningContainerRecord]:
        """
        Return the reuse candidate for ``fingerprint``, if any live one exists.

        Parameters
        ----------
        fingerprint : Fingerprint
            Fingerprint of the requested specification.
        use_cache : bool, default False
            Decide on the cached record table instead of querying the runtime.

        Returns
        -------
        Optional[RunningContainerRecord]
            The oldest live record with a matching fingerprint, or None.
        """
        if use_cache:
            with self._lock:
                snapshot = [r for r in self._records.values() if r.alive]
        else:
            snapshot = self._observe()

        candidates = []
        for record in snapshot:
            if record.fingerprint.digest != fingerprint.digest:
                continue
            if record.fingerprint.collides_with(fingerprint):
                logger.warning(
                    "[reprise.registry] Fingerprint collision on %s: container %s "
                    "has the same digest but a different specification; not reusing it.",
                    fingerprint.short,
                    record.runtime_id[:12],
                )
                continue
            candidates.append(record)

        if not candidates:
            logger.debug("[reprise.registry] No live container for %s", fingerprint.short)
            return None

        chosen = min(candidates, key=lambda r: (r.created_at, r.runtime_id))
        if len(candidates) > 1:
            logger.info(
                "[reprise.registry] %d live containers share %s; picking oldest %s",
                len(candidates),
                fingerprint.short,
                chosen.runtime_id[:12],
            )
        return chosen

    def records(self) -> List[RunningContainerRecord]:
        """Live records in the cache, oldest first."""
        with self._lock:
            live = [r for r in self._records.values() if r.alive]
        return sorted(live, key=lambda r: (r.created_at, r.runtime_id))

    # --- Mutations ---

    def register(
        self,
        fingerprint: Fingerprint,
        runtime_id: str,
        created_at: Optional[datetime] = None,
    ) -> RunningContainerRecord:
        """
        Record a container the runtime has just created successfully.

        Idempotent per ``runtime_id``: registering the same id again returns the
        existing record unchanged.
        """
        with self._lock:
            existing = self._records.get(runtime_id)
            if existing is not None and existing.alive:
                return existing
            record = RunningContainerRecord(
                runtime_id=runtime_id,
                fingerprint=fingerprint,
                created_at=created_at or datetime.now(timezone.utc),
            )
            self._records[runtime_id] = record
        logger.debug(
            "[reprise.registry] Registered %s for %s", runtime_id[:12], fingerprint.short
        )
        return record

    def refresh(self) -> List[RunningContainerRecord]:
        """
        Reconcile the cache with the runtime.

        Records whose container is gone are marked dead and dropped from the
        table. Live labelled containers not yet known are added.

        Returns
        -------
        List[RunningContainerRecord]
            The records that were marked dead.
        """
        live = self._runtime.list_live_containers()
        return self._reconcile(live)[1]

    # --- Internals ---

    def _observe(self) -> List[RunningContainerRecord]:
        live = self._runtime.list_live_containers()
        return self._reconcile(live)[0]

    def _reconcile(self, live: List[LiveContainer]):
        observed = [
            RunningContainerRecord(
                runtime_id=c.runtime_id,
                fingerprint=Fingerprint(digest=c.fingerprint, canonical=c.canonical),
                created_at=_aware(c.created_at),
            )
            for c in live
            if c.fingerprint
        ]
        observed_ids = {r.runtime_id for r in observed}

        dead: List[RunningContainerRecord] = []
        with self._lock:
            for runtime_id, record in list(self._records.items()):
                if runtime_id not in observed_ids:
                    dead.append(replace(record, alive=False))
                    del self._records[runtime_id]
            for record in observed:
                known = self._records.get(record.runtime_id)
                if known is None or known.fingerprint.canonical is None:
                    self._records[record.runtime_id] = record

        for record in dead:
            logger.info(
                "[reprise.registry] Container %s is gone; dropping it from reuse",
                record.runtime_id[:12],
            )
        return observed, dead


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
