"""
reprise/core/identity.py

Derives the reuse fingerprint of a container specification.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from reprise.core.errors import UnresolvableNetworkError
from reprise.core.network import NetworkIdentityResolver
from reprise.models.specification import ContainerSpecification

logger = logging.getLogger(__name__)

FINGERPRINT_SCHEMA_VERSION = 1


@dataclass(frozen=True, eq=False)
class Fingerprint:
    """
    Identity key of a container specification.

    ``digest`` is a SHA256 over ``canonical``, the canonical JSON encoding of
    the specification's reuse-relevant fields. Equality compares digests and,
    when both sides still carry their canonical encoding, the encodings too.
    That second comparison turns a digest collision into a reported mismatch
    instead of a false reuse.
    """

    digest: str
    canonical: Optional[str] = None

    def matches(self, other: "Fingerprint") -> bool:
        if self.digest != other.digest:
            return False
        if self.canonical is None or other.canonical is None:
            return True
        return self.canonical == other.canonical

    def collides_with(self, other: "Fingerprint") -> bool:
        """True when digests agree but the canonical encodings do not."""
        return (
            self.digest == other.digest
            and self.canonical is not None
            and other.canonical is not None
            and self.canonical != other.canonical
        )

    @property
    def short(self) -> str:
        return self.digest[:12]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fingerprint):
            return NotImplemented
        return self.matches(other)

    def __hash__(self) -> int:
        return hash(self.digest)

    def __repr__(self) -> str:
        return f"Fingerprint({self.short})"


class FingerprintBuilder:
    """
    Computes ``Fingerprint`` values for ``ContainerSpecification`` objects.

    H_fp = SHA256( canonical_json(image, command, ports, mounts, network, aliases, env) )

    Canonicalization rules:

    - ``command``, ``bind_mounts`` and ``network_aliases`` keep their declared
      order. Mount order changes the mounted view when mounts overlap, and
      alias order is meaningful to the caller.
    - ``exposed_ports`` is a sorted list; ``environment`` is sorted pairs.
    - ``network`` is replaced by the stable id the resolver maps it to. The
      ref object itself never reaches the payload.
    - ``reuse`` is excluded: it is a request, not part of what the container is.

    The builder is pure. It never creates networks; callers that need a
    network materialized use ``NetworkIdentityResolver.ensure`` first.
    """

    def __init__(self, resolver: NetworkIdentityResolver) -> None:
        self.resolver = resolver

    def canonical_payload(self, spec: ContainerSpecification) -> Dict[str, Any]:
        network_id: Optional[str] = None
        if spec.network is not None:
            try:
                network_id = self.resolver.resolve(spec.network)
            except UnresolvableNetworkError as exc:
                raise UnresolvableNetworkError(
                    f"Cannot fingerprint {spec.image}: {exc}"
                ) from exc

        return {
            "version": FINGERPRINT_SCHEMA_VERSION,
            "image": spec.image,
            "command": list(spec.command),
            "exposed_ports": sorted(spec.exposed_ports),
            "bind_mounts": [
                [m.host_path, m.container_path, m.mode.value] for m in spec.bind_mounts
            ],
            "network": network_id,
            "network_aliases": list(spec.network_aliases),
            "environment": [[k, v] for k, v in spec.environment],
        }

    def fingerprint(self, spec: ContainerSpecification) -> Fingerprint:
        payload = self.canonical_payload(spec)
        # ensure_ascii=True keeps the encoding locale independent
        canonical = json.dumps(
            payload, sort_keys=True, ensure_ascii=True, separators=(",", ":")
        )
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        logger.debug("[reprise.fingerprint] digest=%s payload=%s", digest, canonical)
        return Fingerprint(digest=digest, canonical=canonical)
