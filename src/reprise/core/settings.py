from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name, "")
    return raw.strip() or default


@dataclass(frozen=True)
class RepriseSettings:
    reuse_enabled: bool = False
    startup_timeout_seconds: float = 60.0
    startup_poll_seconds: float = 0.5
    label_prefix: str = "org.reprise"

    @classmethod
    def from_env(cls) -> "RepriseSettings":
        return cls(
            reuse_enabled=_env_bool("REPRISE_REUSE_ENABLE", False),
            startup_timeout_seconds=_env_float(
                "REPRISE_STARTUP_TIMEOUT_SECONDS", 60.0
            ),
            startup_poll_seconds=_env_float("REPRISE_STARTUP_POLL_SECONDS", 0.5),
            label_prefix=_env_str("REPRISE_LABEL_PREFIX", "org.reprise"),
        )

    @property
    def fingerprint_label(self) -> str:
        return f"{self.label_prefix}.fingerprint"

    @property
    def canonical_label(self) -> str:
        return f"{self.label_prefix}.canonical"

    @property
    def created_label(self) -> str:
        return f"{self.label_prefix}.created-ns"

    @property
    def network_key_label(self) -> str:
        return f"{self.label_prefix}.network-key"
