"""Runtime configuration for the nearby-device core."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

ENV_PREFIX = "NEARBY_"

DEFAULT_SCAN_DURATION = 5.0
DEFAULT_CONNECT_TIMEOUT = 10.0

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _safe_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _split_list(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(slots=True)
class NearbyConfig:
    """Configuration bundle shared by the scan session, provider and surfaces."""

    scan_duration: float = DEFAULT_SCAN_DURATION
    allow_duplicates: bool = True
    service_uuids: Sequence[str] = field(default_factory=tuple)
    adapter: Optional[str] = None
    scanning_mode: Optional[str] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    show_alert: bool = False
    metrics_log: Optional[str] = None

    def __post_init__(self) -> None:
        if self.scan_duration <= 0:
            raise ValueError("scan_duration must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.scanning_mode not in (None, "active", "passive"):
            raise ValueError("scanning_mode must be 'active' or 'passive'")
        self.service_uuids = tuple(str(uuid).lower() for uuid in self.service_uuids or ())

    def start_options(self) -> Dict[str, Any]:
        """Options handed to the provider's one-time ``start`` call."""
        return {"show_alert": self.show_alert}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "NearbyConfig":
        """Build a config from ``NEARBY_*`` variables; explicit overrides win."""
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            return env.get(ENV_PREFIX + name)

        values: Dict[str, Any] = {
            "scan_duration": _safe_float(get("SCAN_DURATION"), DEFAULT_SCAN_DURATION),
            "allow_duplicates": _env_bool(get("ALLOW_DUPLICATES"), True),
            "service_uuids": _split_list(get("SERVICE_UUIDS")),
            "adapter": get("ADAPTER") or None,
            "scanning_mode": get("SCANNING_MODE") or None,
            "connect_timeout": _safe_float(get("CONNECT_TIMEOUT"), DEFAULT_CONNECT_TIMEOUT),
            "show_alert": _env_bool(get("SHOW_ALERT"), False),
            "metrics_log": get("METRICS_LOG") or None,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


__all__ = ["NearbyConfig", "ENV_PREFIX", "DEFAULT_SCAN_DURATION", "DEFAULT_CONNECT_TIMEOUT"]
