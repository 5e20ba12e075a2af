"""Configuration for the ESP32 bridge.

Values come from built-in defaults, an optional JSON file and environment
variables, in that order.  The resulting :class:`BridgeConfig` is immutable
and is handed to the discovery coordinator and to every session.
"""

from __future__ import annotations

import enum
import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_TARGETS: tuple[str, ...] = (
    "192.168.58.108:81",  # last known good address
    "192.168.58.100:81",
    "192.168.58.115:81",
    "192.168.58.113:81",
    "192.168.58.114:81",
    "192.168.1.100:81",
    "192.168.0.100:81",
    "192.168.4.1:81",  # ESP32 soft-AP
    "d0e962e417ed.ngrok-free.app:443",
)

DEFAULT_HTTP_TARGETS: tuple[str, ...] = (
    "192.168.58.108:80",
    "192.168.58.100:80",
    "192.168.58.115:80",
    "192.168.58.113:80",
    "192.168.58.114:80",
    "192.168.1.100:80",
    "192.168.0.100:80",
    "192.168.4.1:80",
    "d0e962e417ed.ngrok-free.app:443",
)

DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = (
    "https://business.hesett.com",
    "http://localhost:8080",
    "http://localhost:3000",
)

TLS_PORT = 443


class TargetKind(str, enum.Enum):
    """Protocol used to reach a candidate; the value is the wire name."""

    SOCKET = "websocket"
    REQUEST = "http"


@dataclass(frozen=True)
class TargetCandidate:
    """A single ``host:port`` candidate of a given kind."""

    host: str
    port: int
    kind: TargetKind = TargetKind.SOCKET

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def secure(self) -> bool:
        """Tunnels terminate TLS on 443; everything else is plain."""
        return self.port == TLS_PORT

    def ws_url(self) -> str:
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.address}/"

    def http_url(self, path: str = "/") -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.address}{path}"

    @classmethod
    def parse(cls, value: str, kind: TargetKind = TargetKind.SOCKET) -> TargetCandidate:
        """Parse ``"host:port"``.

        Raises ``ValueError`` when the host is empty or the port is missing,
        non-numeric or out of range.
        """
        if not isinstance(value, str):
            raise ValueError(f"Target must be a 'host:port' string, got {value!r}")
        host, sep, port_str = value.strip().rpartition(":")
        if not sep or not host:
            raise ValueError(f"Target must be 'host:port', got {value!r}")
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"Invalid port in target {value!r}") from None
        if not 0 < port < 65536:
            raise ValueError(f"Port out of range in target {value!r}")
        return cls(host=host, port=port, kind=kind)


def _parse_targets(values: Any, kind: TargetKind) -> tuple[TargetCandidate, ...]:
    if isinstance(values, str):
        values = [v for v in values.split(",") if v.strip()]
    elif not isinstance(values, (list, tuple)):
        raise ValueError(f"Targets must be a list or a comma-separated string, got {values!r}")
    return tuple(TargetCandidate.parse(v, kind) for v in values)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _coerce(key: str, value: Any, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {key}: {value!r}") from None


def _split_csv(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Expected a list or a comma-separated string, got {value!r}")
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class BridgeConfig:
    """Bridge configuration, immutable once loaded."""

    host: str = "0.0.0.0"
    port: int = 3000

    socket_targets: tuple[TargetCandidate, ...] = field(
        default_factory=lambda: _parse_targets(DEFAULT_SOCKET_TARGETS, TargetKind.SOCKET)
    )
    http_targets: tuple[TargetCandidate, ...] = field(
        default_factory=lambda: _parse_targets(DEFAULT_HTTP_TARGETS, TargetKind.REQUEST)
    )
    allowed_origins: tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS

    # Timeouts (seconds)
    probe_timeout: float = 2.0
    connect_timeout: float = 5.0
    send_timeout: float = 5.0

    parallel_discovery: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: BridgeConfig | None = None) -> BridgeConfig:
        """Overlay *data* onto *base* (or the defaults).  Unknown keys are ignored."""
        base = base or cls()
        known = {f.name for f in fields(cls)}
        updates: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "socket_targets":
                value = _parse_targets(value, TargetKind.SOCKET)
            elif key == "http_targets":
                value = _parse_targets(value, TargetKind.REQUEST)
            elif key == "allowed_origins":
                value = _split_csv(value)
            elif key == "port":
                value = _coerce(key, value, int)
            elif key in ("probe_timeout", "connect_timeout", "send_timeout"):
                value = _coerce(key, value, float)
            elif key == "parallel_discovery":
                value = _parse_bool(value)
            updates[key] = value
        return replace(base, **updates)

    @classmethod
    def load(cls, path: str | Path) -> BridgeConfig:
        """Load from a JSON file; a missing file yields the defaults."""
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            return cls.from_mapping(data)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build the config from ``BRIDGE_CONFIG`` plus environment overrides."""
        env = os.environ if environ is None else environ
        config_path = env.get("BRIDGE_CONFIG")
        base = cls.load(config_path) if config_path else cls()

        env_keys = {
            "PORT": "port",
            "BRIDGE_HOST": "host",
            "BRIDGE_SOCKET_TARGETS": "socket_targets",
            "BRIDGE_HTTP_TARGETS": "http_targets",
            "BRIDGE_ALLOWED_ORIGINS": "allowed_origins",
            "BRIDGE_PROBE_TIMEOUT": "probe_timeout",
            "BRIDGE_CONNECT_TIMEOUT": "connect_timeout",
            "BRIDGE_SEND_TIMEOUT": "send_timeout",
            "BRIDGE_PARALLEL_DISCOVERY": "parallel_discovery",
        }
        overrides = {attr: env[name] for name, attr in env_keys.items() if env.get(name)}
        return cls.from_mapping(overrides, base=base)

    def with_overrides(self, **overrides: Any) -> BridgeConfig:
        """Return a copy with CLI-style overrides applied (``None`` skipped)."""
        return self.from_mapping({k: v for k, v in overrides.items() if v is not None}, base=self)

    @property
    def candidates(self) -> tuple[TargetCandidate, ...]:
        """All candidates in scan order: socket list first, then HTTP list."""
        return self.socket_targets + self.http_targets
