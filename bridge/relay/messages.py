"""Server → client event builders.

Every event is a plain dict ready for ``send_json``:

    connection_established, discovery_result, esp32_connected,
    esp32_disconnected, message_sent, error
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

NOT_CONNECTED = "Not connected to ESP32"


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2025-08-06T22:10:28.123Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def connection_established(connection_id: str) -> dict[str, Any]:
    return {
        "type": "connection_established",
        "connectionId": connection_id,
        "timestamp": utc_timestamp(),
    }


def discovery_result(devices: Iterable[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "discovery_result",
        "devices": list(devices),
        "timestamp": utc_timestamp(),
    }


def esp32_connected(target: str) -> dict[str, Any]:
    return {"type": "esp32_connected", "target": target, "timestamp": utc_timestamp()}


def esp32_disconnected(target: str) -> dict[str, Any]:
    return {"type": "esp32_disconnected", "target": target, "timestamp": utc_timestamp()}


def message_sent() -> dict[str, Any]:
    return {"type": "message_sent", "timestamp": utc_timestamp()}


def error(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}
