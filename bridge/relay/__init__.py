"""bridge.relay - client sessions and the device relay.

Exports:
    Session          - one client connection and its optional device link
    SessionState     - ``unbound`` / ``bound``
    SessionRegistry  - process-wide id → session mapping
    UpstreamLink     - WebSocket link to one ESP32
    UpstreamError    - device link could not be opened or written
"""

from __future__ import annotations

from bridge.relay.registry import SessionRegistry
from bridge.relay.session import Session, SessionState
from bridge.relay.upstream import UpstreamError, UpstreamLink

__all__ = [
    "Session",
    "SessionRegistry",
    "SessionState",
    "UpstreamError",
    "UpstreamLink",
]
