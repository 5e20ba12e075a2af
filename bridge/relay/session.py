"""Per-client relay session.

A session owns the client WebSocket and, while *bound*, exactly one upstream
link to a device.  All of its mutable state is changed only by its own
methods: the client receive loop calls :meth:`Session.handle_frame`, and the
upstream reader calls back into the session for frames and for the end of
the link.

Client → bridge commands:
    discover, connect, send, <anything else is forwarded raw>

Bridge → client events:
    discovery_result, esp32_connected, esp32_disconnected, message_sent, error
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Protocol

from bridge.config import BridgeConfig, TargetCandidate, TargetKind
from bridge.discovery.coordinator import DiscoveryCoordinator
from bridge.relay import messages
from bridge.relay.commands import (
    Command,
    CommandParseError,
    ConnectCommand,
    DiscoverCommand,
    RawForward,
    SendCommand,
    encode,
    parse_command,
)
from bridge.relay.upstream import Frame, UpstreamError, UpstreamLink

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    UNBOUND = "unbound"
    BOUND = "bound"


class ClientChannel(Protocol):
    """The subset of :class:`starlette.websockets.WebSocket` a session uses."""

    async def send_text(self, data: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class Session:
    """Tracks one client connection and its optional device link."""

    def __init__(
        self,
        session_id: str,
        websocket: ClientChannel,
        coordinator: DiscoveryCoordinator,
        config: BridgeConfig,
    ) -> None:
        self.id = session_id
        self.websocket = websocket
        self.coordinator = coordinator
        self.config = config
        self.connected_at = time.time()
        self._upstream: UpstreamLink | None = None
        self._target: TargetCandidate | None = None
        self._send_lock = asyncio.Lock()
        self._closed = False

    # ── State ─────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return SessionState.BOUND if self._upstream is not None else SessionState.UNBOUND

    @property
    def upstream(self) -> UpstreamLink | None:
        return self._upstream

    @property
    def bound_target(self) -> TargetCandidate | None:
        return self._target

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def uptime(self) -> float:
        """Seconds since the client connected."""
        return time.time() - self.connected_at

    # ── Client side ───────────────────────────────────────────────

    async def send_to_client(self, message: dict[str, Any] | Frame) -> bool:
        """Send an event (dict) or a relayed frame to the client.

        A failed send means the client is gone: the session tears itself
        down and ``False`` is returned.
        """
        if self._closed:
            return False
        try:
            async with self._send_lock:
                if isinstance(message, bytes):
                    write = self.websocket.send_bytes(message)
                elif isinstance(message, str):
                    write = self.websocket.send_text(message)
                else:
                    write = self.websocket.send_text(encode(message))
                await asyncio.wait_for(write, timeout=self.config.send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.info("Send to client %s failed, closing session: %s", self.id, exc)
            await self._client_gone()
            return False
        return True

    async def handle_frame(self, raw: str | bytes) -> None:
        """Parse one client frame and run the resulting command."""
        if self._closed:
            return
        try:
            command = parse_command(raw)
        except CommandParseError as exc:
            logger.info("Bad frame from %s: %s", self.id, exc)
            await self.send_to_client(messages.error(str(exc)))
            return
        await self.dispatch(command)

    async def dispatch(self, command: Command) -> None:
        if isinstance(command, DiscoverCommand):
            await self.discover()
        elif isinstance(command, ConnectCommand):
            await self.connect(command.target)
        elif isinstance(command, SendCommand):
            await self.send(command.payload)
        elif isinstance(command, RawForward):
            await self.forward(command.body)
        else:
            raise TypeError(f"Unknown command variant: {command!r}")

    # ── Commands ──────────────────────────────────────────────────

    async def discover(self) -> None:
        logger.info("Discover requested by %s", self.id)
        try:
            devices = await self.coordinator.discover()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Discovery failed for %s", self.id)
            await self.send_to_client(messages.error(f"Discovery failed: {exc}"))
            return
        await self.send_to_client(messages.discovery_result(d.to_dict() for d in devices))

    async def connect(self, target: str) -> None:
        """Bind to *target*, replacing any existing device link."""
        try:
            candidate = TargetCandidate.parse(target, TargetKind.SOCKET)
        except ValueError as exc:
            await self.send_to_client(messages.error(str(exc)))
            return

        if self._upstream is not None:
            await self.disconnect_upstream(notify=True)

        logger.info("Connecting %s to ESP32 %s", self.id, candidate.address)
        link = UpstreamLink(
            candidate,
            on_message=self._on_upstream_message,
            on_closed=self._on_upstream_closed,
            connect_timeout=self.config.connect_timeout,
            send_timeout=self.config.send_timeout,
        )
        try:
            await link.open()
        except UpstreamError as exc:
            logger.warning("ESP32 connect failed for %s -> %s: %s", self.id, candidate.address, exc)
            await self.send_to_client(messages.error(f"Failed to connect to ESP32: {exc}"))
            return

        if self._closed:
            # Client left while the handshake was in flight.
            await link.close()
            return

        self._upstream = link
        self._target = candidate
        logger.info("Session %s bound to %s", self.id, candidate.address)
        await self.send_to_client(messages.esp32_connected(candidate.address))

    async def send(self, payload: Any) -> None:
        if await self._write_upstream(encode(payload)):
            await self.send_to_client(messages.message_sent())

    async def forward(self, body: dict[str, Any]) -> None:
        await self._write_upstream(encode(body))

    # ── Teardown ──────────────────────────────────────────────────

    async def disconnect_upstream(self, notify: bool = True) -> None:
        """Drop the device link, if any.  State is cleared before closing."""
        link, target = self._upstream, self._target
        if link is None or target is None:
            return
        self._upstream = None
        self._target = None
        await link.close()
        logger.info("Session %s unbound from %s", self.id, target.address)
        if notify:
            await self.send_to_client(messages.esp32_disconnected(target.address))

    async def close(self) -> None:
        """Terminal teardown: release the device link.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.disconnect_upstream(notify=False)
        logger.info("Session %s closed after %.1fs", self.id, self.uptime)

    async def _client_gone(self) -> None:
        await self.close()
        try:
            await self.websocket.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Closing client socket %s: %s", self.id, exc)

    # ── Upstream side ─────────────────────────────────────────────

    async def _write_upstream(self, data: str) -> bool:
        link = self._upstream
        if link is None:
            await self.send_to_client(messages.error(messages.NOT_CONNECTED))
            return False
        try:
            await link.send(data)
        except UpstreamError as exc:
            logger.warning("Send to ESP32 failed for %s: %s", self.id, exc)
            await self.send_to_client(messages.error(f"Failed to send to ESP32: {exc}"))
            await self.disconnect_upstream(notify=True)
            return False
        return True

    async def _on_upstream_message(self, link: UpstreamLink, frame: Frame) -> None:
        if link is not self._upstream:
            return
        await self.send_to_client(frame)

    async def _on_upstream_closed(self, link: UpstreamLink, error: str | None) -> None:
        if link is not self._upstream or self._target is None:
            return
        target = self._target
        self._upstream = None
        self._target = None
        if error:
            await self.send_to_client(messages.error(f"ESP32 connection error: {error}"))
        await self.send_to_client(messages.esp32_disconnected(target.address))
