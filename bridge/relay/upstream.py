"""WebSocket link from the bridge to one ESP32.

Uses :mod:`aiohttp` for the client transport.  A reader task forwards each
frame the device sends as soon as it arrives and reports the end of the link
(clean close or error) exactly once, unless the owner closed the link itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Union

import aiohttp

from bridge.config import TargetCandidate

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]
MessageCallback = Callable[["UpstreamLink", Frame], Awaitable[None]]
ClosedCallback = Callable[["UpstreamLink", "str | None"], Awaitable[None]]


class UpstreamError(Exception):
    """Raised when the device link cannot be opened or written to."""


def _describe(exc: BaseException | None) -> str:
    if exc is None:
        return "connection error"
    return str(exc) or exc.__class__.__name__


def _lost(ws: aiohttp.ClientWebSocketResponse) -> str:
    exc = ws.exception()
    if exc is not None:
        return _describe(exc)
    return "connection lost"


class UpstreamLink:
    """One live WebSocket connection to a device.

    Parameters
    ----------
    target:
        The device to connect to.
    on_message:
        Awaited for every TEXT/BINARY frame, in arrival order.
    on_closed:
        Awaited once when the device side ends the link.  The second argument
        is a human-readable cause on error, ``None`` on a clean close.
    """

    def __init__(
        self,
        target: TargetCandidate,
        on_message: MessageCallback,
        on_closed: ClosedCallback,
        *,
        connect_timeout: float = 5.0,
        send_timeout: float = 5.0,
    ) -> None:
        self.target = target
        self.connect_timeout = connect_timeout
        self.send_timeout = send_timeout
        self._on_message = on_message
        self._on_closed = on_closed
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task | None = None
        self._closing = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def closed(self) -> bool:
        return self._closing or self._ws is None or self._ws.closed

    async def open(self) -> None:
        """Connect and start the reader task.

        Raises:
            UpstreamError: refused, handshake failed, or no answer within
                ``connect_timeout``.
        """
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.target.ws_url(), ssl=False),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as exc:
            await self._release()
            raise UpstreamError(
                f"timed out after {self.connect_timeout:g}s connecting to {self.target.address}"
            ) from exc
        except asyncio.CancelledError:
            await self._release()
            raise
        except Exception as exc:
            await self._release()
            raise UpstreamError(_describe(exc)) from exc

        self._reader = asyncio.create_task(
            self._read_loop(), name=f"upstream-reader-{self.target.address}"
        )
        logger.info("Upstream link open: %s", self.target.address)

    async def send(self, data: Frame) -> None:
        """Write one frame to the device within ``send_timeout``."""
        ws = self._ws
        if self._closing or ws is None or ws.closed:
            raise UpstreamError("Upstream link is closed")
        write = ws.send_bytes(data) if isinstance(data, bytes) else ws.send_str(data)
        try:
            await asyncio.wait_for(write, timeout=self.send_timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(f"send timed out after {self.send_timeout:g}s") from exc
        except Exception as exc:
            raise UpstreamError(_describe(exc)) from exc

    async def close(self) -> None:
        """Close the link without firing ``on_closed``.  Idempotent."""
        if self._closing:
            return
        self._closing = True
        reader = self._reader
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        await self._release()
        logger.info("Upstream link closed: %s", self.target.address)

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        error: str | None = None
        try:
            while True:
                msg = await ws.receive()
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    await self._on_message(self, msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = _describe(msg.data or ws.exception())
                    break
                elif msg.type == aiohttp.WSMsgType.CLOSED:
                    # Stream ended without a close handshake.
                    error = _lost(ws)
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING):
                    if ws.close_code == aiohttp.WSCloseCode.ABNORMAL_CLOSURE:
                        error = _lost(ws)
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Upstream read failed for %s: %s", self.target.address, exc)
            error = _describe(exc)

        if self._closing:
            return
        self._closing = True
        await self._release()
        logger.info(
            "Upstream link ended: %s%s",
            self.target.address,
            f" ({error})" if error else "",
        )
        await self._on_closed(self, error)

    async def _release(self) -> None:
        if self._ws is not None and not self._ws.closed:
            try:
                await asyncio.wait_for(self._ws.close(), timeout=self.send_timeout)
            except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as exc:
                logger.debug("Error closing upstream socket %s: %s", self.target.address, exc)
        if self._session is not None and not self._session.closed:
            await self._session.close()
