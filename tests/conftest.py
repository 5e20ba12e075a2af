"""pytest configuration and shared fakes for the bridge tests."""

from __future__ import annotations

import asyncio
import json
import socket
from typing import Any, Callable

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from bridge.config import BridgeConfig, TargetCandidate, TargetKind


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


# ── Helpers ───────────────────────────────────────────────────────


def unused_port() -> int:
    """A localhost port with (almost certainly) no listener."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll *predicate* until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within %.1fs" % timeout)
        await asyncio.sleep(0.01)


class FakeClient:
    """Stands in for the client-side Starlette WebSocket."""

    def __init__(self, fail_sends: bool = False) -> None:
        self.sent: list[str | bytes] = []
        self.closed = False
        self.fail_sends = fail_sends

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("client went away")
        self.sent.append(data)

    async def send_bytes(self, data: bytes) -> None:
        if self.fail_sends:
            raise RuntimeError("client went away")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True

    def events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        """Sent frames that decode to bridge events (dicts with a ``type``)."""
        out = []
        for frame in self.sent:
            if not isinstance(frame, str):
                continue
            try:
                data = json.loads(frame)
            except ValueError:
                continue
            if isinstance(data, dict) and "type" in data:
                if event_type is None or data["type"] == event_type:
                    out.append(data)
        return out


class FakeProber:
    """Scripted prober: address → bool, or an exception to raise."""

    def __init__(self, results: dict[str, Any] | None = None) -> None:
        self.results = results or {}
        self.calls: list[TargetCandidate] = []

    async def probe(self, candidate: TargetCandidate, timeout: float = 2.0) -> bool:
        self.calls.append(candidate)
        key = f"{candidate.kind.value}://{candidate.address}"
        result = self.results.get(key, self.results.get(candidate.address, False))
        if isinstance(result, Exception):
            raise result
        return result


class FakeDevice:
    """A minimal ESP32: echoes WebSocket frames on ``/`` and serves ``/status``."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.received: list[str | bytes] = []
        self.sockets: list[web.WebSocketResponse] = []
        self.transports: list[asyncio.Transport] = []
        self.disconnects = 0
        self.echo = True
        app = web.Application()
        app.router.add_get("/", self._ws_handler)
        app.router.add_get("/status", self._status)
        self.server = TestServer(app, host="127.0.0.1")

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    async def start(self) -> None:
        await self.server.start_server()

    async def stop(self) -> None:
        await self.drop_clients()
        await self.server.close()

    async def broadcast(self, data: str | bytes) -> None:
        for ws in list(self.sockets):
            if isinstance(data, bytes):
                await ws.send_bytes(data)
            else:
                await ws.send_str(data)

    async def drop_clients(self) -> None:
        for ws in list(self.sockets):
            await ws.close()

    def abort_clients(self) -> None:
        """Cut every connection without a close handshake."""
        for transport in list(self.transports):
            transport.abort()

    def send_malformed(self) -> None:
        """Write a frame with reserved bits set, which clients must reject."""
        for transport in list(self.transports):
            transport.write(b"\xf1\x00")

    async def _ws_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        transport = request.transport
        self.transports.append(transport)
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self.received.append(msg.data)
                    if self.echo:
                        await ws.send_str(msg.data)
                elif msg.type == WSMsgType.BINARY:
                    self.received.append(msg.data)
                    if self.echo:
                        await ws.send_bytes(msg.data)
        finally:
            self.sockets.remove(ws)
            self.transports.remove(transport)
            self.disconnects += 1
        return ws

    async def _status(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": self.status_code == 200}, status=self.status_code)


class SilentServer:
    """Accepts TCP connections and never answers."""

    def __init__(self) -> None:
        self._server: asyncio.AbstractServer | None = None
        self._writers: list[asyncio.StreamWriter] = []
        self.port = 0

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        assert self._server is not None
        self._server.close()
        for writer in self._writers:
            writer.close()
        try:
            await asyncio.wait_for(self._server.wait_closed(), timeout=2.0)
        except asyncio.TimeoutError:
            pass

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        await reader.read()
        writer.close()


# ── Fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(
        socket_targets=(),
        http_targets=(),
        probe_timeout=0.5,
        connect_timeout=1.0,
        send_timeout=1.0,
    )


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest_asyncio.fixture
async def device():
    dev = FakeDevice()
    await dev.start()
    yield dev
    await dev.stop()


@pytest_asyncio.fixture
async def device_factory():
    """Start any number of extra fake devices; all are stopped afterwards."""
    started: list[FakeDevice] = []

    async def _make(**kwargs: Any) -> FakeDevice:
        dev = FakeDevice(**kwargs)
        await dev.start()
        started.append(dev)
        return dev

    yield _make
    for dev in started:
        await dev.stop()


@pytest_asyncio.fixture
async def silent_server():
    srv = SilentServer()
    await srv.start()
    yield srv
    await srv.stop()


def socket_target(address: str) -> TargetCandidate:
    return TargetCandidate.parse(address, TargetKind.SOCKET)


def http_target(address: str) -> TargetCandidate:
    return TargetCandidate.parse(address, TargetKind.REQUEST)
