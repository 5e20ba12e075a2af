"""Reachability probes for ESP32 candidates.

Two probe styles, one per :class:`~bridge.config.TargetKind`:

  - ``websocket``: complete a WebSocket handshake, then close it at once
  - ``http``:      ``GET /status`` and expect a 200

Probe failures are expected on a LAN full of stale addresses, so every error
and timeout collapses to ``False``.  The whole attempt runs under
:func:`asyncio.wait_for`, which cancels the in-flight connection when the
budget runs out.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import httpx

from bridge.config import TargetCandidate, TargetKind

logger = logging.getLogger(__name__)

STATUS_PATH = "/status"
DEFAULT_TIMEOUT = 2.0


class TargetProber:
    """Stateless reachability checker."""

    async def probe(self, candidate: TargetCandidate, timeout: float = DEFAULT_TIMEOUT) -> bool:
        """Return ``True`` if *candidate* answered within *timeout* seconds."""
        if candidate.kind is TargetKind.SOCKET:
            attempt = self._probe_socket(candidate, timeout)
        else:
            attempt = self._probe_request(candidate, timeout)
        try:
            reachable = await asyncio.wait_for(attempt, timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug("Probe timed out: %s (%s)", candidate.address, candidate.kind.value)
            return False
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "Probe failed: %s (%s): %s", candidate.address, candidate.kind.value, exc
            )
            return False
        logger.debug(
            "Probe %s: %s (%s)",
            "OK" if reachable else "negative",
            candidate.address,
            candidate.kind.value,
        )
        return reachable

    async def _probe_socket(self, candidate: TargetCandidate, timeout: float) -> bool:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.ws_connect(
                candidate.ws_url(),
                autoping=False,
                ssl=False,
            ) as ws:
                await ws.close()
        return True

    async def _probe_request(self, candidate: TargetCandidate, timeout: float) -> bool:
        async with httpx.AsyncClient(
            verify=False,  # device tunnels often use self-signed certs
            timeout=timeout,
            trust_env=False,
        ) as client:
            resp = await client.get(candidate.http_url(STATUS_PATH))
        return resp.status_code == 200
