"""Discovery coordinator: scans the configured candidate lists.

The socket list is scanned first, then the HTTP list, each in configured
priority order.  Results keep that order so the client can prefer earlier
entries (the first socket entry is the last known good address).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from bridge.config import BridgeConfig, TargetCandidate, TargetKind
from bridge.discovery.prober import TargetProber

logger = logging.getLogger(__name__)

REACHABLE = "reachable"


class Prober(Protocol):
    async def probe(self, candidate: TargetCandidate, timeout: float = ...) -> bool: ...


@dataclass(frozen=True)
class DiscoveredDevice:
    kind: TargetKind
    target: str
    status: str = REACHABLE

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind.value, "target": self.target, "status": self.status}


class DiscoveryCoordinator:
    """Runs the prober over every configured candidate.

    Args:
        config: Supplies both candidate lists, the per-probe timeout and
                whether probes may run concurrently.
        prober: Anything with an async ``probe(candidate, timeout)``.
    """

    def __init__(self, config: BridgeConfig, prober: Prober | None = None) -> None:
        self.config = config
        self.prober = prober if prober is not None else TargetProber()

    async def discover(self) -> list[DiscoveredDevice]:
        """Probe all candidates and return the reachable ones in scan order."""
        candidates = self.config.candidates
        if self.config.parallel_discovery:
            results = await asyncio.gather(
                *(self._probe_one(c) for c in candidates)
            )
        else:
            results = [await self._probe_one(c) for c in candidates]

        devices = [
            DiscoveredDevice(kind=c.kind, target=c.address)
            for c, reachable in zip(candidates, results)
            if reachable
        ]
        logger.info(
            "Discovery complete: %d of %d candidate(s) reachable",
            len(devices), len(candidates),
        )
        return devices

    async def _probe_one(self, candidate: TargetCandidate) -> bool:
        """Probe a single candidate; a raising prober counts as unreachable."""
        try:
            return bool(await self.prober.probe(candidate, self.config.probe_timeout))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "%s probe failed for %s: %s",
                candidate.kind.value, candidate.address, exc,
            )
            return False
