"""bridge.discovery - ESP32 target discovery.

Exports:
    TargetProber          - WebSocket / HTTP reachability probe
    DiscoveryCoordinator  - ordered scan over the configured candidates
    DiscoveredDevice      - one reachable candidate
"""

from __future__ import annotations

from bridge.discovery.coordinator import DiscoveredDevice, DiscoveryCoordinator
from bridge.discovery.prober import TargetProber

__all__ = [
    "DiscoveredDevice",
    "DiscoveryCoordinator",
    "TargetProber",
]
