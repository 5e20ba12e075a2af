"""Client command parsing.

Each client frame is JSON.  The ``command`` field selects one of a closed set
of variants; any other object becomes a :class:`RawForward` that is relayed
to the device untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union


class CommandParseError(ValueError):
    """Raised when a client frame cannot be turned into a command."""


@dataclass(frozen=True)
class DiscoverCommand:
    pass


@dataclass(frozen=True)
class ConnectCommand:
    target: str


@dataclass(frozen=True)
class SendCommand:
    payload: Any = None


@dataclass(frozen=True)
class RawForward:
    body: dict[str, Any]


Command = Union[DiscoverCommand, ConnectCommand, SendCommand, RawForward]


def parse_command(raw: str | bytes) -> Command:
    """Parse one client frame.

    Raises:
        CommandParseError: the frame is not JSON, not a JSON object, or a
            ``connect`` without a usable ``target``.
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise CommandParseError(f"Invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise CommandParseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )

    command = data.get("command")
    if command == "discover":
        return DiscoverCommand()
    if command == "connect":
        target = data.get("target")
        if not isinstance(target, str) or not target.strip():
            raise CommandParseError("connect requires a 'target' of the form host:port")
        return ConnectCommand(target=target.strip())
    if command == "send":
        return SendCommand(payload=data.get("payload"))
    return RawForward(body=data)


def encode(value: Any) -> str:
    """Compact JSON, matching what browsers produce with ``JSON.stringify``."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
