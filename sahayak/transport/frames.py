"""Frame encoding/decoding for the agent WebSocket.

Inbound frames are decoded once here into a closed set of item types; the
session layer never looks at raw JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from sahayak.transport.errors import ProtocolError

_PREVIEW_CHARS = 120


@dataclass(frozen=True)
class UserEcho:
    """The agent echoing/confirming what the user said."""

    text: str


@dataclass(frozen=True)
class AgentReply:
    text: str


InboundItem = UserEcho | AgentReply


def _preview(raw: object) -> str:
    text = raw if isinstance(raw, str) else repr(raw)
    if len(text) > _PREVIEW_CHARS:
        return text[:_PREVIEW_CHARS] + "..."
    return text


def handshake_frame(name: str, language: str) -> dict[str, str]:
    return {"name": name, "language": language}


def message_frame(text: str) -> dict[str, str]:
    return {"user": text}


def decode_inbound(raw: str | bytes) -> tuple[InboundItem, ...]:
    """Decode one inbound frame.

    A frame may carry a `user` echo, a `bot` reply, or both; the echo comes
    first. Empty strings are treated as absent. Raises ProtocolError for
    anything that is not a JSON object with string fields.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError("frame is not UTF-8", payload_preview=_preview(raw)) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolError("frame is not JSON", payload_preview=_preview(raw)) from e

    if not isinstance(data, dict):
        raise ProtocolError("frame is not a JSON object", payload_preview=_preview(raw))

    items: list[InboundItem] = []
    for key, kind in (("user", UserEcho), ("bot", AgentReply)):
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ProtocolError(
                f"field {key!r} is not a string", payload_preview=_preview(raw)
            )
        if value:
            items.append(kind(value))
    return tuple(items)
