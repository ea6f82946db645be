"""Public API for the chat session.

This module is the stable boundary between:
- consumers (console, UI adapters, scripts)
- the concrete session implementation (runtime.py)

Code outside the session should depend on these types/protocols, not on
SessionManager internals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol


class ChannelState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class Speaker(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _SPEAKER_LABELS[self]

    @property
    def kind(self) -> str:
        return _SPEAKER_KINDS[self]


_SPEAKER_LABELS = {
    Speaker.USER: "You",
    Speaker.AGENT: "Sahayak",
    Speaker.SYSTEM: "System",
    Speaker.ERROR: "System",
}

_SPEAKER_KINDS = {
    Speaker.USER: "user",
    Speaker.AGENT: "bot",
    Speaker.SYSTEM: "system",
    Speaker.ERROR: "error",
}


@dataclass(frozen=True)
class ConversationRecord:
    speaker: Speaker
    text: str
    sequence: int


@dataclass(frozen=True)
class SessionIdentity:
    display_name: str
    preferred_language: str


# -----------------
# Event boundary
# -----------------


@dataclass(frozen=True)
class RecordAppended:
    record: ConversationRecord


@dataclass(frozen=True)
class StateChanged:
    previous: ChannelState
    current: ChannelState


SessionEvent = RecordAppended | StateChanged

SessionListener = Callable[[SessionEvent], None]


class SessionPort(Protocol):
    @property
    def state(self) -> ChannelState: ...

    def snapshot(self) -> tuple[ConversationRecord, ...]: ...

    def pending_count(self) -> int: ...

    async def send(self, text: str, *, wait: bool = False) -> None:
        """With wait=True, also returns (without raising) when reset() or
        aclose() abandons the message."""
        ...

    def close(self) -> None: ...

    def reset(self) -> None: ...

    async def aclose(self) -> None: ...
