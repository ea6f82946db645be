"""Ports (interfaces) for transport implementations.

The session layer depends on these contracts rather than on the aiohttp
implementations, so tests can drive it with in-memory doubles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol

from sahayak.transport.frames import InboundItem


@dataclass(frozen=True)
class ChannelOpened:
    pass


@dataclass(frozen=True)
class ChannelMessage:
    items: tuple[InboundItem, ...]


@dataclass(frozen=True)
class ChannelError:
    cause: BaseException


@dataclass(frozen=True)
class ChannelClosed:
    code: int | None = None
    reason: str = ""


ChannelEvent = ChannelOpened | ChannelMessage | ChannelError | ChannelClosed

ChannelListener = Callable[[ChannelEvent], None]


@dataclass(frozen=True)
class PriorTurn:
    sender: str
    text: str


@dataclass(frozen=True)
class FallbackPayload:
    """Same logical payload the duplex channel carries, in one request."""

    message: str
    user_name: str
    language: str
    prior_turns: tuple[PriorTurn, ...] = field(default_factory=tuple)

    def to_json(self) -> dict[str, object]:
        return {
            "message": self.message,
            "userName": self.user_name,
            "language": self.language,
            "conversationHistory": [
                {"sender": t.sender, "text": t.text} for t in self.prior_turns
            ],
        }


class DuplexChannel(Protocol):
    """One duplex connection to a fixed URL.

    Exactly one ChannelOpened or terminal ChannelError follows open(); at most
    one ChannelClosed follows ChannelOpened; nothing follows ChannelClosed or
    an explicit close().
    """

    url: str

    @property
    def is_open(self) -> bool: ...

    def open(self) -> None: ...

    async def send(self, frame: dict[str, str]) -> None: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


# Builds a channel for a URL that reports its events to the given listener.
ChannelFactory = Callable[[str, ChannelListener], DuplexChannel]


class FallbackPort(Protocol):
    async def request(self, payload: FallbackPayload) -> str: ...
