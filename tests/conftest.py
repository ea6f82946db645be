"""Shared fixtures: in-memory channel/fallback doubles and a loopback agent."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from sahayak.core.session import SessionIdentity, SessionManager
from sahayak.loopback_server import build_loopback_app
from sahayak.transport.errors import ChannelNotOpen, ConnectFailure
from sahayak.transport.frames import AgentReply, InboundItem
from sahayak.transport.ports import (
    ChannelClosed,
    ChannelError,
    ChannelListener,
    ChannelMessage,
    ChannelOpened,
    FallbackPayload,
)

TEST_URL = "ws://agent.test/eca-agent"
TEST_SETTLE_S = 0.05


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("Timed out waiting for condition")
        await asyncio.sleep(0.005)


class FakeChannel:
    """Channel double driven by the test.

    Unlike the real channel it keeps delivering events after close(), so tests
    can simulate events racing an explicit close.
    """

    def __init__(self, url: str, listener: ChannelListener):
        self.url = url
        self.listener = listener
        self.sent: list[dict[str, str]] = []
        self.opened = False
        self.closed = False
        self.fail_send = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open and not self.closed

    def open(self) -> None:
        self.opened = True

    async def send(self, frame: dict[str, str]) -> None:
        if not self.is_open:
            raise ChannelNotOpen(f"Channel to {self.url} is not open")
        if self.fail_send:
            raise ConnectFailure(self.url, cause=ConnectionResetError("reset by peer"))
        self.sent.append(frame)

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    # Test drivers

    def accept(self) -> None:
        self._open = True
        self.listener(ChannelOpened())

    def fail(self, cause: BaseException | None = None) -> None:
        self._open = False
        self.listener(ChannelError(cause or ConnectionRefusedError("refused")))

    def deliver(self, *items: InboundItem) -> None:
        self.listener(ChannelMessage(tuple(items)))

    def reply(self, text: str) -> None:
        self.deliver(AgentReply(text))

    def drop(self, code: int = 1006) -> None:
        self._open = False
        self.listener(ChannelClosed(code=code, reason=""))


class FakeChannelFactory:
    """Creates FakeChannels. mode="refuse" fails every connect right away."""

    def __init__(self, mode: str = "manual"):
        self.mode = mode
        self.channels: list[FakeChannel] = []

    def __call__(self, url: str, listener: ChannelListener) -> FakeChannel:
        channel = FakeChannel(url, listener)
        self.channels.append(channel)
        if self.mode == "refuse":
            asyncio.get_running_loop().call_soon(channel.fail)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


class FakeFallback:
    """Fallback double. Queue replies (str) or exceptions in `outcomes`."""

    def __init__(self) -> None:
        self.requests: list[FallbackPayload] = []
        self.outcomes: deque[Any] = deque()
        self.gate: asyncio.Event | None = None

    async def request(self, payload: FallbackPayload) -> str:
        self.requests.append(payload)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.popleft() if self.outcomes else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def identity() -> SessionIdentity:
    return SessionIdentity(display_name="Asha", preferred_language="English")


@pytest.fixture
def channels() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def fallback() -> FakeFallback:
    return FakeFallback()


@pytest_asyncio.fixture
async def make_session(
    identity: SessionIdentity,
    channels: FakeChannelFactory,
    fallback: FakeFallback,
) -> AsyncIterator[Callable[..., SessionManager]]:
    created: list[SessionManager] = []

    def _make(**overrides: Any) -> SessionManager:
        kwargs: dict[str, Any] = {
            "url": TEST_URL,
            "identity": identity,
            "channel_factory": channels,
            "fallback": fallback,
            "settle_delay_s": TEST_SETTLE_S,
        }
        kwargs.update(overrides)
        session = SessionManager(**kwargs)
        created.append(session)
        return session

    yield _make

    for session in created:
        await session.aclose()


@pytest_asyncio.fixture
async def loopback() -> AsyncIterator[TestServer]:
    server = TestServer(build_loopback_app())
    await server.start_server()
    yield server
    await server.close()


def ws_url(server: TestServer, path: str = "/eca-agent") -> str:
    return str(server.make_url(path)).replace("http://", "ws://", 1)


def api_url(server: TestServer, path: str = "/api/english-communication") -> str:
    return str(server.make_url(path))
