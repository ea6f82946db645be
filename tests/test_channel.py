"""WebSocketChannel against real aiohttp servers."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from sahayak.core.session import SessionIdentity
from sahayak.loopback_server import HANDSHAKES
from sahayak.transport.channel import WebSocketChannel
from sahayak.transport.errors import ChannelNotOpen, ConnectFailure
from sahayak.transport.frames import AgentReply
from sahayak.transport.ports import (
    ChannelClosed,
    ChannelError,
    ChannelMessage,
    ChannelOpened,
)
from tests.conftest import wait_until, ws_url


def _scripted_app(frames: list[str], *, close_after: bool) -> web.Application:
    """Agent that sends `frames` after the first inbound frame."""

    async def handle(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.receive()
        for frame in frames:
            await ws.send_str(frame)
        if close_after:
            await ws.close()
        else:
            async for _ in ws:
                pass
        return ws

    app = web.Application()
    app.router.add_get("/eca-agent", handle)
    return app


@pytest_asyncio.fixture
async def scripted():
    servers: list[TestServer] = []

    async def _start(frames: list[str], *, close_after: bool = False) -> TestServer:
        server = TestServer(_scripted_app(frames, close_after=close_after))
        await server.start_server()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        await server.close()


@pytest.mark.asyncio
async def test_open_handshake_and_reply(loopback):
    events = []
    channel = WebSocketChannel(ws_url(loopback), events.append, connect_timeout_s=2)

    channel.open()
    await wait_until(lambda: events)
    assert events == [ChannelOpened()]
    assert channel.is_open

    await channel.send({"name": "Asha", "language": "English"})
    await channel.send({"user": "Hello"})
    await wait_until(lambda: len(events) == 2)

    assert events[1] == ChannelMessage((AgentReply("Asha, you said: Hello"),))
    assert loopback.app[HANDSHAKES] == [
        SessionIdentity(display_name="Asha", preferred_language="English")
    ]

    channel.close()
    await channel.wait_closed()
    assert not channel.is_open
    assert len(events) == 2


@pytest.mark.asyncio
async def test_unreachable_endpoint_reports_one_error():
    events = []
    url = f"ws://127.0.0.1:{unused_port()}/eca-agent"
    channel = WebSocketChannel(url, events.append, connect_timeout_s=2)

    channel.open()
    await channel.wait_closed()

    assert len(events) == 1
    assert isinstance(events[0], ChannelError)
    assert isinstance(events[0].cause, ConnectFailure)
    assert events[0].cause.url == url


@pytest.mark.asyncio
async def test_send_before_open_raises():
    channel = WebSocketChannel("ws://127.0.0.1:1/eca-agent", lambda _e: None)

    with pytest.raises(ChannelNotOpen):
        await channel.send({"user": "Hello"})


@pytest.mark.asyncio
async def test_open_twice_raises(loopback):
    channel = WebSocketChannel(ws_url(loopback), lambda _e: None)
    channel.open()
    try:
        with pytest.raises(RuntimeError):
            channel.open()
    finally:
        channel.close()
        await channel.wait_closed()


@pytest.mark.asyncio
async def test_malformed_frames_are_dropped(scripted):
    server = await scripted(["not json", '{"bot": 3}', '{"bot": "still here"}'])
    events = []
    channel = WebSocketChannel(ws_url(server), events.append)

    channel.open()
    await wait_until(lambda: events)
    await channel.send({"name": "Asha", "language": "English"})
    await wait_until(lambda: len(events) == 2)

    assert events == [ChannelOpened(), ChannelMessage((AgentReply("still here"),))]
    channel.close()
    await channel.wait_closed()


@pytest.mark.asyncio
async def test_peer_close_reports_closed_once(scripted):
    server = await scripted(['{"bot": "bye"}'], close_after=True)
    events = []
    channel = WebSocketChannel(ws_url(server), events.append)

    channel.open()
    await wait_until(lambda: events)
    await channel.send({"name": "Asha", "language": "English"})
    await channel.wait_closed()

    assert events[0] == ChannelOpened()
    assert events[1] == ChannelMessage((AgentReply("bye"),))
    assert isinstance(events[2], ChannelClosed)
    assert len(events) == 3
    assert not channel.is_open


@pytest.mark.asyncio
async def test_close_while_connecting_emits_nothing(loopback):
    events = []
    channel = WebSocketChannel(ws_url(loopback), events.append)

    channel.open()
    channel.close()
    await channel.wait_closed()

    assert events == []
    assert not channel.is_open


@pytest.mark.asyncio
async def test_cancelling_a_waiter_leaves_the_channel_running(scripted):
    server = await scripted([])
    events = []
    channel = WebSocketChannel(ws_url(server), events.append)
    channel.open()
    await wait_until(lambda: channel.is_open)

    waiter = asyncio.create_task(channel.wait_closed())
    await asyncio.sleep(0.01)
    waiter.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert channel.is_open

    channel.close()
    await channel.wait_closed()
    assert events == [ChannelOpened()]
