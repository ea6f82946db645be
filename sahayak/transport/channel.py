"""Agent WebSocket channel.

Owns the aiohttp client session + WebSocket for one connection attempt and
reports lifecycle through a listener callback. Frame decoding lives in
frames.py; state decisions live in the session runtime.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from sahayak.config import SessionConfig
from sahayak.transport.errors import ChannelNotOpen, ConnectFailure, ProtocolError
from sahayak.transport.frames import decode_inbound
from sahayak.transport.ports import (
    ChannelClosed,
    ChannelError,
    ChannelEvent,
    ChannelFactory,
    ChannelListener,
    ChannelMessage,
    ChannelOpened,
)

log = logging.getLogger("transport.channel")


class WebSocketChannel:
    """One duplex connection to a fixed URL.

    open() returns immediately; the connection runs in a background task whose
    `finally` releases the socket and client session, including when close()
    cancels it mid-connect.
    """

    def __init__(
        self,
        url: str,
        on_event: ChannelListener,
        *,
        connect_timeout_s: float = 10.0,
        heartbeat_s: float | None = None,
    ):
        self.url = url
        self._on_event = on_event
        self._connect_timeout_s = connect_timeout_s
        self._heartbeat_s = heartbeat_s

        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None
        self._closing = False
        # Set once a terminal event (error/close) has been reported.
        self._finished = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed and not self._closing

    def open(self) -> None:
        if self._task is not None:
            raise RuntimeError("WebSocketChannel.open() called twice")
        self._task = asyncio.create_task(self._run())

    async def send(self, frame: dict[str, str]) -> None:
        ws = self._ws
        if ws is None or ws.closed or self._closing:
            raise ChannelNotOpen(f"Channel to {self.url} is not open")
        log.debug(f"-> {frame}")
        try:
            await ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise ConnectFailure(self.url, cause=e) from e

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        task = self._task
        # After a terminal event the task is already releasing on its own.
        if task and not task.done() and not self._finished:
            task.cancel()

    async def wait_closed(self) -> None:
        task = self._task
        if task is None:
            return
        # Cancelling the caller does not cancel the channel task.
        await asyncio.wait({task})

    def _emit(self, event: ChannelEvent) -> None:
        if self._closing or self._finished:
            return
        if isinstance(event, (ChannelError, ChannelClosed)):
            self._finished = True
        self._on_event(event)

    async def _run(self) -> None:
        session = aiohttp.ClientSession()
        try:
            try:
                ws = await asyncio.wait_for(
                    session.ws_connect(self.url, heartbeat=self._heartbeat_s),
                    timeout=self._connect_timeout_s,
                )
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                log.warning(
                    f"WebSocket connect to {self.url} failed: {type(e).__name__}: {e}"
                )
                self._emit(ChannelError(ConnectFailure(self.url, cause=e)))
                return

            self._ws = ws
            log.info(f"WebSocket connected to {self.url}")
            self._emit(ChannelOpened())
            await self._read_loop(ws)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception(f"WebSocket channel to {self.url} failed")
            self._emit(ChannelError(ConnectFailure(self.url, cause=e)))
        finally:
            ws = self._ws
            self._ws = None
            if ws is not None and not ws.closed:
                await ws.close()
            await session.close()

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                try:
                    items = decode_inbound(msg.data)
                except ProtocolError as e:
                    log.warning(f"Dropping inbound frame: {e}")
                    continue
                if not items:
                    log.debug("Ignoring inbound frame with no user/bot text")
                    continue
                log.debug(f"<- {items}")
                self._emit(ChannelMessage(items))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                cause = ws.exception() or ConnectionError("WebSocket error")
                log.warning(f"WebSocket {self.url} error: {cause}")
                self._emit(ChannelError(ConnectFailure(self.url, cause=cause)))
                return

        code = ws.close_code
        log.info(f"WebSocket {self.url} closed by peer (code={code})")
        self._emit(ChannelClosed(code=code, reason=""))


def websocket_channel_factory(config: SessionConfig) -> ChannelFactory:
    def _create(url: str, listener: ChannelListener) -> WebSocketChannel:
        return WebSocketChannel(
            url,
            listener,
            connect_timeout_s=config.connect_timeout_s,
            heartbeat_s=config.heartbeat_s,
        )

    return _create
