"""SessionManager.

This is the single place that owns:
- the agent channel lifecycle (lazy connect, identification handshake, teardown)
- transport choice per outgoing message (open channel vs. HTTP fallback)
- the conversation log

Channel callbacks, settle-delay expiries and fallback completions are posted
to one inbox and applied one at a time by the actor loop. Everything runs on
the event loop thread; send() and close() make their state decisions without
awaiting, so no other handler can interleave with them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from sahayak.config import SessionConfig
from sahayak.core.session.api import (
    ChannelState,
    ConversationRecord,
    RecordAppended,
    SessionEvent,
    SessionIdentity,
    SessionListener,
    Speaker,
    StateChanged,
)
from sahayak.core.session.log import ConversationLog
from sahayak.transport.channel import websocket_channel_factory
from sahayak.transport.errors import SahayakError, SendFailure
from sahayak.transport.fallback import FallbackClient
from sahayak.transport.frames import AgentReply, UserEcho, handshake_frame, message_frame
from sahayak.transport.ports import (
    ChannelClosed,
    ChannelError,
    ChannelEvent,
    ChannelFactory,
    ChannelMessage,
    ChannelOpened,
    DuplexChannel,
    FallbackPayload,
    FallbackPort,
    PriorTurn,
)

# Wait after starting a connection before the first message falls back to HTTP.
SETTLE_DELAY_S = 1.0

FALLBACK_ERROR_TEXT = "Sorry, I encountered an error. Please try again."
CLOSED_NOTICE = "WebSocket connection closed."
CONNECT_FAILED_NOTICE = "Live connection unavailable."


@dataclass(frozen=True)
class _Outgoing:
    text: str
    sequence: int  # sequence of the user record this message came from
    epoch: int
    done: asyncio.Future[None] | None = None


@dataclass(frozen=True)
class _ChannelSignal:
    generation: int
    event: ChannelEvent


@dataclass(frozen=True)
class _Dispatch:
    item: _Outgoing


@dataclass(frozen=True)
class _SettleExpired:
    item: _Outgoing


@dataclass(frozen=True)
class _FallbackDone:
    item: _Outgoing
    reply: str | None


_InboxItem = _ChannelSignal | _Dispatch | _SettleExpired | _FallbackDone


class SessionManager:
    def __init__(
        self,
        *,
        url: str,
        identity: SessionIdentity | Callable[[], SessionIdentity],
        channel_factory: ChannelFactory,
        fallback: FallbackPort,
        listener: SessionListener | None = None,
        name: str = "default",
        settle_delay_s: float = SETTLE_DELAY_S,
    ):
        self.url = url
        self.name = name
        self._identity_source = identity
        self._channel_factory = channel_factory
        self._fallback = fallback
        self._listener = listener
        self._settle_delay_s = settle_delay_s
        self.log = logging.getLogger(f"session.{name}")

        self._conversation = ConversationLog()
        self._identity: SessionIdentity | None = None

        self._state = ChannelState.CLOSED
        self._channel: DuplexChannel | None = None
        # Bumped whenever the current channel is replaced or dropped; events
        # tagged with an older generation are ignored.
        self._generation = 0
        # Bumped on reset; outgoing work from an older epoch is ignored.
        self._epoch = 0

        self._inbox: asyncio.Queue[_InboxItem] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._inflight: dict[int, _Outgoing] = {}
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._fallback_tasks: set[asyncio.Task] = set()
        self._release_tasks: set[asyncio.Task] = set()

        self.shutting_down = False

    @classmethod
    def from_config(
        cls,
        config: SessionConfig,
        *,
        identity: SessionIdentity | Callable[[], SessionIdentity] | None = None,
        listener: SessionListener | None = None,
        name: str = "default",
    ) -> "SessionManager":
        return cls(
            url=config.ws_url,
            identity=identity
            or SessionIdentity(
                display_name=config.user_name, preferred_language=config.language
            ),
            channel_factory=websocket_channel_factory(config),
            fallback=FallbackClient.from_config(config),
            listener=listener,
            name=name,
        )

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -----------------
    # Read side
    # -----------------

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def identity(self) -> SessionIdentity | None:
        return self._identity

    def snapshot(self) -> tuple[ConversationRecord, ...]:
        return self._conversation.snapshot()

    def pending_count(self) -> int:
        return len(self._inflight)

    # -----------------
    # Commands
    # -----------------

    async def send(self, text: str, *, wait: bool = False) -> None:
        """Record `text` as a user turn and deliver it to the agent.

        The user record is appended before anything touches the network. With
        wait=True, returns once the message has been written to the channel or
        the fallback request has finished, or once reset() or aclose() has
        abandoned it.
        """
        text = (text or "").strip()
        if not text or self.shutting_down:
            return

        record = self._append(Speaker.USER, text)
        done: asyncio.Future[None] | None = None
        if wait:
            done = asyncio.get_running_loop().create_future()
        item = _Outgoing(text=text, sequence=record.sequence, epoch=self._epoch, done=done)
        self._inflight[item.sequence] = item
        self.ensure_running()

        if self._state is ChannelState.OPEN:
            self._post(_Dispatch(item))
        else:
            if self._state is ChannelState.CLOSED:
                self._connect()
            self._schedule_settle(item)

        if done is not None:
            await done

    def close(self) -> None:
        """User-initiated close. Synchronous and idempotent."""
        if self._channel is None and self._state is ChannelState.CLOSED:
            return
        self.log.info("Closing connection")
        self._drain_replies()
        self._drop_channel(via=ChannelState.CLOSING)
        self._append(Speaker.SYSTEM, CLOSED_NOTICE)

    def reset(self) -> None:
        """Full session reset: drop the channel, pending work, identity and log."""
        self.log.info("Resetting session")
        if self._channel is not None or self._state is not ChannelState.CLOSED:
            self._drop_channel(via=ChannelState.CLOSING)
        self._epoch += 1
        self._cancel_pending()
        self._identity = None
        self._conversation = ConversationLog()

    async def aclose(self) -> None:
        """Tear the session down and wait for network resources to be released."""
        self.shutting_down = True
        if self._channel is not None or self._state is not ChannelState.CLOSED:
            self._drop_channel(via=ChannelState.CLOSING)
        self._cancel_pending()

        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        background = [*self._fallback_tasks, *self._release_tasks]
        if background:
            await asyncio.gather(*background, return_exceptions=True)

    # -----------------
    # Actor loop
    # -----------------

    def ensure_running(self) -> None:
        if self.shutting_down:
            return
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())

    def _post(self, item: _InboxItem) -> None:
        if self.shutting_down:
            return
        self._inbox.put_nowait(item)
        self.ensure_running()

    async def _loop(self) -> None:
        try:
            while not self.shutting_down:
                item = await self._inbox.get()
                try:
                    await self._handle(item)
                except Exception:
                    self.log.exception("Session loop error")
        except asyncio.CancelledError:
            return

    async def _handle(self, item: _InboxItem) -> None:
        if isinstance(item, _ChannelSignal):
            await self._on_channel_signal(item)
            return

        if item.item.epoch != self._epoch:
            return

        if isinstance(item, _Dispatch):
            await self._dispatch(item.item, reason="connection lost")
        elif isinstance(item, _SettleExpired):
            self._timers.pop(item.item.sequence, None)
            await self._dispatch(item.item, reason="not connected after settle delay")
        elif isinstance(item, _FallbackDone):
            if item.reply is not None:
                self._append(Speaker.AGENT, item.reply)
            else:
                self._append(Speaker.ERROR, FALLBACK_ERROR_TEXT)
            self._finish(item.item)

    async def _on_channel_signal(self, signal: _ChannelSignal) -> None:
        if signal.generation != self._generation:
            self.log.debug(f"Ignoring {type(signal.event).__name__} from a retired channel")
            return

        event = signal.event
        if isinstance(event, ChannelOpened):
            if self._state is not ChannelState.CONNECTING:
                return
            self._set_state(ChannelState.OPEN)
            self.log.info(f"Connected to {self.url}")
            identity = self._capture_identity()
            try:
                await self._require_channel().send(
                    handshake_frame(identity.display_name, identity.preferred_language)
                )
            except SahayakError as e:
                self.log.warning(f"Handshake failed: {e}")
                self._drop_channel()
                self._append(Speaker.SYSTEM, CONNECT_FAILED_NOTICE)

        elif isinstance(event, ChannelMessage):
            self._append_inbound(event)

        elif isinstance(event, ChannelError):
            if self._state not in (ChannelState.CONNECTING, ChannelState.OPEN):
                return
            self.log.warning(f"Channel error: {event.cause}")
            self._drop_channel()
            self._append(Speaker.SYSTEM, CONNECT_FAILED_NOTICE)

        elif isinstance(event, ChannelClosed):
            self.log.info(f"Channel closed by peer (code={event.code}, reason={event.reason!r})")
            self._drop_channel()

    # -----------------
    # Transport helpers
    # -----------------

    def _append_inbound(self, event: ChannelMessage) -> None:
        for part in event.items:
            if isinstance(part, UserEcho):
                self._append(Speaker.USER, part.text)
            elif isinstance(part, AgentReply):
                self._append(Speaker.AGENT, part.text)

    def _drain_replies(self) -> None:
        """Apply messages the current channel delivered before close().

        They are already in the inbox but would be dropped as stale once the
        generation moves on. Other queued items keep their order.
        """
        kept: list[_InboxItem] = []
        while not self._inbox.empty():
            item = self._inbox.get_nowait()
            if (
                isinstance(item, _ChannelSignal)
                and item.generation == self._generation
                and isinstance(item.event, ChannelMessage)
            ):
                self._append_inbound(item.event)
            else:
                kept.append(item)
        for item in kept:
            self._inbox.put_nowait(item)

    def _capture_identity(self) -> SessionIdentity:
        if self._identity is None:
            source = self._identity_source
            self._identity = source if isinstance(source, SessionIdentity) else source()
        return self._identity

    def _require_channel(self) -> DuplexChannel:
        if self._channel is None:
            raise RuntimeError("No channel")
        return self._channel

    def _connect(self) -> None:
        self._capture_identity()
        self._generation += 1
        generation = self._generation

        def _listener(event: ChannelEvent) -> None:
            self._post(_ChannelSignal(generation, event))

        self._channel = self._channel_factory(self.url, _listener)
        self._set_state(ChannelState.CONNECTING)
        self.log.info(f"Connecting to {self.url}")
        try:
            self._channel.open()
        except SahayakError as e:
            self.log.warning(f"Could not start connection: {e}")
            self._drop_channel()
            self._append(Speaker.SYSTEM, CONNECT_FAILED_NOTICE)

    def _drop_channel(self, *, via: ChannelState | None = None) -> None:
        channel = self._channel
        self._channel = None
        self._generation += 1
        if via is not None:
            self._set_state(via)
        if channel is not None:
            self._retire(channel)
        self._set_state(ChannelState.CLOSED)

    def _retire(self, channel: DuplexChannel) -> None:
        channel.close()
        task = asyncio.create_task(channel.wait_closed())
        self._release_tasks.add(task)
        task.add_done_callback(self._release_tasks.discard)

    def _schedule_settle(self, item: _Outgoing) -> None:
        loop = asyncio.get_running_loop()
        self._timers[item.sequence] = loop.call_later(
            self._settle_delay_s, self._post, _SettleExpired(item)
        )

    async def _dispatch(self, item: _Outgoing, *, reason: str) -> None:
        channel = self._channel
        if self._state is ChannelState.OPEN and channel is not None:
            try:
                await channel.send(message_frame(item.text))
            except SahayakError as e:
                self.log.warning(f"Channel send failed, falling back to HTTP: {e}")
                if self._channel is channel:
                    self._drop_channel()
            else:
                self._finish(item)
                return
        else:
            self.log.info(f"Sending via HTTP fallback ({reason})")
        task = asyncio.create_task(self._run_fallback(item))
        self._fallback_tasks.add(task)
        task.add_done_callback(self._fallback_tasks.discard)

    async def _run_fallback(self, item: _Outgoing) -> None:
        identity = self._capture_identity()
        payload = FallbackPayload(
            message=item.text,
            user_name=identity.display_name,
            language=identity.preferred_language,
            prior_turns=tuple(
                PriorTurn(sender=r.speaker.label, text=r.text)
                for r in self._conversation.before(item.sequence)
            ),
        )
        reply: str | None = None
        try:
            reply = await self._fallback.request(payload)
        except SendFailure as e:
            self.log.warning(f"Fallback request failed: {e}")
        except Exception:
            self.log.exception("Fallback request failed")
        self._post(_FallbackDone(item, reply))

    def _finish(self, item: _Outgoing) -> None:
        self._inflight.pop(item.sequence, None)
        if item.done and not item.done.done():
            item.done.set_result(None)

    def _cancel_pending(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        for task in list(self._fallback_tasks):
            task.cancel()

        for item in self._inflight.values():
            if item.done and not item.done.done():
                item.done.set_result(None)
        self._inflight.clear()

    # -----------------
    # Log + notifications
    # -----------------

    def _set_state(self, state: ChannelState) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        self.log.debug(f"{previous.value} -> {state.value}")
        self._notify(StateChanged(previous=previous, current=state))

    def _append(self, speaker: Speaker, text: str) -> ConversationRecord:
        record = self._conversation.append(speaker, text)
        self._notify(RecordAppended(record))
        return record

    def _notify(self, event: SessionEvent) -> None:
        if self._listener is None:
            return
        try:
            self._listener(event)
        except Exception:
            self.log.exception("Session listener failed")
