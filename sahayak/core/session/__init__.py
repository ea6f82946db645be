"""Live chat session (core orchestration).

This package implements a single chat session with:
- lazy connection to the agent WebSocket, re-identified on every connect
- HTTP fallback when the channel is not open in time
- an append-only conversation log

Transports are injected via ports (see sahayak.transport.ports).
"""

from sahayak.core.session.api import (
    ChannelState,
    ConversationRecord,
    RecordAppended,
    SessionEvent,
    SessionIdentity,
    SessionListener,
    SessionPort,
    Speaker,
    StateChanged,
)
from sahayak.core.session.log import ConversationLog
from sahayak.core.session.runtime import SETTLE_DELAY_S, SessionManager

__all__ = [
    "ChannelState",
    "ConversationLog",
    "ConversationRecord",
    "RecordAppended",
    "SETTLE_DELAY_S",
    "SessionEvent",
    "SessionIdentity",
    "SessionListener",
    "SessionManager",
    "SessionPort",
    "Speaker",
    "StateChanged",
]
