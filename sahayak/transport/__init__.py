"""Agent transports: WebSocket channel and HTTP fallback."""

from sahayak.transport.channel import WebSocketChannel, websocket_channel_factory
from sahayak.transport.errors import (
    ChannelNotOpen,
    ConnectFailure,
    NetworkError,
    ProtocolError,
    SahayakError,
    SendFailure,
    ServerError,
)
from sahayak.transport.fallback import FallbackClient
from sahayak.transport.ports import (
    ChannelFactory,
    DuplexChannel,
    FallbackPayload,
    FallbackPort,
    PriorTurn,
)

__all__ = [
    "ChannelFactory",
    "ChannelNotOpen",
    "ConnectFailure",
    "DuplexChannel",
    "FallbackClient",
    "FallbackPayload",
    "FallbackPort",
    "NetworkError",
    "PriorTurn",
    "ProtocolError",
    "SahayakError",
    "SendFailure",
    "ServerError",
    "WebSocketChannel",
    "websocket_channel_factory",
]
