"""Session configuration, resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from sahayak.utils import env_float

WS_ENDPOINT_DEFAULT = "/eca-agent"
API_ENDPOINT_DEFAULT = "/api/english-communication"


def get_ws_url(endpoint: str = "") -> str:
    # Always the agent host, never the page/API host.
    host = (os.getenv("SAHAYAK_WS_HOST") or "localhost:8000").strip()
    protocol = (os.getenv("SAHAYAK_WS_PROTOCOL") or "ws").strip()
    return f"{protocol}://{host}{endpoint}"


def get_api_url(endpoint: str = "") -> str:
    base_url = (os.getenv("SAHAYAK_API_BASE_URL") or "http://localhost:8000").strip()
    return f"{base_url.rstrip('/')}{endpoint}"


@dataclass(frozen=True)
class SessionConfig:
    ws_url: str
    api_url: str
    connect_timeout_s: float = 10.0
    heartbeat_s: float | None = None
    http_timeout_s: float = 30.0
    user_name: str = "User"
    language: str = "English"


def get_session_config() -> SessionConfig:
    ws_endpoint = os.getenv("SAHAYAK_WS_ENDPOINT", WS_ENDPOINT_DEFAULT)
    api_endpoint = os.getenv("SAHAYAK_API_ENDPOINT", API_ENDPOINT_DEFAULT)

    return SessionConfig(
        ws_url=get_ws_url(ws_endpoint),
        api_url=get_api_url(api_endpoint),
        connect_timeout_s=env_float("SAHAYAK_WS_CONNECT_TIMEOUT_S", 10.0) or 10.0,
        heartbeat_s=env_float("SAHAYAK_WS_HEARTBEAT_S", None),
        http_timeout_s=env_float("SAHAYAK_HTTP_TIMEOUT_S", 30.0) or 30.0,
        user_name=(os.getenv("SAHAYAK_USER_NAME") or "User").strip() or "User",
        language=(os.getenv("SAHAYAK_LANGUAGE") or "English").strip() or "English",
    )
