"""Loopback agent server for development and tests.

Serves the agent contract the session talks to:
- WebSocket at `ws_path`: first frame is the {name, language} handshake, then
  every {"user": ...} frame is answered with {"bot": ...}
- POST at `api_path`: the HTTP fallback, answered as
  {"success": true, "data": {"response": ...}}
"""

from __future__ import annotations

import json
import logging
from typing import Callable

import aiohttp
from aiohttp import web

from sahayak.config import API_ENDPOINT_DEFAULT, WS_ENDPOINT_DEFAULT
from sahayak.core.session.api import SessionIdentity

log = logging.getLogger("loopback")

# Handshakes seen by the WebSocket handler, in order.
HANDSHAKES = web.AppKey("handshakes", list)

ReplyFn = Callable[[str, SessionIdentity], str]


def default_reply(text: str, identity: SessionIdentity) -> str:
    return f"{identity.display_name}, you said: {text}"


def _identity_from(data: object) -> SessionIdentity | None:
    if not isinstance(data, dict):
        return None
    name = data.get("name")
    language = data.get("language")
    if not isinstance(name, str) or not isinstance(language, str):
        return None
    return SessionIdentity(display_name=name, preferred_language=language)


def build_loopback_app(
    reply: ReplyFn = default_reply,
    *,
    ws_path: str = WS_ENDPOINT_DEFAULT,
    api_path: str = API_ENDPOINT_DEFAULT,
) -> web.Application:
    app = web.Application()
    app[HANDSHAKES] = []

    async def handle_ws(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        identity: SessionIdentity | None = None
        async for msg in ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            try:
                data = json.loads(msg.data)
            except json.JSONDecodeError:
                log.warning("Loopback: dropping non-JSON frame")
                continue

            if identity is None:
                identity = _identity_from(data)
                if identity is None:
                    await ws.close(code=4000, message=b"handshake required")
                    break
                app[HANDSHAKES].append(identity)
                log.info(f"Loopback: {identity.display_name} connected ({identity.preferred_language})")
                continue

            text = data.get("user") if isinstance(data, dict) else None
            if isinstance(text, str) and text:
                await ws.send_json({"bot": reply(text, identity)})
        return ws

    async def handle_api(request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return web.json_response(
                {"success": False, "error": "Invalid JSON"}, status=400
            )

        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str) or not message.strip():
            return web.json_response(
                {"success": False, "error": "message is required"}, status=400
            )

        identity = SessionIdentity(
            display_name=str(body.get("userName") or "User"),
            preferred_language=str(body.get("language") or "English"),
        )
        return web.json_response(
            {"success": True, "data": {"response": reply(message, identity)}}
        )

    app.router.add_get(ws_path, handle_ws)
    app.router.add_post(api_path, handle_api)
    return app


async def start_loopback_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8000,
    reply: ReplyFn = default_reply,
) -> tuple[web.AppRunner, str, int]:
    """Start the loopback agent. Returns (runner, host, port)."""
    app = build_loopback_app(reply)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    return runner, host, port
