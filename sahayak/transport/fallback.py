"""HTTP fallback for when the agent WebSocket is not usable."""

from __future__ import annotations

import asyncio
import json
import logging

import aiohttp

from sahayak.config import SessionConfig
from sahayak.transport.errors import NetworkError, ServerError
from sahayak.transport.ports import FallbackPayload

log = logging.getLogger("transport.fallback")


class FallbackClient:
    """One POST per message, one reply per POST. Never retries."""

    def __init__(self, url: str, *, timeout_s: float = 30.0):
        self.url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    @classmethod
    def from_config(cls, config: SessionConfig) -> "FallbackClient":
        return cls(config.api_url, timeout_s=config.http_timeout_s)

    async def request(self, payload: FallbackPayload) -> str:
        log.info(f"Sending message via {self.url}")
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self.url, json=payload.to_json()) as resp:
                    status = resp.status
                    text = await resp.text()
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise NetworkError(self.url, cause=e) from e

        if status >= 400:
            raise ServerError(status, url=self.url, detail=text.strip() or None)

        return self._parse_reply(status, text)

    def _parse_reply(self, status: int, text: str) -> str:
        try:
            data = json.loads(text) if text else None
        except json.JSONDecodeError as e:
            raise ServerError(status, url=self.url, detail="response is not JSON") from e

        if not isinstance(data, dict):
            raise ServerError(status, url=self.url, detail="response is not a JSON object")

        if data.get("success") is not True:
            error = data.get("error")
            detail = error if isinstance(error, str) and error else "Failed to get response"
            raise ServerError(status, url=self.url, detail=detail)

        body = data.get("data")
        reply = body.get("response") if isinstance(body, dict) else None
        if not isinstance(reply, str):
            raise ServerError(status, url=self.url, detail="response missing data.response")
        return reply
