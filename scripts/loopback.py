#!/usr/bin/env python3
"""Loopback test for the Sahayak chat session.

Sends messages to the agent through a SessionManager and prints the
conversation log. With --serve, starts a local loopback agent first, so the
whole path (WebSocket, handshake, HTTP fallback) can be exercised offline.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterable

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sahayak.config import API_ENDPOINT_DEFAULT, WS_ENDPOINT_DEFAULT, get_session_config
from sahayak.core.session import SessionManager, Speaker
from sahayak.loopback_server import start_loopback_server
from sahayak.utils import load_env


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sahayak chat loopback test")
    parser.add_argument("messages", nargs="*", default=["Hello"])
    parser.add_argument("--timeout", type=float, default=5.0)
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start a local loopback agent and point the session at it",
    )
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument(
        "--no-ws",
        action="store_true",
        help="Point the WebSocket at a closed port to exercise the HTTP fallback",
    )
    return parser.parse_args(list(argv))


async def _run(args: argparse.Namespace) -> int:
    config = get_session_config()

    runner = None
    if args.serve:
        runner, host, port = await start_loopback_server(port=args.port)
        config = replace(
            config,
            ws_url=f"ws://{host}:{port}{WS_ENDPOINT_DEFAULT}",
            api_url=f"http://{host}:{port}{API_ENDPOINT_DEFAULT}",
        )
    if args.no_ws:
        config = replace(config, ws_url="ws://127.0.0.1:9/unavailable")

    try:
        async with SessionManager.from_config(config, name="loopback") as session:
            for message in args.messages:
                await session.send(message, wait=True)
            # Replies over the channel arrive after the write; give them time.
            deadline = asyncio.get_running_loop().time() + args.timeout
            expected = 2 * len(args.messages)
            while asyncio.get_running_loop().time() < deadline:
                if len(session.snapshot()) >= expected:
                    break
                await asyncio.sleep(0.1)

            records = session.snapshot()
            for record in records:
                print(f"[{record.sequence}] {record.speaker.label}: {record.text}")
            if not any(r.speaker is Speaker.AGENT for r in records):
                print("No responses received.")
                return 1
            return 0
    finally:
        if runner is not None:
            await runner.cleanup()


def main(argv: Iterable[str]) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    load_env()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
