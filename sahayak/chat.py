"""Interactive console for chatting with the agent.

Lines typed at the prompt are sent through a SessionManager; records are
printed as they are appended. Slash commands (/close, /reset, /status,
/help, /quit) control the session.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from sahayak.commands import CommandHandler
from sahayak.config import get_session_config
from sahayak.core.session import (
    RecordAppended,
    SessionEvent,
    SessionIdentity,
    SessionManager,
)
from sahayak.utils import load_env

log = logging.getLogger("chat")


def _print_event(event: SessionEvent) -> None:
    if isinstance(event, RecordAppended):
        record = event.record
        print(f"{record.speaker.label}: {record.text}", flush=True)


async def _read_line(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def run_chat(session: SessionManager) -> None:
    commands = CommandHandler(session)
    async with session:
        while not commands.quit_requested:
            line = await _read_line("")
            if line is None:
                break
            if line.strip().startswith("/"):
                if not await commands.handle(line):
                    print(f"Unknown command: {line.strip()} (try /help)")
                continue
            await session.send(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with the Sahayak agent")
    parser.add_argument("--name", help="Display name sent in the handshake")
    parser.add_argument("--language", help="Preferred language sent in the handshake")
    parser.add_argument("--ws-url", help="Agent WebSocket URL")
    parser.add_argument("--api-url", help="HTTP fallback URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_env()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = get_session_config()
    if args.ws_url:
        config = replace(config, ws_url=args.ws_url)
    if args.api_url:
        config = replace(config, api_url=args.api_url)

    identity = SessionIdentity(
        display_name=args.name or config.user_name,
        preferred_language=args.language or config.language,
    )
    session = SessionManager.from_config(
        config, identity=identity, listener=_print_event, name="console"
    )

    print(f"Chatting as {identity.display_name} ({identity.preferred_language}). /help for commands.")
    try:
        asyncio.run(run_chat(session))
    except KeyboardInterrupt:
        log.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
