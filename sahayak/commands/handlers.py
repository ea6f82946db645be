"""Slash commands for the chat console."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, cast

from sahayak.core.session.api import SessionPort


def command(name: str, *aliases: str):
    """Decorator to register a command handler.

    Args:
        name: Primary command name (e.g., "/close")
        *aliases: Additional names that trigger this command
    """

    def decorator(
        func: Callable[..., Awaitable[bool]],
    ) -> Callable[..., Awaitable[bool]]:
        setattr(func, "_command_name", name)
        setattr(func, "_command_aliases", aliases)
        return func

    return decorator


class CommandHandler:
    """Handles slash commands typed into the chat console.

    Commands are registered via the @command decorator on methods.
    The handler auto-discovers all decorated methods on init.
    """

    def __init__(self, session: SessionPort, *, write: Callable[[str], None] = print):
        self.session = session
        self.write = write
        self.quit_requested = False
        self._commands: dict[str, Callable[..., Awaitable[bool]]] = {}
        self._discover_commands()

    def _discover_commands(self) -> None:
        """Find all @command decorated methods and register them."""
        for name in dir(self):
            method = getattr(self, name)
            if callable(method) and hasattr(method, "_command_name"):
                m = cast(Any, method)
                handler = cast(Callable[..., Awaitable[bool]], method)
                self._commands[cast(str, m._command_name)] = handler
                for alias in cast(tuple[str, ...], m._command_aliases):
                    self._commands[alias] = handler

    def names(self) -> list[str]:
        return sorted(self._commands)

    async def handle(self, body: str) -> bool:
        """Handle a command. Returns True if command was handled."""
        cmd = body.strip().lower()
        handler = self._commands.get(cmd)
        if handler is None:
            return False
        return await handler(body)

    @command("/close")
    async def close(self, _body: str) -> bool:
        """Close the live connection; the next message reconnects."""
        self.session.close()
        return True

    @command("/reset")
    async def reset(self, _body: str) -> bool:
        """Start over with an empty conversation."""
        self.session.reset()
        self.write("Conversation reset.")
        return True

    @command("/status")
    async def status(self, _body: str) -> bool:
        pending = self.session.pending_count()
        self.write(f"Connection: {self.session.state.value}, pending: {pending}")
        return True

    @command("/help", "/?")
    async def help(self, _body: str) -> bool:
        self.write("Commands: " + " ".join(self.names()))
        return True

    @command("/quit", "/exit")
    async def quit(self, _body: str) -> bool:
        self.quit_requested = True
        return True
