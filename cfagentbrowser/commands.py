"""Command parsing and dispatch for the stdin line protocol.

One line is one command: ``<verb> [args]``. The verb is case-insensitive and
everything after the first space is handed to the verb's handler. Handlers
raise ParseError/StateError for expected failures; ``Dispatcher.dispatch``
turns those into failure results. Anything else (browser engine faults)
escapes to the caller.
"""
from __future__ import annotations

import json
import math
import re
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from cfagentbrowser.errors import ParseError, StateError
from cfagentbrowser.sessions import SessionRegistry

QUIT_MESSAGE = "bye"

_GET_SNAPSHOT_USAGE = "get-snapshot requires [width] [height] [tempfilename]"
_SEND_CLICK_USAGE = "send-click requires [width] [height] [x] [y]"
_INT_RE = re.compile(r"^[+-]?[0-9]+\Z")


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    output: str
    quit: bool = False

    @classmethod
    def success(cls, output: str) -> CommandResult:
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, message: str) -> CommandResult:
        return cls(ok=False, output=message)

    def render(self) -> str:
        return self.output if self.ok else f"error: {self.output}"


def parse_command(line: str) -> tuple[str, str]:
    """Split a trimmed line into (lower-cased verb, trimmed rest)."""
    line = line.strip()
    verb, _, rest = line.partition(" ")
    return verb.lower(), rest.strip()


def _parse_int(token: str) -> int | None:
    # int() alone would also accept "1_000" and non-ASCII digits.
    if not _INT_RE.match(token):
        return None
    return int(token)


def _parse_float(token: str) -> float | None:
    if "_" in token:
        return None
    try:
        value = float(token)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _parse_size(parts: list[str], usage: str) -> tuple[int, int]:
    width = _parse_int(parts[0])
    height = _parse_int(parts[1])
    if width is None or height is None:
        raise ParseError(usage)
    return width, height


Handler = Callable[["Dispatcher", str], Awaitable[CommandResult]]


class Dispatcher:
    """Route parsed commands to handlers operating on a SessionRegistry."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    async def dispatch(self, line: str) -> CommandResult:
        verb, args = parse_command(line)
        handler = HANDLERS.get(verb)
        if handler is None:
            return CommandResult.failure(f"unknown command '{verb}'")
        try:
            return await handler(self, args)
        except (ParseError, StateError) as e:
            return CommandResult.failure(str(e))

    # -- Handlers --------------------------------------------------------------

    async def new_session(self, args: str) -> CommandResult:
        session_id = await self.registry.create_session()
        return CommandResult.success(str(session_id))

    async def use_session(self, args: str) -> CommandResult:
        try:
            session_id = uuid.UUID(args)
        except ValueError:
            raise ParseError("use-session requires a valid GUID") from None
        self.registry.set_active(session_id)
        return CommandResult.success(f"using {session_id}")

    async def navigate(self, args: str) -> CommandResult:
        if not args:
            raise ParseError("navigate requires a URL")
        session = self.registry.get_active()
        await session.page.goto(args, wait_until="networkidle")
        snapshot = await session.page.accessibility.snapshot(interesting_only=False)
        return CommandResult.success(json.dumps(snapshot, indent=2, ensure_ascii=False))

    async def get_snapshot(self, args: str) -> CommandResult:
        parts = args.split()
        if len(parts) < 3:
            raise ParseError(_GET_SNAPSHOT_USAGE)
        width, height = _parse_size(parts, _GET_SNAPSHOT_USAGE)
        base_name = " ".join(parts[2:])
        if not base_name.strip():
            raise ParseError("tempfilename is required")

        session = self.registry.get_active()
        await self.registry.ensure_viewport(session, width, height)
        output_path = f"{base_name}.jpg"
        await session.page.screenshot(path=output_path, type="jpeg", full_page=False)
        return CommandResult.success(output_path)

    async def send_click(self, args: str) -> CommandResult:
        parts = args.split()
        if len(parts) != 4:
            raise ParseError(_SEND_CLICK_USAGE)
        width, height = _parse_size(parts, _SEND_CLICK_USAGE)
        x = _parse_float(parts[2])
        y = _parse_float(parts[3])
        if x is None or y is None:
            raise ParseError(_SEND_CLICK_USAGE)

        session = self.registry.get_active()
        await self.registry.ensure_viewport(session, width, height)
        await session.page.mouse.click(x, y)
        return CommandResult.success("ok")

    async def enter_text(self, args: str) -> CommandResult:
        if not args:
            raise ParseError("enter-text requires text")
        session = self.registry.get_active()
        await session.page.keyboard.type(args)
        return CommandResult.success("ok")

    async def quit(self, args: str) -> CommandResult:
        return CommandResult(ok=True, output=QUIT_MESSAGE, quit=True)


HANDLERS: dict[str, Handler] = {
    "new-session": Dispatcher.new_session,
    "use-session": Dispatcher.use_session,
    "navigate": Dispatcher.navigate,
    "get-snapshot": Dispatcher.get_snapshot,
    "send-click": Dispatcher.send_click,
    "enter-text": Dispatcher.enter_text,
    "quit": Dispatcher.quit,
}
