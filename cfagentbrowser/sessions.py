"""In-memory registry of browser sessions and the active-session pointer.

Each session pairs one isolated browsing context with one page. Sessions
live until process shutdown; there is no per-session close.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from playwright.async_api import BrowserContext, Page

from cfagentbrowser.browser import BrowserHost
from cfagentbrowser.errors import (
    NoActiveSessionError,
    NotFoundError,
    StaleActiveError,
)

log = logging.getLogger(__name__)


@dataclass
class Session:
    id: uuid.UUID
    context: BrowserContext
    page: Page
    viewport_width: int | None = None  # unset until the first sized command
    viewport_height: int | None = None


class SessionRegistry:
    """Track sessions by id and which one session-scoped commands target."""

    def __init__(self, host: BrowserHost) -> None:
        self.host = host
        self._sessions: dict[uuid.UUID, Session] = {}
        self._active_id: uuid.UUID | None = None

    @property
    def active_id(self) -> uuid.UUID | None:
        return self._active_id

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def create_session(self) -> uuid.UUID:
        """Open a new context and page, register it and make it active.

        LaunchError from the shared browser propagates unchanged.
        """
        context, page = await self.host.new_page()
        session_id = uuid.uuid4()
        while session_id in self._sessions:
            session_id = uuid.uuid4()
        self._sessions[session_id] = Session(session_id, context, page)
        self._active_id = session_id
        log.info("session created", extra={"session": str(session_id)})
        return session_id

    def set_active(self, session_id: uuid.UUID | str) -> None:
        """Point the active session at *session_id*.

        Raises NotFoundError for a malformed id or an unknown session; the
        pointer is left untouched in both cases.
        """
        if not isinstance(session_id, uuid.UUID):
            try:
                session_id = uuid.UUID(str(session_id).strip())
            except ValueError as e:
                raise NotFoundError(f"'{session_id}' is not a valid session id") from e
        if session_id not in self._sessions:
            raise NotFoundError(f"session '{session_id}' not found")
        self._active_id = session_id

    def get_active(self) -> Session:
        if self._active_id is None:
            raise NoActiveSessionError()
        session = self._sessions.get(self._active_id)
        if session is None:
            self._active_id = None
            raise StaleActiveError()
        return session

    async def ensure_viewport(self, session: Session, width: int, height: int) -> None:
        """Resize the page viewport unless the cached size already matches."""
        if session.viewport_width == width and session.viewport_height == height:
            return
        await session.page.set_viewport_size({"width": width, "height": height})
        session.viewport_width = width
        session.viewport_height = height

    async def close_all(self) -> None:
        """Close every context, forget all sessions, then close the browser."""
        for session in list(self._sessions.values()):
            try:
                await session.context.close()
            except Exception as e:
                log.warning(
                    "context close failed",
                    extra={"session": str(session.id), "error": str(e)},
                )
        self._sessions.clear()
        self._active_id = None
        await self.host.close()
