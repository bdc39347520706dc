"""The application's notion of "who is logged in now".

The manager pushes every new session here. It reads the current session
only once, on enter, to capture the owner; it never consults the sink for
privilege decisions after that.
"""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Protocol, Union

from previewkit.crypto import token_fingerprint
from previewkit.models import Session

log = logging.getLogger(__name__)

SessionListener = Callable[[Session], Union[Awaitable[None], None]]


class ActiveSessionSink(Protocol):
    def current(self) -> Session | None:
        """The session the app is using right now, if any."""

    async def push(self, session: Session) -> None:
        """Replace the active session."""


class MemorySessionSink:
    """In-process sink with optional change listeners (sync or async callables)."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session
        self._listeners: list[SessionListener] = []

    def current(self) -> Session | None:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    async def push(self, session: Session) -> None:
        """Notify listeners, then make `session` current.

        A listener that raises aborts the push and `current()` is unchanged.
        """
        for listener in list(self._listeners):
            result = listener(session)
            if inspect.isawaitable(result):
                await result
        self._session = session
        log.debug(
            "Active session now user %s (%s)", session.user.id, token_fingerprint(session.token)
        )
