"""Conversation state storage, per-session locking and history policy."""

from __future__ import annotations

import asyncio
import time
import weakref
from collections.abc import Callable
from copy import deepcopy
from dataclasses import dataclass
from typing import Protocol

from ai_engine.config import SessionConfig
from ai_engine.types import ChatMessage, ConversationState


class SessionStore(Protocol):
    """Keyed conversation storage with expiry."""

    async def get(self, session_id: str) -> ConversationState | None:
        """Return the stored state, or None when absent or expired."""

    async def put(self, session_id: str, state: ConversationState, ttl: float) -> None:
        """Store the state and reset its expiry."""

    async def delete(self, session_id: str) -> bool:
        """Remove the state; returns whether anything was removed."""


@dataclass(slots=True)
class _Entry:
    state: ConversationState
    expires_at: float


class InMemorySessionStore:
    """Process-local session store with TTL expiry.

    States are copied on the way in and out so a caller holding a state object
    cannot mutate what another request later reads.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, _Entry] = {}
        self._clock = clock

    async def get(self, session_id: str) -> ConversationState | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[session_id]
            return None
        return deepcopy(entry.state)

    async def put(self, session_id: str, state: ConversationState, ttl: float) -> None:
        self._entries[session_id] = _Entry(state=deepcopy(state), expires_at=self._clock() + ttl)

    async def delete(self, session_id: str) -> bool:
        return self._entries.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, entry in self._entries.items() if entry.expires_at <= now]
        for sid in expired:
            del self._entries[sid]
        return len(expired)


class SessionLocks:
    """Hands out one asyncio.Lock per session id.

    Locks are weakly referenced, so a session's lock disappears once no request
    holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_session(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock


class HistoryPolicy:
    """Sliding-window retention for stored history and prompt history."""

    def __init__(self, config: SessionConfig | None = None) -> None:
        self.config = config or SessionConfig()

    def enforce(self, state: ConversationState) -> None:
        """Drop the oldest stored messages beyond the retention limit."""

        overflow = len(state.messages) - self.config.max_stored_messages
        if overflow > 0:
            del state.messages[:overflow]

    def prompt_history(self, state: ConversationState) -> list[ChatMessage]:
        """Return the last user/assistant turns the model should see."""

        if self.config.prompt_window == 0:
            return []
        dialog = [msg for msg in state.messages if msg.role in ("user", "assistant")]
        return dialog[-self.config.prompt_window :]
