# src/roomrelay/sessions/store.py
"""
In-memory session store keyed by room.

Holds one ConversationSession per room for the lifetime of the process.
All structural mutations (append, trim, reset, sweep-replace) are plain
synchronous read-modify-writes against the canonical stored object, so
each one is atomic with respect to other coroutines on the event loop.
Callers that suspend between reading and writing must re-resolve the
session through ``get_or_create`` after the ``await``.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Iterator, List, Optional, Union

from ..models import ChatMessage, ConversationSession, Role, utcnow
from .persona import DEFAULT_PERSONA

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 25


@dataclass
class SweepReport:
    """Outcome of one retention pass."""
    rooms_removed: List[str] = field(default_factory=list)
    rooms_trimmed: int = 0
    messages_dropped: int = 0

    @property
    def rooms_removed_count(self) -> int:
        return len(self.rooms_removed)


class SessionStore:
    """
    Process-wide table of room sessions.

    Sessions are created lazily on first use. Each user append trims the
    history to ``max_history - 1`` entries, oldest first, so that the
    following assistant append brings the count to at most ``max_history``.
    The persona is never part of ``messages`` and never trimmed.
    """

    def __init__(self, persona: Optional[str] = None, max_history: int = DEFAULT_MAX_HISTORY):
        if max_history < 2:
            raise ValueError("max_history must be at least 2")
        self.persona_text = persona if persona is not None else DEFAULT_PERSONA
        self.max_history = max_history
        self._sessions: Dict[str, ConversationSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    # -- table access ---------------------------------------------------

    def get(self, room: str) -> Optional[ConversationSession]:
        """Returns the stored session for ``room`` or None."""
        return self._sessions.get(room)

    def get_or_create(self, room: str) -> ConversationSession:
        """Returns the canonical session for ``room``, creating and storing it if absent."""
        if not room:
            raise ValueError("Room identifier must be a non-empty string.")
        session = self._sessions.get(room)
        if session is None:
            session = ConversationSession(
                room=room,
                persona=ChatMessage(role=Role.SYSTEM, content=self.persona_text),
            )
            self._sessions[room] = session
            logger.debug(f"Created session for room '{room}'")
        return session

    def discard(self, room: str) -> bool:
        """Removes a room's session entirely. Returns True if it existed."""
        return self._sessions.pop(room, None) is not None

    def rooms(self) -> List[str]:
        return list(self._sessions.keys())

    def __contains__(self, room: object) -> bool:
        return room in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))

    @contextlib.asynccontextmanager
    async def serialized(self, room: str) -> AsyncIterator[None]:
        """
        Hold the room's lock for a whole exchange.

        Holders and waiters are counted so that a sweep never drops a lock
        somebody is about to acquire.
        """
        lock = self._locks.get(room)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room] = lock
        self._lock_holders[room] = self._lock_holders.get(room, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_holders[room] - 1
            if remaining:
                self._lock_holders[room] = remaining
            else:
                del self._lock_holders[room]

    def _prune_locks(self) -> None:
        for room in list(self._locks):
            if room not in self._sessions and room not in self._lock_holders:
                del self._locks[room]

    # -- session mutations ------------------------------------------------

    def _append(self, session: ConversationSession, role: Role, content: str) -> ChatMessage:
        now = utcnow()
        last = session.last_timestamp
        if last is not None and now < last:
            now = last
        message = ChatMessage(role=role, content=content, timestamp=now)
        session.messages.append(message)
        return message

    def append_user(self, session: ConversationSession, content: str) -> ChatMessage:
        """Appends a user turn, then drops the oldest entries beyond ``max_history - 1``."""
        message = self._append(session, Role.USER, content)
        self.trim(session)
        return message

    def append_assistant(self, session: ConversationSession, content: str) -> ChatMessage:
        """Appends an assistant turn. No trim: the count may transiently reach ``max_history``."""
        return self._append(session, Role.ASSISTANT, content)

    def trim(self, session: ConversationSession) -> int:
        """FIFO eviction down to ``max_history - 1`` messages. Returns the number dropped."""
        bound = self.max_history - 1
        overflow = len(session.messages) - bound
        if overflow <= 0:
            return 0
        del session.messages[:overflow]
        logger.debug(f"Trimmed {overflow} message(s) from room '{session.room}'")
        return overflow

    def reset(self, session: ConversationSession) -> None:
        """Clears the conversation turns; the persona is kept."""
        session.messages.clear()
        logger.debug(f"Reset history for room '{session.room}'")

    def build_context_window(self, session: ConversationSession) -> List[ChatMessage]:
        """Returns ``[persona, *messages]`` as sent to the backend."""
        return [session.persona, *session.messages]

    # -- retention --------------------------------------------------------

    def prune_expired(
        self,
        max_age: Union[timedelta, float],
        now: Optional[datetime] = None,
    ) -> SweepReport:
        """
        Drops messages older than ``max_age`` from every room.

        A room whose messages have all aged out is removed from the table;
        otherwise its message list is replaced by the surviving subset on the
        session currently stored for that room. The persona is untouched.

        Args:
            max_age: Retention bound, as a timedelta or in seconds.
            now: Reference instant (UTC); defaults to the current time.

        Returns:
            A SweepReport describing what was removed.
        """
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        now = now or utcnow()
        report = SweepReport()

        for room in list(self._sessions):
            session = self._sessions.get(room)
            if session is None:
                continue
            kept = [m for m in session.messages if now - m.timestamp <= max_age]
            dropped = len(session.messages) - len(kept)
            if not kept:
                self.discard(room)
                report.rooms_removed.append(room)
            elif dropped:
                session.messages[:] = kept
                report.rooms_trimmed += 1
            report.messages_dropped += dropped

        self._prune_locks()
        return report
