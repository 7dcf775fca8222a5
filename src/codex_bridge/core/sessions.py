"""Session registry mapping caller session ids to history and a backend thread."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from codex_bridge.core.models import Message, SessionDetail, SessionInfo, SessionStats
from codex_bridge.core.types import Role
from codex_bridge.log import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class Session:
    session_id: str
    created_at: float
    last_active: float
    thread_id: str = ""  # empty until the first backend call reports one
    messages: list[Message] = field(default_factory=list)
    message_count: int = 0
    # Set under ``lock`` when the record leaves the registry; holders must re-resolve.
    detached: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only copy of a session handed out to callers."""

    session_id: str
    thread_id: str
    created_at: float
    last_active: float
    message_count: int
    messages: tuple[Message, ...]

    def to_detail(self) -> SessionDetail:
        return SessionDetail(
            session_id=self.session_id,
            thread_id=self.thread_id,
            created_at=_iso(self.created_at),
            last_active=_iso(self.last_active),
            message_count=self.message_count,
            messages=[m.to_wire() for m in self.messages],
        )


class SessionRegistry:
    """Thread-safe in-memory store of sessions with idle expiry.

    A registry lock guards the id -> record map and each record carries its own
    lock for history mutation. Locks are always taken registry-first, and no
    lock is held across an ``await``.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _get_or_create(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                now = self._clock()
                session = Session(session_id=session_id, created_at=now, last_active=now)
                self._sessions[session_id] = session
                logger.debug("session_created", session_id=session_id)
            return session

    def _lookup(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def _is_expired(self, session: Session, now: float) -> bool:
        return now > session.last_active + self._ttl

    def resolve(
        self, messages: Sequence[Message], session_id: str | None = None
    ) -> tuple[list[Message], str | None]:
        """Merge ``messages`` into the session history and return the full history.

        Without a session id the input is returned unchanged and nothing is
        stored. System messages are never persisted.
        """
        if not session_id:
            return list(messages), None

        new_entries = [m.model_copy(deep=True) for m in messages if m.role != Role.SYSTEM]

        while True:
            session = self._get_or_create(session_id)
            with session.lock:
                if session.detached:
                    # swept or deleted between lookup and lock; start over
                    continue
                session.last_active = self._clock()
                session.messages.extend(new_entries)
                session.message_count += len(new_entries)
                history = list(session.messages)
            return history, session_id

    def bind_thread(self, session_id: str, thread_id: str) -> None:
        """Record the backend thread handle. Last write wins."""
        session = self._lookup(session_id)
        if session is None:
            return
        with session.lock:
            if session.detached:
                return
            session.thread_id = thread_id
        logger.debug("thread_bound", session_id=session_id, thread_id=thread_id)

    def append_assistant(self, session_id: str, message: Message) -> None:
        """Append the backend's answer. A session that expired mid-call is ignored."""
        session = self._lookup(session_id)
        if session is None:
            logger.debug("append_skipped_missing_session", session_id=session_id)
            return
        with session.lock:
            if session.detached:
                return
            session.messages.append(message.model_copy(deep=True))
            session.message_count += 1
            session.last_active = self._clock()

    def thread_of(self, session_id: str) -> str | None:
        session = self._lookup(session_id)
        if session is None:
            return None
        with session.lock:
            return session.thread_id or None

    def get(self, session_id: str) -> SessionSnapshot | None:
        session = self._lookup(session_id)
        if session is None:
            return None
        with session.lock:
            if session.detached:
                return None
            return SessionSnapshot(
                session_id=session.session_id,
                thread_id=session.thread_id,
                created_at=session.created_at,
                last_active=session.last_active,
                message_count=session.message_count,
                messages=tuple(m.model_copy(deep=True) for m in session.messages),
            )

    def list(self) -> list[SessionInfo]:
        """Summaries of all live sessions, oldest first."""
        with self._lock:
            sessions = sorted(self._sessions.values(), key=lambda s: s.created_at)
        items: list[SessionInfo] = []
        for s in sessions:
            with s.lock:
                items.append(
                    SessionInfo(
                        session_id=s.session_id,
                        created_at=_iso(s.created_at),
                        last_active=_iso(s.last_active),
                        message_count=s.message_count,
                        expires_at=_iso(s.last_active + self._ttl),
                    )
                )
        return items

    def delete(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            with session.lock:
                session.detached = True
        logger.info("session_deleted", session_id=session_id)
        return True

    def sweep(self) -> int:
        """Remove every session idle for longer than the TTL. Returns the count.

        Candidates are picked from a snapshot, then re-checked under the record
        lock so a session touched in between survives.
        """
        now = self._clock()
        with self._lock:
            candidates = [s for s in self._sessions.values() if self._is_expired(s, now)]

        removed = 0
        for candidate in candidates:
            with self._lock:
                if self._sessions.get(candidate.session_id) is not candidate:
                    continue
                with candidate.lock:
                    if not self._is_expired(candidate, now):
                        continue
                    candidate.detached = True
                    del self._sessions[candidate.session_id]
                    removed += 1

        if removed:
            logger.info("sessions_swept", removed=removed, remaining=len(self))
        return removed

    def stats(self) -> SessionStats:
        with self._lock:
            sessions = list(self._sessions.values())
        if not sessions:
            return SessionStats(active_sessions=0, total_messages=0)

        total_messages = 0
        for s in sessions:
            with s.lock:
                total_messages += s.message_count

        oldest = min(sessions, key=lambda s: s.created_at)
        newest = max(sessions, key=lambda s: s.created_at)
        return SessionStats(
            active_sessions=len(sessions),
            total_messages=total_messages,
            oldest_session=_iso(oldest.created_at),
            newest_session=_iso(newest.created_at),
        )

    def clear(self) -> None:
        with self._lock:
            for session in self._sessions.values():
                with session.lock:
                    session.detached = True
            self._sessions.clear()
        logger.info("sessions_cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
