"""In-memory session store.

A session is an anonymous bearer token (the ``sessionId`` cookie) plus the
list of file IDs uploaded under it. Sessions never own bytes; they only point
back into the file store.

``reset`` and ``sweep_stale`` share one lock, so the sweeper can never see a
session halfway through a reset.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..ids import new_session_id

logger = logging.getLogger(__name__)


def short_id(session_id: str) -> str:
    """Log-safe prefix of a session token."""
    return session_id[:8]


@dataclass
class SessionRecord:
    id:      str
    created: float
    files:   List[str] = field(default_factory=list)


class SessionStore:
    """Thread-safe map of session ID → :class:`SessionRecord`.

    Args:
        stale_after_seconds: Age after which an empty session is evicted.
        clock:               Source of "now" in epoch seconds.
    """

    def __init__(
        self,
        stale_after_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._stale_after = stale_after_seconds
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _create_locked(self) -> str:
        session_id = new_session_id()
        self._sessions[session_id] = SessionRecord(id=session_id, created=self._clock())
        return session_id

    def exists(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        with self._lock:
            return session_id in self._sessions

    def get_or_create(self, token: Optional[str]) -> Tuple[str, bool]:
        """Resolve a presented token to a session.

        Returns:
            ``(session_id, is_new)``. ``is_new`` tells the caller to issue a
            fresh cookie.
        """
        with self._lock:
            if token and token in self._sessions:
                return token, False
            session_id = self._create_locked()
        logger.info("Created session %s", short_id(session_id))
        return session_id, True

    def file_ids(self, session_id: str) -> List[str]:
        with self._lock:
            session = self._sessions.get(session_id)
            return list(session.files) if session else []

    def attach_file(self, session_id: str, file_id: str) -> bool:
        """Append *file_id* to the session. Returns False if the session is gone."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug("attach_file: session %s no longer exists", short_id(session_id))
                return False
            if file_id not in session.files:
                session.files.append(file_id)
            return True

    def detach_file(self, session_id: str, file_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            try:
                session.files.remove(file_id)
            except ValueError:
                pass

    def reset(self, session_id: Optional[str]) -> Tuple[List[str], str]:
        """Destroy a session and allocate its replacement.

        Returns:
            ``(owned_file_ids, new_session_id)``. The caller cascades deletion
            of the returned files.
        """
        with self._lock:
            old = self._sessions.pop(session_id, None) if session_id else None
            new_id = self._create_locked()
        owned = list(old.files) if old else []
        logger.info(
            "Session reset: %s -> %s (%d files)",
            short_id(session_id) if old else "-",
            short_id(new_id),
            len(owned),
        )
        return owned, new_id

    def sweep_stale(self, now: Optional[float] = None) -> List[str]:
        """Remove sessions older than the staleness window that own no files."""
        now = self._clock() if now is None else now
        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if not s.files and now - s.created > self._stale_after
            ]
            for sid in stale:
                del self._sessions[sid]
        return stale
