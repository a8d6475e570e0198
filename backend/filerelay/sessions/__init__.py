"""Anonymous cookie-scoped sessions."""

from .store import SessionRecord, SessionStore

__all__ = ["SessionRecord", "SessionStore"]
