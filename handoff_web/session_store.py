"""
Server-managed browser sessions for the web variant. Keyed by an opaque cookie value.
In-memory; a restart signs everyone out.
"""
import secrets
import threading
import time
from dataclasses import dataclass

from handoff_web.config import SESSION_TTL
from handoff_web.models import ExchangeResult


@dataclass
class BrowserSession:
    access_token: str
    refresh_token: str
    expires_at: float
    email: str | None = None

    def expired(self) -> bool:
        return time.time() >= self.expires_at


class SessionStore:
    def __init__(self, ttl: int = SESSION_TTL):
        self.ttl = ttl
        self._sessions: dict[str, BrowserSession] = {}
        self._lock = threading.Lock()

    def create(self, result: ExchangeResult) -> str:
        """Store an exchanged session; returns the cookie value."""
        session_id = secrets.token_urlsafe(32)
        # Provider expiry wins; fall back to our own TTL when the provider gave none
        expires_at = result.expires_at if result.expires_at is not None else time.time() + self.ttl
        with self._lock:
            self._clean_expired()
            self._sessions[session_id] = BrowserSession(
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                expires_at=expires_at,
                email=result.email,
            )
        return session_id

    def _clean_expired(self) -> None:
        expired = [sid for sid, s in self._sessions.items() if s.expired()]
        for sid in expired:
            del self._sessions[sid]

    def get(self, session_id: str | None) -> BrowserSession | None:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.expired():
                del self._sessions[session_id]
                return None
            return session

    def delete(self, session_id: str | None) -> None:
        if not session_id:
            return
        with self._lock:
            self._sessions.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


sessions = SessionStore()
