"""Sessions - Opaque session tokens bound to a user.

Sessions live in process memory and expire a fixed time after creation.
"""

import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..core.errors import Unauthenticated
from ..core.models import Session


logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=24)


def generate_token() -> str:
    """Generate a cryptographically secure session token."""
    return secrets.token_urlsafe(32)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionAuthority:
    """Issues, resolves and destroys session tokens."""

    def __init__(
        self,
        ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize session authority.

        Args:
            ttl: Session lifetime from creation
            clock: Returns the current UTC time
        """
        self._ttl = ttl
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create_session(self, user_id: str, username: str) -> str:
        """Start a session for an authenticated user.

        Args:
            user_id: The user's ID
            username: The user's name, kept for status responses

        Returns:
            New session token
        """
        now = self._clock()
        session = Session(
            user_id=user_id,
            username=username,
            created_at=now,
            expires_at=now + self._ttl,
        )
        token = generate_token()
        with self._lock:
            self._purge_expired(now)
            while token in self._sessions:
                token = generate_token()
            self._sessions[token] = session
        logger.info("Session created for user: %s", user_id[:8])
        return token

    def resolve(self, token: str | None) -> Session:
        """Return the live session for a token.

        Raises:
            Unauthenticated: If the token is missing, unknown or expired
        """
        if not token:
            raise Unauthenticated()
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is not None and session.expires_at <= now:
                del self._sessions[token]
                session = None
        if session is None:
            raise Unauthenticated()
        return session

    def destroy(self, token: str | None) -> bool:
        """End a session. Destroying an absent session is not an error.

        Returns:
            True if a session was removed
        """
        if not token:
            return False
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is not None:
            logger.info("Session destroyed for user: %s", session.user_id[:8])
        return session is not None

    def _purge_expired(self, now: datetime) -> None:
        expired = [t for t, s in self._sessions.items() if s.expires_at <= now]
        for token in expired:
            del self._sessions[token]
