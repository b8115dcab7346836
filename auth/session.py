"""Session token lifecycle management.

Sessions are stored in Valkey with TTL matching session expiry and carry
the user's permission set, which the middleware puts into the request's
user context.
"""

import secrets
from datetime import timedelta
from typing import Iterable
from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.types import Session
from auth.exceptions import SessionExpiredError
from utils.timezone import now_utc, parse_iso


class SessionManager:
    """Session token lifecycle management.

    Sessions are stored in Valkey with TTL matching session expiry.
    Supports sliding expiry on activity.
    """

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, token: str) -> str:
        """Generate Valkey key for session token."""
        return f"{self.KEY_PREFIX}{token}"

    def _store(self, session: Session) -> None:
        self._valkey.set_json(
            self._key(session.token),
            {
                "user_id": str(session.user_id),
                "permissions": sorted(session.permissions),
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
                "last_activity_at": session.last_activity_at.isoformat(),
            },
            expire_seconds=self._config.session_expiry_hours * 3600,
        )

    def create_session(self, user_id: UUID, permissions: Iterable[str] = ()) -> Session:
        """Create new session for user with the given capabilities."""
        token = secrets.token_urlsafe(32)
        now = now_utc()

        session = Session(
            token=token,
            user_id=user_id,
            permissions=sorted(set(permissions)),
            created_at=now,
            expires_at=now + timedelta(hours=self._config.session_expiry_hours),
            last_activity_at=now,
        )
        self._store(session)
        return session

    def validate_session(self, token: str) -> Session:
        """Validate session token and return session.

        Raises SessionExpiredError if token invalid or expired.
        Extends the session when it is close to expiring (if configured).
        """
        data = self._valkey.get_json(self._key(token))

        if data is None:
            raise SessionExpiredError("Session not found or expired")

        session = Session(
            token=token,
            user_id=UUID(data["user_id"]),
            permissions=data.get("permissions", []),
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
            last_activity_at=parse_iso(data["last_activity_at"]),
        )

        now = now_utc()

        if now > session.expires_at:
            self._valkey.delete(self._key(token))
            raise SessionExpiredError("Session expired")

        remaining = session.expires_at - now
        threshold = timedelta(hours=self._config.session_extend_threshold_hours)
        if self._config.session_extend_on_activity and remaining < threshold:
            session = self._extend_session(session)

        return session

    def _extend_session(self, session: Session) -> Session:
        """Extend session expiry and update last_activity_at."""
        now = now_utc()
        updated = session.model_copy(update={
            "expires_at": now + timedelta(hours=self._config.session_expiry_hours),
            "last_activity_at": now,
        })
        self._store(updated)
        return updated

    def revoke_session(self, token: str) -> None:
        """Revoke session (logout).

        Safe to call with nonexistent token.
        """
        self._valkey.delete(self._key(token))
