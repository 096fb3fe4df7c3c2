"""Session lookup for incoming requests.

The session id cookie is checked against the user id cookie with the token
codec before anything touches storage. Verified sessions are served from an
in-memory LRU lookaside and fall back to the backend on a miss. Backend
failures are treated as "no session": the request continues anonymously.
"""

import logging

from auth.cache import LRUCache
from auth.token_codec import SessionTokenCodec
from auth.types import Session
from storage.base import StorageBackend, StorageError

logger = logging.getLogger(__name__)


class SessionManager:
    """Resolves the (session id, user id) cookie pair to a Session."""

    def __init__(
        self,
        backend: StorageBackend,
        codec: SessionTokenCodec,
        cache: LRUCache[str, Session],
    ):
        self._backend = backend
        self._codec = codec
        self._cache = cache

    def validate_session(self, session_id: str | None, user_id: str | int | None) -> Session | None:
        """Return the session for the cookie pair, or None.

        Never raises for bad input or storage failure.
        """
        if not session_id or user_id is None:
            return None
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        if user_id < 0 or not self._codec.verify(session_id, user_id):
            return None

        cached = self._cache.get(session_id)
        if cached is not None and cached.user.user_id == user_id:
            return cached

        try:
            session = self._backend.query_session_data(session_id, user_id)
        except StorageError as e:
            logger.warning(f"Session lookup failed, continuing anonymous: {e}")
            return None

        if session is not None:
            self._cache.put(session_id, session)
        return session

    def remember(self, session: Session) -> None:
        """Seed the lookaside with a freshly issued session."""
        self._cache.put(session.session_id, session)

    def revoke_session(self, session_id: str) -> None:
        """Logout. Drops the session from cache and backend.

        Safe to call with nonexistent id.
        """
        self._cache.delete(session_id)
        try:
            self._backend.delete_session(session_id)
        except StorageError as e:
            logger.warning(f"Failed to delete session from storage: {e}")
