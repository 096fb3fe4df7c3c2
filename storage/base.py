"""Storage contract for accounts, sessions, and OAuth links.

Concrete backends (PostgresBackend, ValkeyBackend) differ only in layout;
every method behaves identically from the caller's side. The backend is
selected once at startup and injected, never sniffed at runtime.
"""

import logging
from abc import ABC, abstractmethod

from auth.token_codec import SessionTokenCodec
from auth.types import OAuth2Profile, Session, TokenData, UserAccount

logger = logging.getLogger(__name__)

SESSION_KEEP_ALIVE_SECONDS = 60 * 60 * 24 * 30  # 30 days


class StorageError(Exception):
    """Backend transport or query failure. Propagated to the caller."""


class StorageBackend(ABC):
    """Durable persistence for accounts, sessions, and OAuth token links."""

    def __init__(self, codec: SessionTokenCodec):
        self._codec = codec

    # Sessions

    @abstractmethod
    def query_session_data(self, session_id: str, user_id: int | None = None) -> Session | None:
        """
        Load session. If user_id is given, return None unless it owns the session.

        Sessions older than the backend's keep-alive are gone (None).
        """

    @abstractmethod
    def save_session_data(self, session: Session) -> bool:
        """Persist new session. Returns False if it could not be stored."""

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        """Remove session. Returns True if it existed."""

    def generate_session(self, user: UserAccount) -> Session:
        """Mint a session id bound to user, persist it, and return the session.

        Raises:
            StorageError: If the session could not be saved.
        """
        session = Session(session_id=self._codec.mint(user.user_id), user=user)
        if not self.save_session_data(session):
            raise StorageError(f"Failed to save session for user {user.user_id}")
        logger.info(f"Generated new session for user {user.user_id}")
        return session

    # Accounts

    @abstractmethod
    def query_oauth_mapping(self, provider: str, sub: str) -> UserAccount | None:
        """Account linked to (provider, sub), if any."""

    @abstractmethod
    def get_account_info(self, user_id: int) -> UserAccount | None:
        """Account by id, if any."""

    @abstractmethod
    def create_account(self, account: UserAccount) -> None:
        """Insert new account."""

    @abstractmethod
    def update_account(self, account: UserAccount) -> None:
        """Overwrite the mutable profile fields of an existing account."""

    # OAuth tokens

    @abstractmethod
    def save_token(
        self,
        user_id: int,
        provider: str,
        sub: str,
        token: TokenData | None = None,
    ) -> None:
        """
        Link (provider, sub) to user_id and store token (upsert).

        A user holds at most one link per provider: saving a new sub replaces
        the user's previous link for that provider.
        """

    @abstractmethod
    def load_token(self, user_id: int, provider: str) -> TokenData | None:
        """Stored token for user_id at provider."""

    @abstractmethod
    def query_token(self, provider: str, sub: str) -> TokenData | None:
        """Stored token for (provider, sub)."""

    @abstractmethod
    def query_profile(self, provider: str, user_id: int) -> OAuth2Profile | None:
        """Provider identity linked to user_id (sub only)."""

    @abstractmethod
    def disconnect(self, provider: str, user_id: int) -> bool:
        """Remove user_id's link to provider. Returns True if one existed."""
