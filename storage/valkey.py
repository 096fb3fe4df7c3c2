"""Key-value storage backend (Valkey).

Key layout (all under an optional prefix, values are JSON):
    session:{session_id}           -> Session            (expires after keep-alive)
    account:{user_id}              -> UserAccount
    oauth:{provider}:{sub}         -> user_id
    token:{provider}:{user_id}     -> {"sub": ..., "token": ...}

The two OAuth keys are always written together in one MULTI/EXEC
transaction so a reader never sees one without the other.
"""

import logging
from contextlib import contextmanager

import redis
from pydantic import ValidationError

from auth.token_codec import SessionTokenCodec
from auth.types import OAuth2Profile, Session, TokenData, UserAccount
from clients.valkey_client import ValkeyClient
from storage.base import SESSION_KEEP_ALIVE_SECONDS, StorageBackend, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(operation: str):
    """Translate transport and decode errors into StorageError."""
    try:
        yield
    except (redis.RedisError, ValueError, ValidationError) as e:
        logger.error(f"Valkey {operation} failed: {e}")
        raise StorageError(f"{operation} failed: {e}") from e


class ValkeyBackend(StorageBackend):
    """StorageBackend over a ValkeyClient."""

    def __init__(
        self,
        valkey: ValkeyClient,
        codec: SessionTokenCodec,
        key_prefix: str = "",
        session_keep_alive_seconds: int = SESSION_KEEP_ALIVE_SECONDS,
    ):
        super().__init__(codec)
        self._valkey = valkey
        self._prefix = key_prefix
        self._keep_alive = session_keep_alive_seconds

    def _session_key(self, session_id: str) -> str:
        return f"{self._prefix}session:{session_id}"

    def _account_key(self, user_id: int) -> str:
        return f"{self._prefix}account:{user_id}"

    def _oauth_key(self, provider: str, sub: str) -> str:
        return f"{self._prefix}oauth:{provider}:{sub}"

    def _token_key(self, provider: str, user_id: int) -> str:
        return f"{self._prefix}token:{provider}:{user_id}"

    def _token_record(self, provider: str, user_id: int) -> dict | None:
        return self._valkey.get_json(self._token_key(provider, user_id))

    # Sessions

    def query_session_data(self, session_id: str, user_id: int | None = None) -> Session | None:
        if not session_id:
            return None
        with _storage_errors("query_session_data"):
            data = self._valkey.get_json(self._session_key(session_id))
            if data is None:
                return None
            session = Session.model_validate(data)
        if user_id is not None and session.user.user_id != user_id:
            logger.warning(f"Session owner mismatch for claimed user {user_id}")
            return None
        return session

    def save_session_data(self, session: Session) -> bool:
        try:
            self._valkey.set_json(
                self._session_key(session.session_id),
                session.model_dump(mode="json"),
                expire_seconds=self._keep_alive,
            )
        except redis.RedisError as e:
            logger.error(f"Failed to save session for user {session.user.user_id}: {e}")
            return False
        return True

    def delete_session(self, session_id: str) -> bool:
        with _storage_errors("delete_session"):
            return self._valkey.delete(self._session_key(session_id))

    # Accounts

    def query_oauth_mapping(self, provider: str, sub: str) -> UserAccount | None:
        with _storage_errors("query_oauth_mapping"):
            user_id = self._valkey.get_json(self._oauth_key(provider, sub))
        if user_id is None:
            return None
        return self.get_account_info(int(user_id))

    def get_account_info(self, user_id: int) -> UserAccount | None:
        with _storage_errors("get_account_info"):
            data = self._valkey.get_json(self._account_key(user_id))
            return UserAccount.model_validate(data) if data is not None else None

    def create_account(self, account: UserAccount) -> None:
        with _storage_errors("create_account"):
            self._valkey.set_json(self._account_key(account.user_id), account.model_dump(mode="json"))
        logger.info(f"Created new user account {account.user_id}")

    def update_account(self, account: UserAccount) -> None:
        with _storage_errors("update_account"):
            self._valkey.set_json(self._account_key(account.user_id), account.model_dump(mode="json"))

    # OAuth tokens

    def save_token(
        self,
        user_id: int,
        provider: str,
        sub: str,
        token: TokenData | None = None,
    ) -> None:
        oauth_key = self._oauth_key(provider, sub)
        with _storage_errors("save_token"):
            previous_owner = self._valkey.get_json(oauth_key)
            stale = []
            if previous_owner is not None and int(previous_owner) != user_id:
                stale.append(self._token_key(provider, int(previous_owner)))
            # A user keeps one sub per provider; retire the link to the old one
            current = self._token_record(provider, user_id)
            if current and current.get("sub") != sub:
                old_key = self._oauth_key(provider, current["sub"])
                old_owner = self._valkey.get_json(old_key)
                if old_owner is not None and int(old_owner) == user_id:
                    stale.append(old_key)
            self._valkey.write_json_atomic(
                {
                    oauth_key: user_id,
                    self._token_key(provider, user_id): {"sub": sub, "token": token},
                },
                delete=stale,
            )
        logger.info(f"Saved {provider} token of user {user_id}")

    def load_token(self, user_id: int, provider: str) -> TokenData | None:
        with _storage_errors("load_token"):
            record = self._token_record(provider, user_id)
        return record.get("token") if record else None

    def query_token(self, provider: str, sub: str) -> TokenData | None:
        with _storage_errors("query_token"):
            user_id = self._valkey.get_json(self._oauth_key(provider, sub))
            if user_id is None:
                return None
            record = self._token_record(provider, int(user_id))
        if not record or record.get("sub") != sub:
            return None
        return record.get("token")

    def query_profile(self, provider: str, user_id: int) -> OAuth2Profile | None:
        with _storage_errors("query_profile"):
            record = self._token_record(provider, user_id)
        return OAuth2Profile(sub=record["sub"]) if record else None

    def disconnect(self, provider: str, user_id: int) -> bool:
        token_key = self._token_key(provider, user_id)
        with _storage_errors("disconnect"):
            record = self._valkey.get_json(token_key)
            if record is None:
                return False
            doomed = [token_key]
            oauth_key = self._oauth_key(provider, record["sub"])
            owner = self._valkey.get_json(oauth_key)
            if owner is not None and int(owner) == user_id:
                doomed.append(oauth_key)
            self._valkey.write_json_atomic({}, delete=doomed)
        logger.info(f"Disconnected {provider} from user {user_id}")
        return True
