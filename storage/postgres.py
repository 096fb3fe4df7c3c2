"""Relational storage backend (PostgreSQL).

Tables: accounts, sessions, oauth (see storage/schema.sql). OAuth tokens are
stored as JSON text. sessions.created is epoch milliseconds; rows older than
the keep-alive are ignored on read.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any

import psycopg2

from auth.token_codec import SessionTokenCodec
from auth.types import OAuth2Profile, Session, TokenData, UserAccount
from clients.postgres_client import PostgresClient
from storage.base import SESSION_KEEP_ALIVE_SECONDS, StorageBackend, StorageError
from utils.timezone import epoch_millis

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "a.id, a.email, a.email_verified, a.picture, a.display_name, a.username"


@contextmanager
def _storage_errors(operation: str):
    """Translate driver errors into StorageError."""
    try:
        yield
    except psycopg2.Error as e:
        logger.error(f"Postgres {operation} failed: {e}")
        raise StorageError(f"{operation} failed: {e}") from e


def _row_to_account(row: dict[str, Any]) -> UserAccount:
    return UserAccount(
        user_id=row["id"],
        email=row["email"],
        email_verified=bool(row["email_verified"]),
        profile_pic=row["picture"],
        display_name=row["display_name"],
        username=row["username"],
    )


def _load_token_json(raw: str | None) -> TokenData | None:
    if raw is None:
        return None
    return json.loads(raw)


class PostgresBackend(StorageBackend):
    """StorageBackend over a pooled PostgresClient."""

    def __init__(
        self,
        postgres: PostgresClient,
        codec: SessionTokenCodec,
        session_keep_alive_seconds: int = SESSION_KEEP_ALIVE_SECONDS,
    ):
        super().__init__(codec)
        self._db = postgres
        self._keep_alive = session_keep_alive_seconds

    def query_session_data(self, session_id: str, user_id: int | None = None) -> Session | None:
        if not session_id:
            return None
        sql = f"""SELECT s.id AS ssid, {_ACCOUNT_COLUMNS}
                  FROM sessions s JOIN accounts a ON a.id = s.user_id
                  WHERE s.id = %s AND s.created >= %s"""
        params: tuple = (session_id, epoch_millis() - self._keep_alive * 1000)
        if user_id is not None:
            sql += " AND s.user_id = %s"
            params += (user_id,)
        with _storage_errors("query_session_data"):
            row = self._db.execute_single(sql, params)
        if row is None:
            return None
        return Session(session_id=row["ssid"], user=_row_to_account(row))

    def save_session_data(self, session: Session) -> bool:
        """Insert session row. Duplicate ids and driver errors return False."""
        try:
            rows = self._db.execute_returning(
                """INSERT INTO sessions (id, user_id, created)
                   VALUES (%s, %s, %s)
                   ON CONFLICT (id) DO NOTHING
                   RETURNING id""",
                (session.session_id, session.user.user_id, epoch_millis()),
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to save session for user {session.user.user_id}: {e}")
            return False
        if not rows:
            logger.warning(f"Session id collision for user {session.user.user_id}")
            return False
        return True

    def delete_session(self, session_id: str) -> bool:
        with _storage_errors("delete_session"):
            rows = self._db.execute_returning(
                "DELETE FROM sessions WHERE id = %s RETURNING id",
                (session_id,),
            )
        return len(rows) > 0

    def query_oauth_mapping(self, provider: str, sub: str) -> UserAccount | None:
        with _storage_errors("query_oauth_mapping"):
            row = self._db.execute_single(
                f"""SELECT {_ACCOUNT_COLUMNS}
                    FROM oauth o JOIN accounts a ON a.id = o.user_id
                    WHERE o.provider = %s AND o.sub = %s""",
                (provider, sub),
            )
        return _row_to_account(row) if row else None

    def get_account_info(self, user_id: int) -> UserAccount | None:
        with _storage_errors("get_account_info"):
            row = self._db.execute_single(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts a WHERE a.id = %s",
                (user_id,),
            )
        return _row_to_account(row) if row else None

    def create_account(self, account: UserAccount) -> None:
        with _storage_errors("create_account"):
            self._db.execute_returning(
                """INSERT INTO accounts (id, email, email_verified, picture, display_name, username)
                   VALUES (%s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    account.user_id,
                    account.email,
                    1 if account.email_verified else 0,
                    account.profile_pic,
                    account.display_name,
                    account.username,
                ),
            )
        logger.info(f"Created new user account {account.user_id}")

    def update_account(self, account: UserAccount) -> None:
        with _storage_errors("update_account"):
            self._db.execute_returning(
                """UPDATE accounts
                   SET email = %s, email_verified = %s, picture = %s,
                       display_name = %s, username = %s
                   WHERE id = %s
                   RETURNING id""",
                (
                    account.email,
                    1 if account.email_verified else 0,
                    account.profile_pic,
                    account.display_name,
                    account.username,
                    account.user_id,
                ),
            )

    def save_token(
        self,
        user_id: int,
        provider: str,
        sub: str,
        token: TokenData | None = None,
    ) -> None:
        payload = json.dumps(token) if token is not None else None
        # Replacing the user's old sub and the upsert commit as one statement
        with _storage_errors("save_token"):
            self._db.execute_returning(
                """WITH replaced AS (
                       DELETE FROM oauth
                       WHERE provider = %s AND user_id = %s AND sub <> %s
                   )
                   INSERT INTO oauth (provider, sub, user_id, token)
                   VALUES (%s, %s, %s, %s)
                   ON CONFLICT (provider, sub)
                   DO UPDATE SET user_id = EXCLUDED.user_id, token = EXCLUDED.token
                   RETURNING sub""",
                (provider, user_id, sub, provider, sub, user_id, payload),
            )
        logger.info(f"Saved {provider} token of user {user_id}")

    def load_token(self, user_id: int, provider: str) -> TokenData | None:
        with _storage_errors("load_token"):
            row = self._db.execute_single(
                "SELECT token FROM oauth WHERE user_id = %s AND provider = %s",
                (user_id, provider),
            )
        return _load_token_json(row["token"]) if row else None

    def query_token(self, provider: str, sub: str) -> TokenData | None:
        with _storage_errors("query_token"):
            row = self._db.execute_single(
                "SELECT token FROM oauth WHERE provider = %s AND sub = %s",
                (provider, sub),
            )
        return _load_token_json(row["token"]) if row else None

    def query_profile(self, provider: str, user_id: int) -> OAuth2Profile | None:
        with _storage_errors("query_profile"):
            row = self._db.execute_single(
                "SELECT sub FROM oauth WHERE user_id = %s AND provider = %s",
                (user_id, provider),
            )
        return OAuth2Profile(sub=row["sub"]) if row else None

    def disconnect(self, provider: str, user_id: int) -> bool:
        with _storage_errors("disconnect"):
            rows = self._db.execute_returning(
                "DELETE FROM oauth WHERE provider = %s AND user_id = %s RETURNING sub",
                (provider, user_id),
            )
        if rows:
            logger.info(f"Disconnected {provider} from user {user_id}")
        return len(rows) > 0
