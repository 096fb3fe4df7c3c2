"""Tests for PostgresBackend - SQL issued against a mocked PostgresClient."""

import json
from unittest.mock import Mock

import psycopg2
import pytest

from auth.types import Session, UserAccount
from clients.postgres_client import PostgresClient
from storage.base import StorageError
from storage.postgres import PostgresBackend


@pytest.fixture
def mock_db():
    """Mock PostgresClient - SQL shape is checked, not executed."""
    return Mock(spec=PostgresClient)


@pytest.fixture
def pg_backend(mock_db, codec):
    return PostgresBackend(mock_db, codec)


def _account_row(user_id=42, **overrides):
    row = {
        "id": user_id,
        "email": "a@b.com",
        "email_verified": 1,
        "picture": None,
        "display_name": "A",
        "username": None,
    }
    row.update(overrides)
    return row


class TestSessions:
    """Session rows."""

    def test_query_session_joins_account(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = {"ssid": "sid", **_account_row()}

        session = pg_backend.query_session_data("sid")

        assert session.session_id == "sid"
        assert session.user.user_id == 42
        assert session.user.email_verified is True
        sql, params = mock_db.execute_single.call_args.args
        assert "JOIN accounts" in sql
        assert "s.created >= %s" in sql
        assert params[0] == "sid"

    def test_query_session_with_owner_filters_by_user(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = None

        assert pg_backend.query_session_data("sid", 42) is None

        sql, params = mock_db.execute_single.call_args.args
        assert "s.user_id = %s" in sql
        assert (params[0], params[2]) == ("sid", 42)

    def test_query_session_cutoff_is_keep_alive_ago(self, mock_db, codec, monkeypatch):
        monkeypatch.setattr("storage.postgres.epoch_millis", lambda: 10_000_000)
        mock_db.execute_single.return_value = None

        PostgresBackend(mock_db, codec, session_keep_alive_seconds=3600).query_session_data("sid")

        assert mock_db.execute_single.call_args.args[1] == ("sid", 10_000_000 - 3_600_000)

    def test_query_empty_session_id(self, pg_backend, mock_db):
        assert pg_backend.query_session_data("") is None
        mock_db.execute_single.assert_not_called()

    def test_save_session(self, pg_backend, mock_db):
        mock_db.execute_returning.return_value = [{"id": "sid"}]
        session = Session(session_id="sid", user=UserAccount(user_id=42))

        assert pg_backend.save_session_data(session) is True

        sql, params = mock_db.execute_returning.call_args.args
        assert "ON CONFLICT (id) DO NOTHING" in sql
        assert params[:2] == ("sid", 42)
        assert isinstance(params[2], int)

    def test_save_duplicate_session_returns_false(self, pg_backend, mock_db):
        mock_db.execute_returning.return_value = []
        session = Session(session_id="sid", user=UserAccount(user_id=42))

        assert pg_backend.save_session_data(session) is False

    def test_save_session_driver_error_returns_false(self, pg_backend, mock_db):
        mock_db.execute_returning.side_effect = psycopg2.OperationalError("down")
        session = Session(session_id="sid", user=UserAccount(user_id=42))

        assert pg_backend.save_session_data(session) is False

    def test_generate_session_raises_when_save_fails(self, pg_backend, mock_db):
        mock_db.execute_returning.return_value = []

        with pytest.raises(StorageError):
            pg_backend.generate_session(UserAccount(user_id=42))

    def test_generate_session_mints_verifiable_id(self, pg_backend, mock_db, codec):
        mock_db.execute_returning.return_value = [{"id": "x"}]

        session = pg_backend.generate_session(UserAccount(user_id=42))

        assert codec.verify(session.session_id, 42)

    def test_delete_session(self, pg_backend, mock_db):
        mock_db.execute_returning.return_value = [{"id": "sid"}]
        assert pg_backend.delete_session("sid") is True

        mock_db.execute_returning.return_value = []
        assert pg_backend.delete_session("sid") is False


class TestAccounts:
    """Account rows."""

    def test_query_oauth_mapping(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = _account_row(email_verified=0)

        account = pg_backend.query_oauth_mapping("google", "g-1")

        assert account.user_id == 42
        assert account.email_verified is False
        assert mock_db.execute_single.call_args.args[1] == ("google", "g-1")

    def test_query_oauth_mapping_miss(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = None
        assert pg_backend.query_oauth_mapping("google", "g-1") is None

    def test_create_account_stores_verified_flag_as_int(self, pg_backend, mock_db):
        pg_backend.create_account(UserAccount(user_id=7, email="a@b.com", email_verified=True))

        params = mock_db.execute_returning.call_args.args[1]
        assert params[:3] == (7, "a@b.com", 1)

    def test_update_account_targets_id(self, pg_backend, mock_db):
        pg_backend.update_account(UserAccount(user_id=7, display_name="New"))

        sql, params = mock_db.execute_returning.call_args.args
        assert sql.strip().startswith("UPDATE accounts")
        assert params[-1] == 7

    def test_driver_error_becomes_storage_error(self, pg_backend, mock_db):
        mock_db.execute_single.side_effect = psycopg2.OperationalError("connection refused")

        with pytest.raises(StorageError):
            pg_backend.get_account_info(42)


class TestTokens:
    """OAuth link rows."""

    def test_save_token_upserts_owner_and_token(self, pg_backend, mock_db):
        pg_backend.save_token(42, "google", "g-1", {"access_token": "at"})

        sql, params = mock_db.execute_returning.call_args.args
        assert "ON CONFLICT (provider, sub)" in sql
        assert "user_id = EXCLUDED.user_id" in sql
        assert params[3:] == ("google", "g-1", 42, json.dumps({"access_token": "at"}))

    def test_save_token_replaces_users_other_sub(self, pg_backend, mock_db):
        pg_backend.save_token(42, "google", "g-2", None)

        sql, params = mock_db.execute_returning.call_args.args
        assert "DELETE FROM oauth" in sql
        assert "sub <> %s" in sql
        assert params[:3] == ("google", 42, "g-2")

    def test_save_null_token(self, pg_backend, mock_db):
        pg_backend.save_token(42, "email", "a@b.com", None)

        assert mock_db.execute_returning.call_args.args[1][-1] is None

    def test_load_token_decodes_json(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = {"token": '{"access_token": "at"}'}

        assert pg_backend.load_token(42, "google") == {"access_token": "at"}

    def test_load_null_token(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = {"token": None}

        assert pg_backend.load_token(42, "email") is None

    def test_query_token(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = {"token": '{"a": 1}'}

        assert pg_backend.query_token("google", "g-1") == {"a": 1}
        assert mock_db.execute_single.call_args.args[1] == ("google", "g-1")

    def test_query_profile(self, pg_backend, mock_db):
        mock_db.execute_single.return_value = {"sub": "g-1"}

        assert pg_backend.query_profile("google", 42).sub == "g-1"

    def test_disconnect(self, pg_backend, mock_db):
        mock_db.execute_returning.return_value = [{"sub": "g-1"}]
        assert pg_backend.disconnect("google", 42) is True

        mock_db.execute_returning.return_value = []
        assert pg_backend.disconnect("google", 42) is False
