"""Shared fixtures: signing codec, user ids, fakeredis-backed storage and a fake clock."""

import pytest
from pathlib import Path

import fakeredis
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.token_codec import SessionTokenCodec
from auth.types import UserAccount
from clients.valkey_client import ValkeyClient
from storage.valkey import ValkeyBackend
from utils.user_context import clear_current_user_id


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = 123456789
TEST_USER_EMAIL = "testuser@test.local"

# Secondary test user - use for isolation tests
TEST_USER_B_ID = 987654321
TEST_USER_B_EMAIL = "testuser-b@test.local"

TEST_SIGNING_SECRET = "test-signing-secret"


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def test_user_id() -> int:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> int:
    """The secondary test user's ID (for isolation tests)."""
    return TEST_USER_B_ID


@pytest.fixture
def test_user(test_user_id) -> UserAccount:
    """The primary test user's account."""
    return UserAccount(
        user_id=test_user_id,
        display_name="Test User",
        email=TEST_USER_EMAIL,
        email_verified=True,
    )


# =============================================================================
# CODEC FIXTURES
# =============================================================================


@pytest.fixture
def codec() -> SessionTokenCodec:
    """Session token codec with a fixed test secret."""
    return SessionTokenCodec(TEST_SIGNING_SECRET)


# =============================================================================
# VALKEY FIXTURES
# =============================================================================


@pytest.fixture
def fake_redis():
    """In-memory Redis server, fresh per test."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def valkey(fake_redis):
    """ValkeyClient wrapping the in-memory server."""
    client = ValkeyClient(client=fake_redis)
    yield client
    client.close()


@pytest.fixture
def backend(valkey, codec) -> ValkeyBackend:
    """Key-value storage backend on the in-memory server."""
    return ValkeyBackend(valkey, codec)


# =============================================================================
# CLOCK FIXTURES
# =============================================================================


class FakeClock:
    """Manually advanced clock for time-decay tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
