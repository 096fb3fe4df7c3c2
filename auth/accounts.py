"""Account linking and session issuance on top of a StorageBackend.

The manager holds no durable state of its own: every call goes to the
backend and the result is handed straight back to the caller.
"""

import logging
import secrets

from auth.types import MAX_USER_ID, OAuth2Profile, Session, TokenData, UserAccount
from storage.base import StorageBackend

logger = logging.getLogger(__name__)


def generate_user_id() -> int:
    """Uniform random id in [0, 2^48). Random so ids can't be enumerated."""
    return secrets.randbelow(MAX_USER_ID)


class AccountManager:
    """Single entry point the login flows use to reach storage."""

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    def get_or_create_account(
        self,
        provider: str,
        token: TokenData | None,
        profile: OAuth2Profile,
        refresh_profile: bool = False,
    ) -> UserAccount:
        """Resolve (provider, profile.sub) to an account, creating one if needed.

        Existing account: the token is upserted (refresh on re-login) and the
        account is returned as stored, unless refresh_profile asks for the
        provider's profile fields to be written back first.

        New account: random user_id, optional fields copied from profile,
        display_name falls back to "<provider>-<sub>".

        Two concurrent first logins for the same (provider, sub) can both miss
        the lookup and create two accounts; the later save_token wins the link.
        """
        account = self._backend.query_oauth_mapping(provider, profile.sub)
        if account is not None:
            if token is not None and profile.sub:
                self._backend.save_token(account.user_id, provider, profile.sub, token)
            if refresh_profile:
                account = self._refresh_profile(account, profile)
            return account

        account = UserAccount(
            user_id=generate_user_id(),
            display_name=profile.name or f"{provider}-{profile.sub}",
        )
        if profile.email:
            account.email = profile.email
            account.email_verified = bool(profile.email_verified)
        if profile.picture:
            account.profile_pic = profile.picture

        self._backend.create_account(account)
        # The link is written even without a token so the next login finds it
        self._backend.save_token(account.user_id, provider, profile.sub, token)
        logger.info(f"Created account {account.user_id} for {provider}/{profile.sub}")
        return account

    def _refresh_profile(self, account: UserAccount, profile: OAuth2Profile) -> UserAccount:
        updated = account.model_copy(
            update={
                "email": profile.email or account.email,
                "email_verified": bool(profile.email_verified) if profile.email else account.email_verified,
                "profile_pic": profile.picture or account.profile_pic,
                "display_name": profile.name or account.display_name,
            }
        )
        if updated != account:
            self._backend.update_account(updated)
        return updated

    def generate_session(self, account: UserAccount) -> Session:
        return self._backend.generate_session(account)

    def get_account(self, user_id: int) -> UserAccount | None:
        return self._backend.get_account_info(user_id)

    def save_token(self, user_id: int, provider: str, sub: str, token: TokenData | None) -> None:
        self._backend.save_token(user_id, provider, sub, token)

    def load_token(self, user_id: int, provider: str) -> TokenData | None:
        return self._backend.load_token(user_id, provider)

    def query_token(self, provider: str, sub: str) -> TokenData | None:
        return self._backend.query_token(provider, sub)

    def query_profile(self, provider: str, user_id: int) -> OAuth2Profile | None:
        return self._backend.query_profile(provider, user_id)

    def disconnect(self, provider: str, user_id: int) -> bool:
        return self._backend.disconnect(provider, user_id)
