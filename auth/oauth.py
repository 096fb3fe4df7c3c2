"""OAuth2 sign-in on top of an external OAuth2 client.

The authorization-code exchange and profile fetch are delegated to an
OAuth2Client implementation supplied at startup. This module only knows the
closed set of supported providers, their endpoints, and what to do with the
resulting token and profile.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Protocol

from pydantic import BaseModel, Field

from auth.accounts import AccountManager
from auth.exceptions import OAuthExchangeError, UnknownProviderError
from auth.types import OAuth2Profile, Session, TokenData, UserAccount

logger = logging.getLogger(__name__)


class OAuthProvider(str, Enum):
    """Supported OAuth2 providers."""

    GOOGLE = "google"
    FACEBOOK = "facebook"
    STRAVA = "strava"


class OAuthProviderConfig(BaseModel):
    """Endpoints, credentials, and account policy for one provider."""

    provider: OAuthProvider
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    authorize_url: str
    token_url: str
    profile_url: str
    scope: str
    auto_create_account: bool = True
    refresh_profile: bool = False


_ENDPOINTS: dict[OAuthProvider, dict[str, str]] = {
    OAuthProvider.GOOGLE: {
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "profile_url": "https://openidconnect.googleapis.com/v1/userinfo",
        "scope": "openid email profile",
    },
    OAuthProvider.FACEBOOK: {
        "authorize_url": "https://www.facebook.com/v19.0/dialog/oauth",
        "token_url": "https://graph.facebook.com/v19.0/oauth/access_token",
        "profile_url": "https://graph.facebook.com/me?fields=id,name,email,picture",
        "scope": "email public_profile",
    },
    OAuthProvider.STRAVA: {
        "authorize_url": "https://www.strava.com/oauth/authorize",
        "token_url": "https://www.strava.com/oauth/token",
        "profile_url": "https://www.strava.com/api/v3/athlete",
        "scope": "read",
    },
}


def parse_provider(name: str) -> OAuthProvider:
    """Map a provider name to OAuthProvider.

    Raises:
        UnknownProviderError: If name is not a supported provider.
    """
    try:
        return OAuthProvider(name.lower())
    except ValueError:
        raise UnknownProviderError(f"Unsupported OAuth provider: {name}")


def provider_config(
    provider: OAuthProvider | str,
    client_id: str,
    client_secret: str,
    **overrides,
) -> OAuthProviderConfig:
    """Build the configuration for a supported provider with its standard endpoints."""
    if not isinstance(provider, OAuthProvider):
        provider = parse_provider(provider)
    return OAuthProviderConfig(
        provider=provider,
        client_id=client_id,
        client_secret=client_secret,
        **{**_ENDPOINTS[provider], **overrides},
    )


class OAuth2Client(Protocol):
    """External OAuth2 client, one per provider."""

    def authorize_url(self, redirect_uri: str, state: str) -> str: ...

    def exchange_token(self, code: str, grant_type: str, redirect_uri: str) -> TokenData: ...

    def get_profile(self, token: TokenData) -> OAuth2Profile: ...


SignedInCallback = Callable[[OAuthProvider, TokenData, OAuth2Profile, Session | None], None]


@dataclass
class OAuthLoginResult:
    """Outcome of an OAuth callback. account/session are None when auto-create is off."""

    provider: OAuthProvider
    token: TokenData
    profile: OAuth2Profile
    account: UserAccount | None
    session: Session | None


class OAuthLoginService:
    """Turns an authorization code into an account and session."""

    def __init__(
        self,
        accounts: AccountManager,
        providers: Mapping[OAuthProvider, tuple[OAuthProviderConfig, OAuth2Client]],
        on_signed_in: SignedInCallback | None = None,
    ):
        for key, (config, _client) in providers.items():
            if not isinstance(key, OAuthProvider) or config.provider is not key:
                raise UnknownProviderError(f"Provider configuration mismatch for {key!r}")
        self._accounts = accounts
        self._providers = dict(providers)
        self._on_signed_in = on_signed_in

    @property
    def providers(self) -> list[OAuthProvider]:
        return list(self._providers)

    def _lookup(self, provider: OAuthProvider) -> tuple[OAuthProviderConfig, OAuth2Client]:
        try:
            return self._providers[provider]
        except KeyError:
            raise UnknownProviderError(f"OAuth provider not configured: {provider.value}")

    def authorization_url(self, provider: OAuthProvider, redirect_uri: str, state: str) -> str:
        _config, client = self._lookup(provider)
        return client.authorize_url(redirect_uri, state)

    def complete_login(self, provider: OAuthProvider, code: str, redirect_uri: str) -> OAuthLoginResult:
        """Exchange code, fetch profile, and link/create the account.

        Raises:
            UnknownProviderError: If provider is not configured.
            OAuthExchangeError: If the OAuth2 client fails.
            StorageError: If the backend fails.
        """
        config, client = self._lookup(provider)
        try:
            token = client.exchange_token(code, "authorization_code", redirect_uri)
            profile = client.get_profile(token)
        except Exception as e:
            logger.error(f"OAuth exchange with {provider.value} failed: {e}")
            raise OAuthExchangeError(f"{provider.value} sign-in failed") from e

        account = session = None
        if config.auto_create_account:
            account = self._accounts.get_or_create_account(
                provider.value,
                token,
                profile,
                refresh_profile=config.refresh_profile,
            )
            session = self._accounts.generate_session(account)
            logger.info(f"User {account.user_id} signed in with {provider.value}")

        if self._on_signed_in:
            self._on_signed_in(provider, token, profile, session)

        return OAuthLoginResult(
            provider=provider,
            token=token,
            profile=profile,
            account=account,
            session=session,
        )

    def disconnect(self, provider: OAuthProvider, user_id: int) -> bool:
        """Unlink provider from user_id. Returns False if there was no link."""
        self._lookup(provider)
        return self._accounts.disconnect(provider.value, user_id)
