"""Application factory - wires services, middleware, and routes."""

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from fastapi import FastAPI

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.accounts import AccountManager
from auth.api import create_auth_router
from auth.cache import LRUCache
from auth.config import AuthConfig
from auth.mailer import FailoverMailer, MailTransport
from auth.oauth import OAuth2Client, OAuthLoginService, OAuthProvider, SignedInCallback, provider_config
from auth.rate_limiter import DecayLimiter
from auth.security_middleware import AuthMiddleware
from auth.service import EmailRenderer, LoginCallback, MagicLinkService, default_email_renderer
from auth.session import SessionManager
from auth.token_codec import SessionTokenCodec
from storage.base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    """Everything the HTTP layer needs, built once per process."""

    config: AuthConfig
    accounts: AccountManager
    session_manager: SessionManager
    magic_link: MagicLinkService
    mailer: FailoverMailer
    oauth: OAuthLoginService | None = None


def build_services(
    config: AuthConfig,
    backend: StorageBackend,
    codec: SessionTokenCodec,
    transports: Sequence[MailTransport],
    oauth_clients: Mapping[OAuthProvider, tuple] | None = None,
    renderer: EmailRenderer = default_email_renderer,
    on_login: LoginCallback | None = None,
    on_signed_in: SignedInCallback | None = None,
) -> AuthServices:
    """Construct the service graph around an already-connected backend.

    oauth_clients maps each enabled provider to (OAuthProviderConfig, OAuth2Client).
    on_login runs after each magic-link redemption, on_signed_in after each
    OAuth callback.
    """
    accounts = AccountManager(backend)

    session_cache = LRUCache(
        config.session_cache_capacity,
        ttl_seconds=config.session_cache_ttl_seconds,
    )
    session_manager = SessionManager(backend, codec, session_cache)

    mailer = FailoverMailer(
        transports,
        half_life_seconds=config.mail_failover_half_life_seconds,
    )
    magic_link = MagicLinkService(
        config=config,
        accounts=accounts,
        mailer=mailer,
        ip_limiter=DecayLimiter(
            config.ip_rate_limit_threshold,
            config.ip_rate_limit_half_life_seconds,
            capacity=config.rate_limit_capacity,
        ),
        email_limiter=DecayLimiter(
            config.email_rate_limit_threshold,
            config.email_rate_limit_half_life_seconds,
            capacity=config.rate_limit_capacity,
            normalize=str.lower,
        ),
        codes=LRUCache(config.code_capacity, ttl_seconds=config.code_ttl_minutes * 60),
        renderer=renderer,
        on_login=on_login,
    )

    oauth = OAuthLoginService(accounts, oauth_clients, on_signed_in=on_signed_in) if oauth_clients else None

    logger.info(
        f"Auth services ready: {len(transports)} mail transport(s), "
        f"oauth providers: {[p.value for p in oauth.providers] if oauth else []}"
    )
    return AuthServices(
        config=config,
        accounts=accounts,
        session_manager=session_manager,
        magic_link=magic_link,
        mailer=mailer,
        oauth=oauth,
    )


def create_app(services: AuthServices) -> FastAPI:
    """FastAPI app with request ids, session middleware, error handlers, and auth routes."""
    config = services.config
    app = FastAPI(title=config.app_name)
    app.add_middleware(AuthMiddleware, session_manager=services.session_manager)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(
        create_auth_router(
            config,
            services.magic_link,
            services.session_manager,
            oauth=services.oauth,
        ),
        prefix=config.auth_path_prefix.rstrip("/"),
    )

    @app.get("/health")
    def health():
        return success_response({"status": "ok"})

    return app


def create_app_from_vault(
    config: AuthConfig | None = None,
    backend_kind: str = "postgres",
    smtp_accounts: Sequence[str] = (),
    oauth_clients: Mapping[OAuthProvider, OAuth2Client] | None = None,
    on_login: LoginCallback | None = None,
    on_signed_in: SignedInCallback | None = None,
) -> FastAPI:
    """Production entry point. All secrets come from Vault; fails fast if any are missing.

    Args:
        config: Tunables; defaults if omitted.
        backend_kind: "postgres" or "valkey".
        smtp_accounts: Names of SMTP accounts under smtp/<name>, tried after the gateway.
        oauth_clients: OAuth2 client per enabled provider. Credentials for each
            are read from oauth/<provider>.
        on_login: Called with (profile, session) after a magic-link redemption.
        on_signed_in: Called with (provider, token, profile, session) after an
            OAuth callback.
    """
    from clients.email_client import EmailGatewayClient
    from clients.smtp_client import SmtpTransport
    from clients.vault_client import (
        get_email_config,
        get_oauth_credentials,
        get_session_secret,
        get_smtp_config,
    )

    config = config or AuthConfig()
    codec = SessionTokenCodec(get_session_secret())

    if backend_kind == "postgres":
        from clients.postgres_client import PostgresClient
        from clients.vault_client import get_database_url
        from storage.postgres import PostgresBackend

        backend = PostgresBackend(
            PostgresClient(get_database_url()),
            codec,
            session_keep_alive_seconds=config.session_keep_alive_days * 24 * 3600,
        )
    elif backend_kind == "valkey":
        from clients.valkey_client import ValkeyClient
        from clients.vault_client import get_valkey_url
        from storage.valkey import ValkeyBackend

        backend = ValkeyBackend(
            ValkeyClient(get_valkey_url()),
            codec,
            session_keep_alive_seconds=config.session_keep_alive_days * 24 * 3600,
        )
    else:
        raise ValueError(f"Unknown storage backend: {backend_kind}")

    gateway = get_email_config()
    transports: list[MailTransport] = [
        EmailGatewayClient(gateway["gateway_url"], gateway["api_key"], gateway["hmac_secret"])
    ]
    for name in smtp_accounts:
        smtp = get_smtp_config(name)
        transports.append(
            SmtpTransport(smtp["host"], int(smtp["port"]), smtp["username"], smtp["password"])
        )

    providers = {}
    for provider, client in (oauth_clients or {}).items():
        creds = get_oauth_credentials(provider.value)
        providers[provider] = (
            provider_config(provider, creds["client_id"], creds["client_secret"]),
            client,
        )

    services = build_services(
        config,
        backend,
        codec,
        transports,
        oauth_clients=providers,
        on_login=on_login,
        on_signed_in=on_signed_in,
    )
    return create_app(services)
