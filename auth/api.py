"""HTTP routes for authentication.

Routes are plain `def` so FastAPI runs them in its threadpool; every
service call below may block on storage or mail I/O.
"""

import ipaddress
import logging
import secrets

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.base import success_response, error_response, ErrorCodes
from auth.config import AuthConfig
from auth.exceptions import (
    InvalidCodeError,
    InvalidEmailError,
    MailDeliveryError,
    OAuthExchangeError,
    RateLimitedError,
    UnknownProviderError,
)
from auth.oauth import OAuthLoginService, parse_provider
from auth.security_middleware import COOKIE_SESSION_ID, COOKIE_USER_ID
from auth.service import LOGIN_MESSAGES, LoginStatus, MagicLinkService
from auth.session import SessionManager
from auth.types import Session
from storage.base import StorageError
from utils.user_context import peek_current_user_id

logger = logging.getLogger(__name__)

COOKIE_OAUTH_STATE = "oauth-state"


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _login_response(status: LoginStatus, code: str, http_status: int, headers: dict | None = None):
    payload = {"status": int(status)}
    message = LOGIN_MESSAGES[status]
    if status is LoginStatus.MAILED:
        content = success_response({**payload, "message": message})
    else:
        content = error_response(code, message, data=payload)
    return JSONResponse(
        status_code=http_status,
        headers=headers,
        content=content.model_dump(mode="json"),
    )


def create_auth_router(
    config: AuthConfig,
    magic_link: MagicLinkService,
    session_manager: SessionManager,
    oauth: OAuthLoginService | None = None,
) -> APIRouter:
    """Create auth router with injected services."""
    router = APIRouter(tags=["auth"])
    cookie_max_age = config.session_keep_alive_days * 24 * 3600

    def _signed_in(session: Session, redirect_to: str = "/") -> RedirectResponse:
        session_manager.remember(session)
        response = RedirectResponse(url=redirect_to, status_code=302)
        for key, value in (
            (COOKIE_SESSION_ID, session.session_id),
            (COOKIE_USER_ID, str(session.user.user_id)),
        ):
            response.set_cookie(
                key=key,
                value=value,
                httponly=True,
                secure=config.app_base_url.startswith("https://"),
                samesite="lax",
                max_age=cookie_max_age,
            )
        return response

    @router.get("/login")
    def login(
        request: Request,
        email: str | None = Query(None),
        code: str | None = Query(None),
    ):
        """Magic link login.

        Without code: mail a login link to email.
        With code: redeem it, set session cookies, redirect home.
        """
        ip_address = _get_client_ip(request) or "unknown"

        if code:
            try:
                result = magic_link.redeem_login_code(code=code, email=email or "", ip_address=ip_address)
            except InvalidCodeError:
                return JSONResponse(
                    status_code=400,
                    content=error_response(
                        ErrorCodes.INVALID_CODE,
                        "Invalid or expired code",
                    ).model_dump(mode="json"),
                )
            return _signed_in(result.session)

        if config.allowed_origin and request.headers.get("Origin") != f"https://{config.allowed_origin}":
            return JSONResponse(
                status_code=403,
                content=error_response(ErrorCodes.FORBIDDEN, "Forbidden").model_dump(mode="json"),
            )

        cors = {}
        if config.allowed_origin:
            cors = {
                "Access-Control-Allow-Origin": f"https://{config.allowed_origin}",
                "Access-Control-Allow-Credentials": "true",
            }

        try:
            magic_link.request_login_code(email=email or "", ip_address=ip_address)
        except InvalidEmailError:
            return _login_response(LoginStatus.INVALID_EMAIL, ErrorCodes.INVALID_EMAIL, 400, cors)
        except RateLimitedError as e:
            logger.warning(f"Login rate limit hit by {ip_address} for {email!r}")
            return _login_response(
                LoginStatus.RATE_LIMITED,
                ErrorCodes.RATE_LIMITED,
                429,
                {**cors, "Retry-After": str(e.retry_after_seconds)},
            )
        except MailDeliveryError as e:
            logger.error(f"Failed to send login URL to {email}: {e.__cause__}")
            return _login_response(LoginStatus.SERVER_ERROR, ErrorCodes.MAIL_DELIVERY_FAILED, 500, cors)

        return _login_response(LoginStatus.MAILED, "", 200, cors)

    @router.get("/logout")
    def logout(request: Request):
        """Logout - revoke session and clear cookies."""
        session: Session | None = getattr(request.state, "session", None)
        if session is not None:
            session_manager.revoke_session(session.session_id)

        response = RedirectResponse(url="/", status_code=302)
        response.delete_cookie(key=COOKIE_SESSION_ID)
        response.delete_cookie(key=COOKIE_USER_ID)
        return response

    @router.get("/me")
    def get_current_user(request: Request):
        """Get current signed-in account.

        Requires a session (middleware attaches it).
        """
        session: Session | None = getattr(request.state, "session", None)
        if session is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        user = session.user
        return success_response({
            "user_id": str(user.user_id),
            "display_name": user.display_name,
            "email": user.email,
            "email_verified": user.email_verified,
            "profile_pic": user.profile_pic,
        })

    if oauth is None:
        return router

    def _unknown_provider(name: str) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=error_response(
                ErrorCodes.UNKNOWN_PROVIDER,
                f"Unknown sign-in provider: {name}",
            ).model_dump(mode="json"),
        )

    def _callback_url(provider_name: str) -> str:
        return f"{config.app_base_url.rstrip('/')}{config.auth_path_prefix}{provider_name}/callback"

    @router.get("/{provider_name}")
    def oauth_start(provider_name: str):
        """Redirect to the provider's consent page."""
        try:
            provider = parse_provider(provider_name)
            state = secrets.token_urlsafe(16)
            url = oauth.authorization_url(provider, _callback_url(provider.value), state)
        except UnknownProviderError:
            return _unknown_provider(provider_name)

        response = RedirectResponse(url=url, status_code=302)
        response.set_cookie(
            key=COOKIE_OAUTH_STATE,
            value=state,
            httponly=True,
            samesite="lax",
            max_age=600,
        )
        return response

    @router.get("/{provider_name}/callback")
    def oauth_callback(
        request: Request,
        provider_name: str,
        code: str | None = Query(None),
        state: str | None = Query(None),
    ):
        """Complete OAuth sign-in. Failures log and go home without a session."""
        try:
            provider = parse_provider(provider_name)
        except UnknownProviderError:
            return _unknown_provider(provider_name)

        expected_state = request.cookies.get(COOKIE_OAUTH_STATE)
        if not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
            logger.warning(f"OAuth callback from {provider.value} with missing code or bad state")
            return RedirectResponse(url="/", status_code=302)

        try:
            result = oauth.complete_login(provider, code, _callback_url(provider.value))
        except (UnknownProviderError, OAuthExchangeError, StorageError) as e:
            logger.error(f"OAuth sign-in with {provider.value} failed: {e}")
            return RedirectResponse(url="/", status_code=302)

        if result.session is None:
            response = RedirectResponse(url="/", status_code=302)
        else:
            response = _signed_in(result.session)
        response.delete_cookie(key=COOKIE_OAUTH_STATE)
        return response

    @router.post("/{provider_name}/disconnect")
    def oauth_disconnect(provider_name: str):
        """Unlink a provider from the signed-in account."""
        user_id = peek_current_user_id()
        if user_id is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )
        try:
            provider = parse_provider(provider_name)
            disconnected = oauth.disconnect(provider, user_id)
        except UnknownProviderError:
            return _unknown_provider(provider_name)

        return success_response({"disconnected": disconnected})

    return router
