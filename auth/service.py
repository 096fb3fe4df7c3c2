"""Magic link login - issues one-time codes by email and redeems them.

Issuance: validate email -> IP limiter -> email limiter -> store code ->
mail the login link. Nothing is stored or sent unless both limiters pass.

Redemption: the code must exist and have been requested for the same email
from the same IP. The code is claimed atomically before any account work,
so two concurrent redemptions cannot both succeed.
"""

import html
import logging
import re
import secrets
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable
from urllib.parse import urlencode

from auth.accounts import AccountManager
from auth.cache import LRUCache
from auth.config import AuthConfig
from auth.exceptions import InvalidCodeError, InvalidEmailError
from auth.mailer import FailoverMailer
from auth.rate_limiter import DecayLimiter
from auth.types import LoginRequest, MailMessage, OAuth2Profile, Session, UserAccount

logger = logging.getLogger(__name__)

EMAIL_PROVIDER = "email"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class LoginStatus(IntEnum):
    """Numeric status returned to the login page."""

    MAILED = 0
    INVALID_EMAIL = 1
    RATE_LIMITED = 2
    SERVER_ERROR = 5


LOGIN_MESSAGES = {
    LoginStatus.MAILED: (
        "A login link has been sent to your email address. "
        "Please check your inbox and follow the link to log in."
    ),
    LoginStatus.INVALID_EMAIL: (
        "Invalid email address. Please make sure you enter a valid email address."
    ),
    LoginStatus.RATE_LIMITED: (
        "Rate limit exceeded. You have reached the maximum number of login "
        "requests allowed. Please try again later."
    ),
    LoginStatus.SERVER_ERROR: (
        "Oops! Something went wrong on our end. Please try again later "
        "or contact our support team for assistance."
    ),
}

EmailRenderer = Callable[[str, str], str]
LoginCallback = Callable[[OAuth2Profile, Session], None]


def is_valid_email(email: str | None) -> bool:
    return bool(email) and _EMAIL_RE.match(email) is not None


def default_email_renderer(email: str, login_url: str) -> str:
    """Minimal HTML body with the login link."""
    url = html.escape(login_url, quote=True)
    return (
        "<p>Hello,</p>"
        f"<p>Someone (hopefully you) asked to sign in as {html.escape(email)}.</p>"
        f'<p><a href="{url}">Click here to log in</a></p>'
        "<p>If you did not request this, you can ignore this email.</p>"
    )


def generate_login_code() -> str:
    return secrets.token_urlsafe(24)


@dataclass
class MagicLinkResult:
    """Result of a login code request."""

    sent: bool
    login_url: str


@dataclass
class RedemptionResult:
    """Account and session created by redeeming a login code."""

    account: UserAccount
    session: Session
    profile: OAuth2Profile


class MagicLinkService:
    """Orchestrates magic link login."""

    def __init__(
        self,
        config: AuthConfig,
        accounts: AccountManager,
        mailer: FailoverMailer,
        ip_limiter: DecayLimiter,
        email_limiter: DecayLimiter,
        codes: LRUCache[str, LoginRequest],
        renderer: EmailRenderer = default_email_renderer,
        on_login: LoginCallback | None = None,
    ):
        self._config = config
        self._accounts = accounts
        self._mailer = mailer
        self._ip_limiter = ip_limiter
        self._email_limiter = email_limiter
        self._codes = codes
        self._renderer = renderer
        self._on_login = on_login

    def _login_url(self, code: str, email: str) -> str:
        base = self._config.app_base_url.rstrip("/")
        return f"{base}{self._config.auth_path_prefix}login?{urlencode({'code': code, 'email': email})}"

    def request_login_code(self, email: str, ip_address: str) -> MagicLinkResult:
        """Issue a login code for email and mail the login link.

        Raises:
            InvalidEmailError: If email is malformed.
            RateLimitedError: If the IP or the email is over its limit.
            MailDeliveryError: If every mail transport failed. The code
                stays valid, so a retry by the user can still redeem it.
        """
        if not is_valid_email(email):
            logger.warning(f"Login requested with invalid email: {email!r}")
            raise InvalidEmailError("Invalid email address")

        self._ip_limiter.check(ip_address)
        self._email_limiter.check(email)

        code = generate_login_code()
        self._codes.put(code, LoginRequest(email=email, ip=ip_address))
        login_url = self._login_url(code, email)

        self._mailer.send_mail(
            MailMessage(
                sender=self._config.email_sender,
                to=email,
                subject=self._config.email_subject,
                html=self._renderer(email, login_url),
            )
        )
        logger.info(f"Mailed login URL to {email}")
        return MagicLinkResult(sent=True, login_url=login_url)

    def redeem_login_code(self, code: str, email: str, ip_address: str) -> RedemptionResult:
        """Redeem code and sign in as email.

        Raises:
            InvalidCodeError: If code is unknown, expired, already used, or
                was issued for another email or IP. Nothing is consumed.
            StorageError: If the backend fails after the code was claimed.
        """
        request = self._codes.pop_if(
            code,
            lambda pending: pending.email == email and pending.ip == ip_address,
        )
        if request is None:
            logger.warning(f"Invalid or expired login code presented for {email!r} from {ip_address}")
            raise InvalidCodeError("Invalid or expired code")

        profile = OAuth2Profile(sub=email, email=email, email_verified=True, name=email)
        account = self._accounts.get_or_create_account(EMAIL_PROVIDER, None, profile)
        session = self._accounts.generate_session(account)
        self._email_limiter.reset(email)
        logger.info(f"User {account.user_id} signed in by email")

        if self._on_login:
            self._on_login(profile, session)

        return RedemptionResult(account=account, session=session, profile=profile)
