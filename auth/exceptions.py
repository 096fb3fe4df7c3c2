"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidEmailError(AuthError):
    """Email address is syntactically invalid."""


class InvalidCodeError(AuthError):
    """
    Login code is invalid, expired, or already redeemed.

    Also raised when the code exists but was requested for a different
    email or from a different IP. Callers cannot tell these apart.
    """


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class MailDeliveryError(AuthError):
    """Every configured mail transport failed to deliver the message."""


class UnknownProviderError(AuthError):
    """OAuth provider name is not one of the supported providers."""


class OAuthExchangeError(AuthError):
    """Authorization code exchange or profile fetch failed."""
