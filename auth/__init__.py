"""Session authentication and account linking.

Only leaf modules are re-exported here; import services, middleware and
routes from their own modules (they depend on storage, which depends on
auth.types).
"""

from auth.exceptions import (
    AuthError,
    InvalidEmailError,
    InvalidCodeError,
    RateLimitedError,
    MailDeliveryError,
    UnknownProviderError,
    OAuthExchangeError,
)
from auth.types import (
    UserAccount,
    Session,
    OAuth2Profile,
    LoginRequest,
    MailMessage,
    TokenData,
)
from auth.config import AuthConfig
from auth.token_codec import SessionTokenCodec
from auth.cache import LRUCache
from auth.rate_limiter import DecayLimiter
from auth.mailer import FailoverMailer, MailTransport
