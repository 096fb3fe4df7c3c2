"""Authentication configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    days for longer ones) to make configuration intuitive. The session
    signing secret is not part of this model; it is fetched from Vault at
    startup and handed to SessionTokenCodec directly.
    """

    # Login code settings
    code_capacity: int = Field(
        default=10000,
        description="Maximum number of pending login codes held in memory",
        ge=1,
    )
    code_ttl_minutes: int = Field(
        default=10,
        description="How long a login code remains redeemable",
        ge=1,
        le=60,
    )

    # Session settings
    session_keep_alive_days: int = Field(
        default=30,
        description="Session lifetime in days (key-value backend expiry)",
        ge=1,
        le=365,
    )
    session_cache_capacity: int = Field(
        default=10000,
        description="Sessions kept in the in-memory lookaside cache",
        ge=1,
    )
    session_cache_ttl_seconds: int | None = Field(
        default=300,
        description="Lookaside entry lifetime; None relies on LRU pressure only",
        ge=1,
    )

    # Rate limiting
    ip_rate_limit_threshold: float = Field(
        default=10,
        description="Login-code requests allowed per IP before rejection",
        gt=0,
    )
    ip_rate_limit_half_life_seconds: float = Field(
        default=600,
        description="Half-life of the per-IP request counter",
        gt=0,
    )
    email_rate_limit_threshold: float = Field(
        default=5,
        description="Login-code requests allowed per email before rejection",
        gt=0,
    )
    email_rate_limit_half_life_seconds: float = Field(
        default=900,
        description="Half-life of the per-email request counter",
        gt=0,
    )
    rate_limit_capacity: int = Field(
        default=100000,
        description="Distinct keys tracked by each rate limiter",
        ge=1,
    )

    # Mail delivery
    mail_failover_half_life_seconds: float = Field(
        default=600,
        description="Half-life for forgetting mail transport failures",
        gt=0,
    )
    email_sender: str = Field(
        default="no-reply@localhost",
        description="From address for login emails",
    )
    email_subject: str = Field(
        default="Your login link",
        description="Subject line for login emails",
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for login link generation",
    )
    auth_prefix: str = Field(
        default="/auth/",
        description="Path prefix the auth router is mounted under",
    )
    allowed_origin: str | None = Field(
        default=None,
        description="If set, code requests must carry Origin: https://<allowed_origin>",
    )
    app_name: str = Field(
        default="Passport",
        description="Application name for emails",
    )

    @property
    def auth_path_prefix(self) -> str:
        """auth_prefix with exactly one leading and one trailing slash."""
        inner = self.auth_prefix.strip("/")
        return f"/{inner}/" if inner else "/"
