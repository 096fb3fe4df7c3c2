"""Pydantic models for auth domain."""

from typing import Any

from pydantic import BaseModel, Field

# Access/refresh token payload as returned by the OAuth2 client. Opaque here.
TokenData = dict[str, Any]

# Largest user id handed out by get_or_create_account (exclusive).
MAX_USER_ID = 2**48


class UserAccount(BaseModel):
    """A registered account. user_id never changes once assigned."""

    user_id: int = Field(..., ge=0, lt=2**63)
    username: str | None = None
    display_name: str | None = None
    profile_pic: str | None = None
    email: str | None = None
    email_verified: bool = False

    model_config = {"from_attributes": True}


class Session(BaseModel):
    """An active session. `user` is a snapshot taken when the session was issued."""

    session_id: str = Field(..., description="Authenticated session token (opaque string)")
    user: UserAccount


class OAuth2Profile(BaseModel):
    """Identity returned by an OAuth2 provider's profile endpoint."""

    sub: str
    email: str | None = None
    email_verified: bool | None = None
    name: str | None = None
    picture: str | None = None


class LoginRequest(BaseModel):
    """A pending login code. Lives only in the code cache."""

    email: str
    ip: str


class MailMessage(BaseModel):
    """Outbound email handed to a mail transport."""

    sender: str
    to: str
    subject: str
    html: str
