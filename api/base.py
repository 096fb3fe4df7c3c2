"""Response envelope shared by every endpoint."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from api.middleware import current_request_id
from utils.timezone import now_utc


class APIError(BaseModel):
    code: str = Field(..., description="Stable identifier from ErrorCodes")
    message: str = Field(..., description="Text safe to show an end user")


class APIMeta(BaseModel):
    timestamp: datetime = Field(..., description="When the response was built, UTC")
    request_id: str = Field(..., description="Matches the X-Request-ID response header")


class APIResponse(BaseModel):
    """
    Envelope around every JSON body.

    success=True carries data; success=False carries error and, for login
    failures, a data object with the numeric status.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta() -> APIMeta:
    # Outside a request (tests, scripts) there is no middleware-assigned id
    return APIMeta(timestamp=now_utc(), request_id=current_request_id() or str(uuid4()))


def success_response(data: Any) -> APIResponse:
    return APIResponse(success=True, data=data, meta=_meta())


def error_response(code: str, message: str, data: Any | None = None) -> APIResponse:
    return APIResponse(success=False, data=data, error=APIError(code=code, message=message), meta=_meta())


class ErrorCodes:
    """
    Codes carried in APIError.code.

    Login failures share generic messages so no response reveals whether
    an account exists for an email.
    """

    # Login and session
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_CODE = "INVALID_CODE"
    RATE_LIMITED = "RATE_LIMITED"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"

    # Request shape
    INVALID_EMAIL = "INVALID_EMAIL"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Backing services
    INTERNAL_ERROR = "INTERNAL_ERROR"
    MAIL_DELIVERY_FAILED = "MAIL_DELIVERY_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
