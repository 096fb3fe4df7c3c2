"""HTTP interface: response envelope, error handlers, and the app factory."""

from api.base import (
    APIError,
    APIMeta,
    APIResponse,
    success_response,
    error_response,
    ErrorCodes,
)
from api.middleware import RequestIDMiddleware, current_request_id
