"""Exception handlers that turn uncaught errors into enveloped JSON."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from storage.base import StorageError

logger = logging.getLogger(__name__)


def _json(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message).model_dump(mode="json"))


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers for storage outages, bad request bodies and everything else."""

    @app.exception_handler(StorageError)
    async def storage_unavailable(request: Request, exc: StorageError):
        logger.error(f"{request.method} {request.url.path} failed on storage: {exc}")
        return _json(503, ErrorCodes.SERVICE_UNAVAILABLE, "Service temporarily unavailable")

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return _json(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
