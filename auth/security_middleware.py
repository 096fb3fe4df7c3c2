"""Session middleware for FastAPI - attaches the signed-in session to the request."""

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.session import SessionManager
from utils.user_context import set_current_user_id, clear_current_user_id

COOKIE_SESSION_ID = "session-id"
COOKIE_USER_ID = "user-id"


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves the session cookie pair and sets user context.

    For every request:
    1. Reads 'session-id' and 'user-id' cookies
    2. Resolves them via SessionManager (codec check, lookaside, backend)
    3. Sets request.state.session / request.state.user_id and the user context
    4. Clears context after request completes

    Never rejects a request. A missing, forged, or unloadable session just
    means the request proceeds anonymously (request.state.session is None);
    routes decide whether they need a user.
    """

    def __init__(self, app, session_manager: SessionManager):
        super().__init__(app)
        self._session_manager = session_manager

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        session_id = request.cookies.get(COOKIE_SESSION_ID)
        user_id = request.cookies.get(COOKIE_USER_ID)

        session = None
        if session_id and user_id:
            # Backend lookups block; keep them off the event loop
            session = await run_in_threadpool(
                self._session_manager.validate_session, session_id, user_id
            )

        request.state.session = session
        request.state.user_id = session.user.user_id if session else None
        if session:
            set_current_user_id(session.user.user_id)

        try:
            return await call_next(request)
        finally:
            # Always clear context
            clear_current_user_id()
