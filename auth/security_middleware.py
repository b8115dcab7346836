"""Security middleware for FastAPI - session validation and user context."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionManager
from auth.exceptions import SessionExpiredError
from api.base import error_response, ErrorCodes
from utils.user_context import (
    set_current_user_id,
    set_current_permissions,
    clear_current_user_id,
)


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates session and sets user context.

    For protected routes:
    1. Extracts session token from the session cookie
    2. Validates session via SessionManager
    3. Sets user_id and permissions in request.state and user context
    4. Clears context after request completes

    Public paths bypass authentication entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_manager: SessionManager, cookie_name: str = "session_token"):
        super().__init__(app)
        self._session_manager = session_manager
        self._cookie_name = cookie_name

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        path = request.url.path

        if self._is_public_path(path):
            return await call_next(request)

        session_token = request.cookies.get(self._cookie_name)

        if not session_token:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        try:
            session = self._session_manager.validate_session(session_token)
        except SessionExpiredError:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.SESSION_EXPIRED,
                    "Session has expired",
                ).model_dump(mode="json"),
            )

        # User context drives RLS; permissions drive conversion checks
        set_current_user_id(session.user_id)
        set_current_permissions(session.permissions)
        request.state.user_id = session.user_id
        request.state.session = session

        try:
            response = await call_next(request)
            return response
        finally:
            clear_current_user_id()
