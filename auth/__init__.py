"""Session authentication and permission checks."""

from auth.exceptions import (
    AuthError,
    SessionExpiredError,
    PermissionDeniedError,
)
from auth.types import Session
from auth.config import AuthConfig
from auth.session import SessionManager
from auth.security_middleware import AuthMiddleware
