"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class SessionExpiredError(AuthError):
    """Session has expired and user must re-authenticate."""


class PermissionDeniedError(AuthError):
    """The acting user holds none of the capabilities an operation requires."""

    def __init__(self, required: tuple[str, ...] | list[str]):
        self.required = tuple(required)
        super().__init__(
            f"Missing permission: one of {', '.join(self.required)} is required"
        )
