"""
Authentication errors raised by the token manager and the auth guard.
Each carries the HTTP status and error code used by the error envelope
(see api/errors.py). Configuration errors are not HTTP errors: they abort
startup.
"""


class AuthError(Exception):
    status = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid user credentials"


class InvalidToken(AuthError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class Unauthenticated(AuthError):
    code = "UNAUTHENTICATED"
    default_message = "Unauthorized request"


class ConfigurationError(RuntimeError):
    """Signing keys or token lifetimes are misconfigured."""
