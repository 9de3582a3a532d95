"""Error types raised by ezenv.

The ``AuthError`` family is closed: every failure of the token lifecycle is
one of its subclasses, and each carries only the fields relevant to it.
"""

from __future__ import annotations


class EzEnvError(Exception):
    """Base class for all ezenv errors."""

    code = "EZENV_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthError(EzEnvError):
    """Base class for authentication failures."""

    code = "AUTH_ERROR"


class NetworkError(AuthError):
    """The authorization service could not be reached."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str = "Network connection failed"):
        super().__init__(message)


class ProtocolError(AuthError):
    """The authorization service answered with an unparseable body."""

    code = "PROTOCOL_ERROR"

    def __init__(self, message: str = "Invalid response from server: failed to parse JSON"):
        super().__init__(message)


class ServerError(AuthError):
    """Non-success status that is not otherwise classified."""

    code = "SERVER_ERROR"

    def __init__(self, status: int, message: str | None = None):
        self.status = status
        super().__init__(message or f"HTTP error! status: {status}")


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class RateLimited(AuthError):
    code = "RATE_LIMITED"

    def __init__(self, message: str = "Too many attempts. Please try again later"):
        super().__init__(message)


class ExpiredGrant(AuthError):
    """The device grant expired, or polling ran past its ceiling."""

    code = "EXPIRED_TOKEN"

    def __init__(self, message: str = "Authentication expired"):
        super().__init__(message)


class AccessDenied(AuthError):
    code = "ACCESS_DENIED"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class UnknownAuthError(AuthError):
    """Anything the service reported that has no dedicated class."""

    code = "UNKNOWN"

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class StorageUnavailable(EzEnvError):
    """The secure credential store cannot be used."""

    code = "STORAGE_UNAVAILABLE"


class NotAuthenticated(EzEnvError):
    code = "AUTH_REQUIRED"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ApiError(EzEnvError):
    """A data API call returned a non-success status."""

    code = "API_ERROR"

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(message)


class EnvFileError(EzEnvError):
    code = "ENV_FILE_ERROR"

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(message)
