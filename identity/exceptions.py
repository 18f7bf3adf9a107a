"""Domain exceptions raised by the identity layer.

Each class maps to one stable failure category that the HTTP layer
translates into a status code (see ``identity.errors``).
"""


class IdentityError(Exception):
    """Base class for every error the identity layer raises on purpose."""


class DuplicateEmailError(IdentityError):
    """Raised when a create or update would give two users the same email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("user with this email already exists")


class UserNotFoundError(IdentityError):
    """Raised when no user exists for the requested identifier."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__("user not found")


class InvalidCredentialsError(IdentityError):
    """
    Raised on login failure.

    Unknown email and wrong password both raise this exact error so callers
    cannot probe which accounts exist.
    """

    def __init__(self) -> None:
        super().__init__("invalid email or password")


class InvalidTokenError(IdentityError):
    """Raised when a session token fails validation."""

    def __init__(self, message: str = "invalid token") -> None:
        super().__init__(message)


class ExpiredTokenError(InvalidTokenError):
    def __init__(self) -> None:
        super().__init__("token has expired")


class MalformedTokenError(InvalidTokenError):
    def __init__(self, message: str = "token is malformed") -> None:
        super().__init__(message)


class CacheUnavailableError(IdentityError):
    """Raised by a cache backend when the underlying store cannot be reached."""

    def __init__(self, operation: str, key: str | None = None) -> None:
        self.operation = operation
        self.key = key
        super().__init__(f"cache {operation} failed" + (f" for key={key!r}" if key else ""))


class InternalError(IdentityError):
    """Raised when the password codec or durable store fails unexpectedly."""


class StoreError(InternalError):
    """Raised when the durable user store fails for reasons other than not-found or uniqueness."""
