"""
Credential codec and session-token issuer.

Both are stateless apart from their constructor configuration and are safe
to share across concurrent requests.
"""
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from identity.exceptions import (
    ExpiredTokenError,
    InternalError,
    InvalidTokenError,
    MalformedTokenError,
)

logger = logging.getLogger(__name__)

# bcrypt only uses the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Credential codec
# ---------------------------------------------------------------------------

class PasswordHasher:
    """Salted bcrypt hashing of user passwords."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        """
        Return the bcrypt digest of *password*.

        Raises InternalError if bcrypt itself fails.
        """
        try:
            digest = bcrypt.hashpw(self._encode(password), bcrypt.gensalt(rounds=self.rounds))
        except (ValueError, MemoryError) as exc:
            logger.error("Password hashing failed: %s", exc)
            raise InternalError("password hashing failed") from exc
        return digest.decode("utf-8")

    def verify(self, digest: str, password: str) -> bool:
        """
        Return True when *password* matches *digest*.

        A mismatch, or a digest bcrypt cannot parse, returns False.
        """
        try:
            return bcrypt.checkpw(self._encode(password), digest.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password digest could not be parsed")
            return False


# ---------------------------------------------------------------------------
# Token issuer
# ---------------------------------------------------------------------------

class TokenIssuer:
    """
    Mints and validates HS256-signed session tokens.

    Validation depends only on the signature and the ``exp`` claim, so a
    token stays valid until it expires even after its session registry entry
    has been removed by logout.
    """

    algorithm = "HS256"

    def __init__(self, secret: str | bytes, ttl: timedelta = timedelta(hours=24)) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self.ttl = ttl

    def issue(self, user_id: int) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "user_id": user_id,
            "iat": now,
            "exp": now + self.ttl,
        }
        token = jwt.encode(claims, self._secret, algorithm=self.algorithm)
        logger.debug("Issued token for user_id=%s", user_id)
        return token

    def validate(self, token: str) -> int:
        """
        Return the user id carried by *token*.

        Raises ExpiredTokenError, MalformedTokenError, or InvalidTokenError
        for a bad signature or any other validation failure.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("Token rejected: expired")
            raise ExpiredTokenError() from exc
        except jwt.InvalidSignatureError as exc:
            logger.warning("Token rejected: bad signature")
            raise InvalidTokenError() from exc
        except jwt.DecodeError as exc:
            logger.warning("Token rejected: malformed (%s)", exc)
            raise MalformedTokenError() from exc
        except jwt.PyJWTError as exc:
            logger.warning("Token rejected: %s", exc)
            raise InvalidTokenError() from exc

        try:
            return int(claims["sub"])
        except (TypeError, ValueError) as exc:
            logger.warning("Token rejected: non-numeric subject %r", claims["sub"])
            raise MalformedTokenError("token subject is not a user id") from exc
