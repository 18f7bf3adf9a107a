"""
Identity service: user CRUD, login and logout over a cache-aside layer.

Design notes
------------
- The durable store is the source of truth.  The cache holds expendable
  copies: ``user:<id>`` holds the public projection and
  ``user_session:<id>`` holds the raw session token.
- Reads go cache first, then the store.  A cache error is treated exactly
  like a miss.  A cache hit is returned without re-validating against the
  store.
- Cache writes after a successful store write are best-effort: failures
  are logged and swallowed.  The one exception is logout, whose only
  effect is the cache deletion, so its failure is raised.
- The email pre-check in ``create_user`` only avoids a wasted bcrypt
  round.  The store's unique constraint is the authoritative guard and
  surfaces as DuplicateEmailError either way.
- Logout removes the session registry entry but cannot revoke the signed
  token, which stays valid under ``TokenIssuer.validate`` until it expires.
"""
import logging
import math

from pydantic import ValidationError

from identity.cache import CacheBackend, session_cache_key, user_cache_key
from identity.exceptions import (
    CacheUnavailableError,
    DuplicateEmailError,
    InvalidCredentialsError,
    UserNotFoundError,
)
from identity.models import User
from identity.repository import UserRepository
from identity.schemas import LoginResponse, PaginatedResponse, UserResponse, UserUpdate
from identity.security import PasswordHasher, TokenIssuer

logger = logging.getLogger(__name__)

USER_CACHE_TTL = 30 * 60
SESSION_CACHE_TTL = 24 * 60 * 60
DEFAULT_PER_PAGE = 10


def to_user_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


class IdentityService:
    """
    Orchestrates the user store, cache, token issuer and password hasher.

    Holds no per-request state; one instance is shared by every request.
    """

    def __init__(
        self,
        repository: UserRepository,
        cache: CacheBackend,
        tokens: TokenIssuer,
        hasher: PasswordHasher,
        user_ttl: int = USER_CACHE_TTL,
        session_ttl: int = SESSION_CACHE_TTL,
        default_per_page: int = DEFAULT_PER_PAGE,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.tokens = tokens
        self.hasher = hasher
        self.user_ttl = user_ttl
        self.session_ttl = session_ttl
        self.default_per_page = default_per_page
        self._unknown_user_digest: str | None = None

    def _dummy_digest(self) -> str:
        """A digest with the hasher's cost factor, verified against on unknown emails."""
        if self._unknown_user_digest is None:
            self._unknown_user_digest = self.hasher.hash("unknown-user-placeholder")
        return self._unknown_user_digest

    # ------------------------------------------------------------------
    # Best-effort cache helpers
    # ------------------------------------------------------------------

    async def _cache_user(self, projection: UserResponse) -> None:
        key = user_cache_key(projection.id)
        try:
            await self.cache.set_json(key, projection.model_dump(mode="json"), ttl=self.user_ttl)
        except CacheUnavailableError as exc:
            logger.warning("Cache write skipped for key=%r: %s", key, exc)

    async def _cached_user(self, user_id: int) -> UserResponse | None:
        key = user_cache_key(user_id)
        try:
            data = await self.cache.get_json(key)
        except CacheUnavailableError as exc:
            logger.warning("Cache read failed for key=%r, using store: %s", key, exc)
            return None
        if data is None:
            return None
        try:
            return UserResponse.model_validate(data)
        except ValidationError:
            logger.warning("Cache entry for key=%r has an unexpected shape; treating as miss", key)
            await self._evict_user(user_id)
            return None

    async def _evict_user(self, user_id: int) -> None:
        key = user_cache_key(user_id)
        try:
            await self.cache.delete(key)
        except CacheUnavailableError as exc:
            logger.warning("Cache eviction skipped for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_user(self, name: str, email: str, password: str) -> UserResponse:
        logger.info("Creating user email=%s", email)
        if await self.repository.get_by_email(email) is not None:
            logger.warning("Create rejected, email already registered: %s", email)
            raise DuplicateEmailError(email)

        user = User(name=name, email=email, password=self.hasher.hash(password))
        user = await self.repository.create(user)

        projection = to_user_response(user)
        await self._cache_user(projection)
        logger.info("Created user id=%s", user.id)
        return projection

    async def get_user(self, user_id: int) -> UserResponse:
        cached = await self._cached_user(user_id)
        if cached is not None:
            logger.debug("User cache hit id=%s", user_id)
            return cached

        logger.debug("User cache miss id=%s", user_id)
        user = await self.repository.get_by_id(user_id)
        if user is None:
            logger.info("User not found id=%s", user_id)
            raise UserNotFoundError(user_id)

        projection = to_user_response(user)
        await self._cache_user(projection)
        return projection

    async def list_users(self, page: int = 1, per_page: int | None = None) -> PaginatedResponse:
        """
        Return one page of users.  List queries are never cached.

        ``page < 1`` is treated as 1 and ``per_page < 1`` as the default
        page size; neither is an error.
        """
        if per_page is None or per_page < 1:
            per_page = self.default_per_page
        page = max(page, 1)

        offset = (page - 1) * per_page
        users, total = await self.repository.list(offset, per_page)

        response = PaginatedResponse(
            items=[to_user_response(u) for u in users],
            page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / max(per_page, 1)),
        )
        logger.debug(
            "Listed users page=%s per_page=%s count=%s total=%s",
            page, per_page, len(response.items), total,
        )
        return response

    async def update_user(self, user_id: int, changes: UserUpdate) -> UserResponse:
        """
        Apply the non-empty fields of *changes* to the user.

        There is no way to clear a field: omitted and empty values both
        leave the stored value untouched.
        """
        logger.info("Updating user id=%s", user_id)
        user = await self.repository.get_by_id(user_id)
        if user is None:
            logger.info("Update target not found id=%s", user_id)
            raise UserNotFoundError(user_id)

        if changes.name:
            user.name = changes.name
        if changes.email:
            user.email = str(changes.email)
        if changes.password:
            user.password = self.hasher.hash(changes.password)

        user = await self.repository.update(user)

        projection = to_user_response(user)
        await self._cache_user(projection)
        logger.info("Updated user id=%s", user_id)
        return projection

    async def delete_user(self, user_id: int) -> None:
        logger.info("Deleting user id=%s", user_id)
        if await self.repository.get_by_id(user_id) is None:
            logger.info("Delete target not found id=%s", user_id)
            raise UserNotFoundError(user_id)

        await self.repository.delete(user_id)
        await self._evict_user(user_id)
        logger.info("Deleted user id=%s", user_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResponse:
        user = await self.repository.get_by_email(email)
        if user is None:
            # Same bcrypt cost as a real mismatch so timing does not reveal the email.
            self.hasher.verify(self._dummy_digest(), password)
            logger.warning("Login failed: unknown email %s", email)
            raise InvalidCredentialsError()
        if not self.hasher.verify(user.password, password):
            logger.warning("Login failed: password mismatch for user id=%s", user.id)
            raise InvalidCredentialsError()

        token = self.tokens.issue(user.id)

        # The token is valid on its signature alone; the registry entry only
        # enables early invalidation, so a failed write is not fatal.
        key = session_cache_key(user.id)
        try:
            await self.cache.set(key, token, ttl=self.session_ttl)
        except CacheUnavailableError as exc:
            logger.warning("Session registration skipped for key=%r: %s", key, exc)

        logger.info("Login succeeded for user id=%s", user.id)
        return LoginResponse(token=token, user=to_user_response(user))

    async def logout(self, user_id: int) -> None:
        """
        Remove the session registry entry for *user_id*.

        Raises CacheUnavailableError when the deletion cannot be performed.
        """
        key = session_cache_key(user_id)
        try:
            await self.cache.delete(key)
        except CacheUnavailableError:
            logger.error("Logout failed for user id=%s: session cache unavailable", user_id)
            raise
        logger.info("Logged out user id=%s", user_id)

    async def get_session_token(self, user_id: int) -> str | None:
        """Return the registered session token, or None when absent or unreadable."""
        key = session_cache_key(user_id)
        try:
            return await self.cache.get(key)
        except CacheUnavailableError as exc:
            logger.warning("Session lookup failed for key=%r: %s", key, exc)
            return None

    def authenticate(self, token: str) -> int:
        """Return the user id carried by *token*; raises InvalidTokenError subclasses."""
        return self.tokens.validate(token)
