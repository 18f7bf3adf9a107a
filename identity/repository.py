"""
Durable user store.

``UserRepository`` is the capability the identity service depends on.
``SQLAlchemyUserRepository`` is the production implementation;
``InMemoryUserRepository`` is a dict-backed double with the same
uniqueness and not-found semantics.

Lookups return None for a missing user.  Mutations of a missing user raise
UserNotFoundError.  An email uniqueness violation raises DuplicateEmailError,
and any other driver failure raises StoreError.
"""
import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity.exceptions import DuplicateEmailError, StoreError, UserNotFoundError
from identity.models import User

logger = logging.getLogger(__name__)


class UserRepository(Protocol):
    async def create(self, user: User) -> User: ...

    async def get_by_id(self, user_id: int) -> User | None: ...

    async def get_by_email(self, email: str) -> User | None: ...

    async def list(self, offset: int, limit: int) -> tuple[list[User], int]: ...

    async def update(self, user: User) -> User: ...

    async def delete(self, user_id: int) -> None: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

class SQLAlchemyUserRepository:
    """
    User store over an async SQLAlchemy engine.

    Every call opens its own session and transaction from the shared
    session factory, so one instance can serve concurrent requests.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, user: User) -> User:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(user)
                await session.flush()
        except IntegrityError as exc:
            logger.warning("Insert rejected by unique constraint: email=%s", user.email)
            raise DuplicateEmailError(user.email) from exc
        except SQLAlchemyError as exc:
            logger.error("User insert failed: %s", exc)
            raise StoreError("failed to create user") from exc
        return user

    async def get_by_id(self, user_id: int) -> User | None:
        try:
            async with self._session_factory() as session:
                return await session.get(User, user_id)
        except SQLAlchemyError as exc:
            logger.error("User lookup failed for id=%s: %s", user_id, exc)
            raise StoreError("failed to load user") from exc

    async def get_by_email(self, email: str) -> User | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(User).where(User.email == email))
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("User lookup by email failed: %s", exc)
            raise StoreError("failed to load user") from exc

    async def list(self, offset: int, limit: int) -> tuple[list[User], int]:
        try:
            async with self._session_factory() as session:
                total: int = (
                    await session.execute(select(func.count()).select_from(User))
                ).scalar_one()
                result = await session.execute(
                    select(User).order_by(User.id).offset(offset).limit(limit)
                )
                return list(result.scalars().all()), total
        except SQLAlchemyError as exc:
            logger.error("User list failed (offset=%s, limit=%s): %s", offset, limit, exc)
            raise StoreError("failed to list users") from exc

    async def update(self, user: User) -> User:
        user.updated_at = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session, session.begin():
                merged = await session.merge(user)
                await session.flush()
        except IntegrityError as exc:
            logger.warning("Update rejected by unique constraint: id=%s", user.id)
            raise DuplicateEmailError(user.email) from exc
        except SQLAlchemyError as exc:
            logger.error("User update failed for id=%s: %s", user.id, exc)
            raise StoreError("failed to update user") from exc
        return merged

    async def delete(self, user_id: int) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(delete(User).where(User.id == user_id))
        except SQLAlchemyError as exc:
            logger.error("User delete failed for id=%s: %s", user_id, exc)
            raise StoreError("failed to delete user") from exc
        if result.rowcount == 0:
            raise UserNotFoundError(user_id)


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryUserRepository:
    """Dict-backed user store for tests and local experiments."""

    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._next_id = 1

    @staticmethod
    def _copy(user: User) -> User:
        return User(
            id=user.id,
            name=user.name,
            email=user.email,
            password=user.password,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    def _email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        return any(u.email == email and u.id != exclude_id for u in self._users.values())

    async def create(self, user: User) -> User:
        if self._email_taken(user.email):
            raise DuplicateEmailError(user.email)
        now = datetime.now(timezone.utc)
        user.id = self._next_id
        user.created_at = user.created_at or now
        user.updated_at = user.updated_at or now
        self._next_id += 1
        self._users[user.id] = self._copy(user)
        return user

    async def get_by_id(self, user_id: int) -> User | None:
        user = self._users.get(user_id)
        return self._copy(user) if user else None

    async def get_by_email(self, email: str) -> User | None:
        for user in self._users.values():
            if user.email == email:
                return self._copy(user)
        return None

    async def list(self, offset: int, limit: int) -> tuple[list[User], int]:
        ordered = sorted(self._users.values(), key=lambda u: u.id)
        return [self._copy(u) for u in ordered[offset:offset + limit]], len(ordered)

    async def update(self, user: User) -> User:
        if user.id not in self._users:
            raise UserNotFoundError(user.id)
        if self._email_taken(user.email, exclude_id=user.id):
            raise DuplicateEmailError(user.email)
        user.updated_at = datetime.now(timezone.utc)
        self._users[user.id] = self._copy(user)
        return user

    async def delete(self, user_id: int) -> None:
        if self._users.pop(user_id, None) is None:
            raise UserNotFoundError(user_id)

    def __len__(self) -> int:
        return len(self._users)
