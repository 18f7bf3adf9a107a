"""Database seeder: creates demo accounts through the identity service."""
import asyncio
import argparse
import time

from identity.cache import MemoryCache
from identity.config import settings
from identity.database import engine, async_session, Base
from identity.exceptions import DuplicateEmailError
from identity.repository import SQLAlchemyUserRepository
from identity.security import PasswordHasher, TokenIssuer
from identity.services.identity_service import IdentityService

DEFAULT_PASSWORD = "password123"


async def seed(count: int, reset: bool = False):
    if reset:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Seeding never needs Redis; the store is the source of truth.
    service = IdentityService(
        repository=SQLAlchemyUserRepository(async_session),
        cache=MemoryCache(),
        tokens=TokenIssuer(settings.JWT_SECRET),
        hasher=PasswordHasher(rounds=settings.BCRYPT_ROUNDS),
    )

    print(f"Seeding {count} users (password: {DEFAULT_PASSWORD!r})")
    start = time.perf_counter()
    created = skipped = 0
    for i in range(count):
        try:
            await service.create_user(f"User {i}", f"user_{i:04d}@example.com", DEFAULT_PASSWORD)
            created += 1
        except DuplicateEmailError:
            skipped += 1

    await engine.dispose()
    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Created: {created}")
    print(f"  Already present: {skipped}")


def main():
    parser = argparse.ArgumentParser(description="Seed the identity database")
    parser.add_argument("--count", type=int, default=25, help="Number of users to create")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate tables first")
    args = parser.parse_args()
    asyncio.run(seed(args.count, reset=args.reset))


if __name__ == "__main__":
    main()
