"""
Test infrastructure for the identity service.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- All tables are created fresh before each test and dropped after, giving
  each test a clean isolated state without needing transactions or truncation.
- Redis is replaced by MemoryCache, which honours the same TTL and
  miss semantics and can simulate an outage via ``available = False``.
- The app's ``get_identity_service`` dependency is overridden so every
  test-time request uses a service wired to the test database and cache.
  ASGITransport does not run the lifespan, so no Redis connection is made.
- bcrypt runs at 4 rounds to keep hashing cheap.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from identity.cache import MemoryCache
from identity.database import Base
from identity.dependencies import get_identity_service
from identity.main import app
from identity.repository import InMemoryUserRepository, SQLAlchemyUserRepository
from identity.security import PasswordHasher, TokenIssuer
from identity.services.identity_service import IdentityService

TEST_SECRET = "test-signing-secret-with-enough-entropy-0123456789"

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET)


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def sql_repository() -> SQLAlchemyUserRepository:
    return SQLAlchemyUserRepository(async_session_test)


@pytest.fixture
def memory_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def service(memory_repository, memory_cache, token_issuer, hasher) -> IdentityService:
    """Service over the in-memory store double; no database involved."""
    return IdentityService(memory_repository, memory_cache, token_issuer, hasher)


@pytest.fixture
def sql_service(sql_repository, memory_cache, token_issuer, hasher) -> IdentityService:
    """Service over the real SQLAlchemy store on the test database."""
    return IdentityService(sql_repository, memory_cache, token_issuer, hasher)


@pytest_asyncio.fixture
async def async_client(sql_service: IdentityService) -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport,
    with the service dependency pointed at the test database and cache.
    """
    app.dependency_overrides[get_identity_service] = lambda: sql_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def auth_headers(async_client: AsyncClient) -> dict:
    """Register and log in an account; return its Authorization header."""
    await async_client.post("/api/v1/auth/register", json={
        "name": "Admin",
        "email": "admin@example.com",
        "password": "admin-password",
    })
    resp = await async_client.post("/api/v1/auth/login", json={
        "email": "admin@example.com",
        "password": "admin-password",
    })
    token = resp.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}
