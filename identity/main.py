import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from identity import __version__
from identity.cache import RedisCache
from identity.config import settings
from identity.database import async_session, engine
from identity.errors import register_error_handlers
from identity.logging_config import configure_logging
from identity.middleware import RequestLoggingMiddleware
from identity.repository import SQLAlchemyUserRepository
from identity.routers import auth, users
from identity.security import PasswordHasher, TokenIssuer
from identity.services.identity_service import IdentityService

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    cache = RedisCache(settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT)
    await cache.connect()
    app.state.identity_service = IdentityService(
        repository=SQLAlchemyUserRepository(async_session),
        cache=cache,
        tokens=TokenIssuer(settings.JWT_SECRET, ttl=timedelta(seconds=settings.TOKEN_TTL_SECONDS)),
        hasher=PasswordHasher(rounds=settings.BCRYPT_ROUNDS),
        user_ttl=settings.CACHE_TTL_USER,
        session_ttl=settings.CACHE_TTL_SESSION,
        default_per_page=settings.DEFAULT_PAGE_SIZE,
    )
    logger.info("Identity service started env=%s", settings.APP_ENV)
    yield
    # Shutdown
    await cache.disconnect()
    await engine.dispose()

app = FastAPI(
    title="Identity Service",
    description="User accounts and token sessions over a cache-aside store",
    version=__version__,
    lifespan=lifespan,
)

# Middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routers
app.include_router(auth.router)
app.include_router(users.router)

@app.get("/health")
async def health():
    return {
        "success": True,
        "message": "Service is healthy",
        "data": {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "identity-service",
            "version": __version__,
        },
    }
