"""
Xero Contacts Connector
FastAPI Application Entry Point
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.core.errors import global_exception_handler
from app.core.rate_limit import create_limiter
from app.database import close_db, create_database_engine, create_session_factory, init_db
from app.integrations.xero.exceptions import XeroIntegrationError
from app.integrations.xero.fetchers import ContactsFetcher
from app.integrations.xero.oauth import XeroOAuth, XeroOAuthConfig
from app.integrations.xero.rate_limiter import XeroRateLimiter
from app.integrations.xero.router import auth_router, contacts_router
from app.integrations.xero.service import XeroTokenService
from app.integrations.xero.state_store import OAuthStateStore
from app.integrations.xero.token_store import XeroTokenStore
from app.services.token_cipher import TokenCipher

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.
    Manages startup and shutdown of application resources.
    """
    settings: Settings = app.state.settings
    engine: Optional[AsyncEngine] = app.state.engine

    logger.info("Starting %s v%s (%s)", settings.app_name, settings.app_version, settings.environment)
    if engine is not None and settings.database_auto_create:
        await init_db(engine)

    yield

    if engine is not None:
        logger.info("Closing database connections...")
        await close_db(engine)
    logger.info("%s shutdown complete", settings.app_name)


def create_application(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    xero_oauth: Optional[XeroOAuth] = None,
    api_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory.

    Builds every collaborator explicitly (engine, token store, OAuth client,
    token service) and hangs them on app.state for the route dependencies.
    Tests pass their own session factory, OAuth client and transport.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Xero OAuth connection and contacts proxy",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    engine = None
    if session_factory is None:
        engine = create_database_engine(settings.database_url)
        session_factory = create_session_factory(engine)

    cipher = None
    if settings.token_encryption_key is not None:
        cipher = TokenCipher(settings.token_encryption_key.get_secret_value())

    oauth_config = XeroOAuthConfig.from_settings(settings)
    xero_oauth = xero_oauth or XeroOAuth(oauth_config)
    store = XeroTokenStore(session_factory, cipher=cipher)
    xero_service = XeroTokenService(
        store,
        xero_oauth,
        refresh_margin=timedelta(seconds=settings.xero_token_refresh_margin_seconds),
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.xero_oauth = xero_oauth
    app.state.xero_service = xero_service
    app.state.oauth_state_store = OAuthStateStore()
    app.state.contacts_fetcher = ContactsFetcher(
        xero_service,
        oauth_config,
        rate_limiter=XeroRateLimiter(settings.xero_api_calls_per_minute),
        transport=api_transport,
    )

    # Configure rate limiting
    app.state.limiter = create_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(XeroIntegrationError, global_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routers(app)

    return app


def register_routers(app: FastAPI) -> None:
    """Register all API routers."""

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for monitoring."""
        settings: Settings = app.state.settings
        return {
            "status": "OK",
            "app": settings.app_name,
            "version": settings.app_version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(auth_router)
    app.include_router(contacts_router)


# Create the application instance
app = create_application()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
