"""FastAPI application setup and configuration."""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tiendanube_sync import __version__
from tiendanube_sync.config.settings import settings
from tiendanube_sync.core.exceptions import AppException
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.core.monitoring import init_monitoring
from tiendanube_sync.db import create_tables, get_engine, get_session_factory
from tiendanube_sync.services.credentials import TokenFileCredentialProvider
from tiendanube_sync.services.reconciliation_scheduler import ReconciliationScheduler
from tiendanube_sync.services.reconciliation_service import SyncStateStore

logger = setup_logger(__name__)


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Tiendanube Sync",
        version=__version__,
        description="Receives Tiendanube webhooks and reconciles products and orders",
    )

    init_monitoring(settings.glitchtip_dsn, settings.environment)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = get_engine(database_url or settings.database_url)
    session_factory = get_session_factory(engine)

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.credentials = TokenFileCredentialProvider()
    app.state.sync_state = None
    app.state.scheduler = None

    if settings.redis_enabled:
        app.state.sync_state = SyncStateStore(
            redis_host=settings.redis_host,
            redis_port=settings.redis_port,
            redis_db=settings.redis_db,
            lock_timeout=settings.sync_lock_timeout_seconds,
        )

    async def get_db_session() -> AsyncSession:
        """Dependency for getting database session."""
        async with session_factory() as session:
            yield session

    # Import router AFTER the session dependency exists
    from tiendanube_sync.server import routes

    app.include_router(routes.router)
    app.dependency_overrides[routes.get_db_session_stub] = get_db_session

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Render application errors as JSON."""
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.on_event("startup")
    async def startup_handler():
        """Create tables and start the scheduler."""
        logger.info(f"Initializing database: {engine.url.render_as_string(hide_password=True)}")
        try:
            await create_tables(engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

        if settings.scheduled_sync_enabled and settings.sync_store_ids:
            scheduler = ReconciliationScheduler(
                session_factory,
                app.state.credentials,
                settings.sync_store_ids,
                daily_sync_hour=settings.daily_sync_hour,
                state=app.state.sync_state,
            )
            scheduler.start()
            app.state.scheduler = scheduler

        logger.info("Application startup completed")

    @app.on_event("shutdown")
    async def shutdown_handler():
        """Gracefully shut down scheduler, Redis and database connections."""
        logger.info("Starting graceful shutdown...")

        if app.state.scheduler:
            app.state.scheduler.stop()

        if app.state.sync_state:
            try:
                await app.state.sync_state.close()
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")

        try:
            await engine.dispose()
            logger.info("Database connections closed successfully")
        except Exception as e:
            logger.error(f"Error closing database connections: {e}")

        logger.info("Graceful shutdown completed")

    return app
