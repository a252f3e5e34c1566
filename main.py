import uvicorn
from loguru import logger

from config.base import get_settings
from core.infrastructure.logging import RequestTrackingMiddleware, setup_logging


def create_app():
    """Create and configure the notification service FastAPI application.

    Sets up application lifespan events, middleware, exception handlers,
    and the notifications router.

    Returns
    -------
    FastAPI
        Deployment-ready FastAPI instance.
    """
    from contextlib import asynccontextmanager

    from fastapi import FastAPI, HTTPException
    from fastapi.exceptions import RequestValidationError, ResponseValidationError
    from pydantic import ValidationError
    from sqlalchemy.exc import SQLAlchemyError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    from config.database import close_database_engine, create_tables, run_migrations
    from core.infrastructure.exceptions.handler import global_exception_handler
    from core.infrastructure.factory import close_redis_service, get_redis_service
    from notifications.domain.exceptions import NotificationError
    from notifications.presentation import router as notifications_router

    @asynccontextmanager
    async def custom_lifespan(app):
        """Manage application startup and shutdown lifecycle.

        Applies database migrations, creates any table the migrations do not
        cover, checks that the Redis change channel is reachable, and releases
        both connections on shutdown.

        Parameters
        ----------
        app : FastAPI
            FastAPI application instance.

        Yields
        ------
        None
            Control to the application between startup and shutdown.

        Raises
        ------
        Exception
            If migrations, table creation or the Redis ping fail.
        """
        setup_logging()

        try:
            logger.debug("🔧 Running unapplied database migrations...")
            await run_migrations()

            logger.debug("🔧 Creating non-existent database tables...")
            await create_tables()

        except Exception as e:
            logger.error(f"📝 Migration or table creation failed: {e}")
            raise e

        try:
            logger.debug("🔧 Initializing Redis connection...")
            redis_service = await get_redis_service()
            ping_result = await redis_service.ping()
            logger.info(f"🟢 Redis pinged: {ping_result}.")

        except Exception as e:
            logger.error(f"🔴 Redis connection failed: {e}")
            raise e

        logger.info("🟢 Application startup completed.")
        logger.info("🚀✨ Notification service is now running!")

        yield

        logger.debug("🔧 Starting shutdown cleanup...")

        try:
            logger.debug("🔧 Closing Redis connection...")
            await close_redis_service()
        except Exception as e:
            logger.error(f"🟠 Error closing Redis: {e}")

        try:
            logger.info("🔧 Closing database connections 🔧")
            await close_database_engine()
        except Exception as e:
            logger.error(f"🟠 Error closing database: {e}")

        logger.debug("👋 Application shutting down...")

    app = FastAPI(title="Notification Service", lifespan=custom_lifespan)

    app.add_middleware(RequestTrackingMiddleware)

    app.add_exception_handler(NotificationError, global_exception_handler)
    app.add_exception_handler(ValueError, global_exception_handler)
    app.add_exception_handler(SQLAlchemyError, global_exception_handler)
    app.add_exception_handler(ValidationError, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)
    app.add_exception_handler(ResponseValidationError, global_exception_handler)
    app.add_exception_handler(HTTPException, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(notifications_router)

    return app


if __name__ == "__main__":
    """Application entry point for direct execution.

    Configures logging with Loguru and starts Uvicorn, with SSL when configured.
    """
    setup_logging()
    settings = get_settings()
    logger.debug(
        f"🟢 Starting notification service in '{settings.environment.upper()}' mode!"
    )
    uvicorn.run(
        "main:create_app",
        port=settings.server_port,
        reload=settings.debug,
        factory=True,
        log_config=None,
        ssl_keyfile=settings.ssl_keyfile_path,
        ssl_certfile=settings.ssl_certfile_path,
    )
