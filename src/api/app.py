"""FastAPI application factory with async lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import redis.asyncio as aioredis
from fastapi import FastAPI

from integrations.registry import create_default_registry
from src.conversations.events import MessageEventPublisher
from src.conversations.outbound_router import OutboundRouter
from src.db.engine import get_engine, get_session_factory
from src.settings import load_settings
from src.workflows.client import HttpWorkflowClient

logger = logging.getLogger(__name__)

APP_TITLE = "Conversation Router API"
APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage FastAPI application lifespan (startup and shutdown).

    Handles initialization and cleanup of:
    - Database engine and session factory
    - Redis client (Celery broker health only, if redis_url is configured)
    - Workflow engine client
    - Adapter registry, message event publisher and outbound router

    Resources are stored in app.state for access by routes and dependencies.

    Args:
        app: FastAPI application instance.

    Yields:
        None during the application runtime (between startup and shutdown).
    """
    settings = load_settings()
    app.state.settings = settings
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("app_startup: initializing resources, app_env=%s", settings.app_env)

    if not settings.database_url:
        raise RuntimeError("DATABASE_URL must be set in environment or .env file.")

    engine = await get_engine(
        database_url=settings.database_url,
        pool_size=settings.database_pool_size,
        pool_overflow=settings.database_pool_overflow,
    )
    app.state.engine = engine
    app.state.session_factory = get_session_factory(engine)
    logger.info("db_engine_initialized: url=postgresql+asyncpg://...")

    redis_client: Optional[aioredis.Redis] = None
    if settings.redis_url:
        redis_client = aioredis.from_url(settings.redis_url)
        logger.info("redis_initialized: url=redis://...")
    else:
        logger.info("redis_skipped: redis_url not configured")
    app.state.redis = redis_client

    workflow_client = HttpWorkflowClient(
        base_url=settings.workflow_engine_url,
        namespace=settings.workflow_engine_namespace,
        api_key=settings.workflow_engine_api_key,
        timeout=settings.workflow_engine_timeout,
    )
    app.state.workflow_client = workflow_client

    registry = create_default_registry(settings)
    app.state.registry = registry
    publisher = MessageEventPublisher(publish_timeout=settings.event_publish_timeout)
    app.state.publisher = publisher
    logger.info("adapter_registry_initialized: platforms=%s", registry.list_platforms())

    outbound_router: Optional[OutboundRouter] = None
    if settings.feature_flags.enable_outbound_router:
        outbound_router = OutboundRouter(
            publisher=publisher,
            session_factory=app.state.session_factory,
            registry=registry,
            queue_size=settings.router_queue_size,
            integration_queue_size=settings.router_integration_queue_size,
            shutdown_timeout=settings.router_shutdown_timeout,
            worker_idle_seconds=settings.router_worker_idle_seconds,
        )
        outbound_router.start()
    else:
        logger.info("outbound_router_skipped: feature flag disabled")
    app.state.outbound_router = outbound_router

    logger.info("app_startup_complete: resources initialized")
    yield

    logger.info("app_shutdown: cleaning up resources")

    if outbound_router is not None:
        try:
            await outbound_router.stop()
        except Exception as e:
            logger.warning("outbound_router_stop_error: error=%s", str(e))

    await workflow_client.close()

    if redis_client is not None:
        try:
            await redis_client.aclose()
            logger.info("redis_closed: connection pool disposed")
        except Exception as e:
            logger.warning("redis_close_error: error=%s", str(e))

    try:
        await engine.dispose()
        logger.info("db_engine_disposed: connection pool closed")
    except Exception as e:
        logger.warning("db_engine_dispose_error: error=%s", str(e))

    logger.info("app_shutdown_complete: all resources cleaned up")


def create_app() -> FastAPI:
    """Create and configure FastAPI application instance.

    Returns:
        Configured FastAPI application with lifespan, routes, and middleware.
    """
    app = FastAPI(
        title=APP_TITLE,
        version=APP_VERSION,
        description="Routes conversations between messaging platforms and agent workflows",
        lifespan=lifespan,
    )

    # Starlette executes middleware LIFO (last registered = first to run).
    # Execution order: ErrorHandler -> RequestID -> RequestLogging
    from src.api.middleware.observability import (
        RequestLoggingMiddleware,
        install_access_log_redaction,
    )

    app.add_middleware(RequestLoggingMiddleware)
    install_access_log_redaction()

    from src.api.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)

    from src.api.middleware.error_handler import error_handling_middleware

    app.middleware("http")(error_handling_middleware)

    from src.api.routers import (
        conversations_router,
        health_router,
        integrations_router,
        webhooks_router,
        workflow_webhooks_router,
    )

    app.include_router(health_router, tags=["health"])
    # Admin routes first so /api/apps/integrations is never read as a platform id
    app.include_router(integrations_router)
    app.include_router(webhooks_router)
    app.include_router(conversations_router)
    app.include_router(workflow_webhooks_router)

    logger.info(
        "app_created: title=%s, version=%s, middleware=error_handler,request_id,request_logging",
        APP_TITLE,
        APP_VERSION,
    )
    return app
