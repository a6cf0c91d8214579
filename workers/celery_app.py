"""Celery application for background workflow webhook fan-out."""

import logging
from typing import Optional

from celery import Celery

logger = logging.getLogger(__name__)

TASK_MODULES = ["workers.tasks.webhook_tasks"]

_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    """Get or create the singleton Celery application.

    Returns:
        Configured Celery app instance with Redis broker and JSON serialization.
    """
    global _app
    if _app is not None:
        return _app

    from src.settings import load_settings

    settings = load_settings()
    broker_url = settings.redis_url or "redis://localhost:6379/0"

    app = Celery("conversation_router_workers", include=TASK_MODULES)
    app.conf.update(
        broker_url=broker_url,
        result_backend=broker_url,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_default_queue="webhooks",
        broker_connection_retry_on_startup=True,
        result_expires=3600,
    )

    logger.info("celery_app_created: broker=redis://..., tasks=%s", ",".join(TASK_MODULES))

    _app = app
    return app


# Entry point for `celery -A workers.celery_app worker`
celery_app = get_celery_app()
