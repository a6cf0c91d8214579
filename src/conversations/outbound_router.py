"""Routes outgoing messages back to the app integration they came from.

The router subscribes to the message event stream. Outgoing messages whose
origin is ``app:{platform_id}:{integration_id}`` are queued per integration and
delivered by one worker task per integration, so deliveries to one platform
stay in order while different integrations proceed concurrently.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.conversations.events import MessageEventPublisher
from src.conversations.models import ConversationMessageView, MessageStreamEvent
from src.db.models.conversation import MessageDirectionEnum
from src.db.repositories.integration_repo import AppIntegrationRepository
from src.tenancy import TenantContext

if TYPE_CHECKING:
    from integrations.registry import AdapterRegistry

logger = logging.getLogger(__name__)

APP_ORIGIN_PREFIX = "app:"

# Sentinel that tells an idle worker to exit
_STOP = object()

_WorkItem = Union[tuple[str, ConversationMessageView], object]


def parse_origin(origin: Optional[str]) -> Optional[tuple[str, str]]:
    """Split an app origin into (platform_id, integration_id).

    Returns:
        None when the origin does not name an app integration.

    Raises:
        ValueError: If an ``app:`` origin does not have exactly three segments.
    """
    if not origin or not origin.startswith(APP_ORIGIN_PREFIX):
        return None
    parts = origin.split(":")
    if len(parts) != 3 or not parts[1] or not parts[2]:
        raise ValueError(f"Malformed app origin: {origin}")
    return parts[1].lower(), parts[2]


class OutboundRouter:
    """Background consumer that hands outgoing messages to platform adapters.

    Args:
        publisher: Message event stream to subscribe to.
        session_factory: Factory for the short-lived session of each delivery.
        registry: Adapter registry resolved once at startup.
        queue_size: Capacity of the subscription queue.
        integration_queue_size: Capacity of each per-integration queue.
        shutdown_timeout: Seconds ``stop`` waits for queued deliveries.
        worker_idle_seconds: Idle time after which a worker exits.
    """

    def __init__(
        self,
        publisher: MessageEventPublisher,
        session_factory: async_sessionmaker[AsyncSession],
        registry: "AdapterRegistry",
        queue_size: int = 1000,
        integration_queue_size: int = 100,
        shutdown_timeout: float = 10.0,
        worker_idle_seconds: float = 300.0,
    ) -> None:
        self._publisher = publisher
        self._session_factory = session_factory
        self._registry = registry
        self._queue_size = queue_size
        self._integration_queue_size = integration_queue_size
        self._shutdown_timeout = shutdown_timeout
        self._worker_idle_seconds = worker_idle_seconds

        self._events: Optional[asyncio.Queue[MessageStreamEvent]] = None
        self._dispatcher: Optional[asyncio.Task[None]] = None
        self._queues: dict[str, asyncio.Queue[_WorkItem]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._closing = False
        self.dropped_messages = 0

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    @property
    def active_workers(self) -> int:
        return len(self._workers)

    def start(self) -> None:
        """Subscribe to the event stream and start the dispatcher task."""
        if self.is_running:
            return
        self._closing = False
        self._events = self._publisher.subscribe(maxsize=self._queue_size)
        self._dispatcher = asyncio.create_task(self._dispatch_loop(), name="outbound-router")
        logger.info("outbound_router_started: queue_size=%d", self._queue_size)

    async def stop(self) -> None:
        """Stop accepting events and drain queued deliveries.

        Workers get ``shutdown_timeout`` seconds to finish what is queued; the
        rest are cancelled. Undelivered messages are not retried.
        """
        if self._dispatcher is None and not self._workers:
            return
        self._closing = True
        if self._events is not None:
            self._publisher.unsubscribe(self._events)

        if self._dispatcher is not None:
            self._dispatcher.cancel()
            await asyncio.gather(self._dispatcher, return_exceptions=True)
            self._dispatcher = None

        for queue in self._queues.values():
            if queue.empty():
                queue.put_nowait(_STOP)

        workers = list(self._workers.values())
        if workers:
            _, pending = await asyncio.wait(workers, timeout=self._shutdown_timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning(
                    "outbound_router_shutdown_incomplete: cancelled_workers=%d", len(pending)
                )

        self._workers.clear()
        self._queues.clear()
        self._events = None
        logger.info("outbound_router_stopped: dropped_messages=%d", self.dropped_messages)

    async def _dispatch_loop(self) -> None:
        assert self._events is not None
        while True:
            event = await self._events.get()
            try:
                self.route(event.message)
            except Exception:
                logger.exception("outbound_router_dispatch_error: message_id=%s", event.message.id)

    def route(self, message: ConversationMessageView) -> bool:
        """Queue a message for its integration worker.

        Returns:
            True if the message was queued for delivery.
        """
        if self._closing:
            return False
        if message.direction != MessageDirectionEnum.OUTGOING:
            return False
        try:
            target = parse_origin(message.origin)
        except ValueError:
            logger.warning(
                "outbound_router_dropped: message_id=%s, reason=malformed_origin", message.id
            )
            return False
        if target is None:
            return False

        platform_id, integration_id = target
        queue = self._ensure_worker(integration_id)
        try:
            queue.put_nowait((platform_id, message))
        except asyncio.QueueFull:
            self.dropped_messages += 1
            logger.warning(
                "outbound_router_dropped: message_id=%s, integration_id=%s, reason=queue_full",
                message.id,
                integration_id,
            )
            return False
        return True

    def _ensure_worker(self, integration_id: str) -> "asyncio.Queue[_WorkItem]":
        queue = self._queues.get(integration_id)
        worker = self._workers.get(integration_id)
        if queue is not None and worker is not None and not worker.done():
            return queue
        if queue is None:
            queue = asyncio.Queue(maxsize=self._integration_queue_size)
            self._queues[integration_id] = queue
        self._workers[integration_id] = asyncio.create_task(
            self._run_worker(integration_id, queue),
            name=f"outbound-router-{integration_id}",
        )
        logger.debug("outbound_router_worker_started: integration_id=%s", integration_id)
        return queue

    async def _run_worker(self, integration_id: str, queue: "asyncio.Queue[_WorkItem]") -> None:
        try:
            while True:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=self._worker_idle_seconds)
                except asyncio.TimeoutError:
                    if queue.empty():
                        logger.debug(
                            "outbound_router_worker_idle_exit: integration_id=%s", integration_id
                        )
                        return
                    continue

                if item is _STOP:
                    return
                platform_id, message = item  # type: ignore[misc]
                try:
                    await self._deliver(platform_id, integration_id, message)
                except Exception:
                    logger.exception(
                        "outbound_router_delivery_failed: message_id=%s, integration_id=%s",
                        message.id,
                        integration_id,
                    )
                if self._closing and queue.empty():
                    return
        finally:
            current = asyncio.current_task()
            if self._workers.get(integration_id) is current:
                del self._workers[integration_id]
                if queue.empty():
                    self._queues.pop(integration_id, None)

    async def _deliver(
        self, platform_id: str, integration_id: str, message: ConversationMessageView
    ) -> None:
        try:
            integration_uuid = UUID(integration_id)
        except ValueError:
            logger.warning(
                "outbound_router_dropped: message_id=%s, reason=invalid_integration_id", message.id
            )
            return

        async with self._session_factory() as session:
            integration = await AppIntegrationRepository(session).get_by_id(integration_uuid)

        if integration is None or not integration.is_enabled:
            logger.warning(
                "outbound_router_dropped: message_id=%s, integration_id=%s, "
                "reason=integration_missing_or_disabled",
                message.id,
                integration_id,
            )
            return
        if integration.tenant_id != message.tenant_id or integration.platform_id != platform_id:
            logger.warning(
                "outbound_router_dropped: message_id=%s, integration_id=%s, reason=origin_mismatch",
                message.id,
                integration_id,
            )
            return

        adapter = self._registry.get(platform_id)
        if adapter is None:
            logger.warning(
                "outbound_router_dropped: message_id=%s, platform_id=%s, reason=unknown_platform",
                message.id,
                platform_id,
            )
            return

        tenant = TenantContext.for_router(integration.tenant_id)
        await adapter.send(integration, message, tenant)
        logger.info(
            "outbound_router_delivered: message_id=%s, integration_id=%s, platform_id=%s",
            message.id,
            integration_id,
            platform_id,
        )
