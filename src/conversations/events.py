"""In-process message event stream.

Every persisted ConversationMessage is published once as a MessageStreamEvent.
Subscribers (the outbound router) own a bounded asyncio.Queue; a full queue
makes ``publish`` wait up to ``publish_timeout`` seconds before the event is
dropped for that subscriber.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Union

from src.conversations.models import ConversationMessageView, MessageStreamEvent
from src.db.models.conversation import ConversationMessageORM

logger = logging.getLogger(__name__)


class MessageEventPublisher:
    """Fan-out of message events to bounded subscriber queues."""

    def __init__(self, publish_timeout: float = 1.0) -> None:
        self._publish_timeout = publish_timeout
        self._subscribers: list[asyncio.Queue[MessageStreamEvent]] = []
        self.dropped_events = 0

    def subscribe(self, maxsize: int = 1000) -> asyncio.Queue[MessageStreamEvent]:
        """Register a new subscriber queue.

        Args:
            maxsize: Queue capacity; must be positive so publishers feel back-pressure.

        Returns:
            Queue that receives every event published from now on.
        """
        if maxsize <= 0:
            raise ValueError("Subscriber queues must be bounded")
        queue: asyncio.Queue[MessageStreamEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        logger.debug("message_events_subscribed: subscribers=%d", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[MessageStreamEvent]) -> None:
        """Stop delivering to a queue. No-op if it is not subscribed."""
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug("message_events_unsubscribed: subscribers=%d", len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(
        self, message: Union[ConversationMessageORM, ConversationMessageView]
    ) -> MessageStreamEvent:
        """Publish one event for a persisted message.

        Args:
            message: The persisted message (ORM row or snapshot).

        Returns:
            The event that was offered to subscribers.
        """
        view = (
            message
            if isinstance(message, ConversationMessageView)
            else ConversationMessageView.model_validate(message)
        )
        event = MessageStreamEvent(
            message=view,
            group_id=str(view.thread_id),
            tenant_group_id=f"{view.tenant_id}:{view.thread_id}",
            timestamp=datetime.now(timezone.utc),
        )

        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                continue
            except asyncio.QueueFull:
                pass
            try:
                await asyncio.wait_for(queue.put(event), timeout=self._publish_timeout)
            except asyncio.TimeoutError:
                self.dropped_events += 1
                logger.warning(
                    "message_event_dropped: message_id=%s, reason=subscriber_queue_full",
                    view.id,
                )

        logger.debug(
            "message_event_published: message_id=%s, direction=%s, subscribers=%d",
            view.id,
            view.direction.value,
            len(self._subscribers),
        )
        return event
