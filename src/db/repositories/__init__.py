"""Repository layer for database access."""

from src.db.repositories.base import BaseRepository
from src.db.repositories.conversation_repo import (
    ConversationMessageRepository,
    ConversationThreadRepository,
)
from src.db.repositories.integration_repo import (
    AppIntegrationRepository,
    WorkflowWebhookRepository,
)

__all__ = [
    "AppIntegrationRepository",
    "BaseRepository",
    "ConversationMessageRepository",
    "ConversationThreadRepository",
    "WorkflowWebhookRepository",
]
