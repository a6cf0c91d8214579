"""ORM models for database tables."""

from src.db.models.conversation import (
    ConversationMessageORM,
    ConversationThreadORM,
    MessageDirectionEnum,
    MessageStatusEnum,
    ThreadStatusEnum,
)
from src.db.models.platform import AppIntegrationORM, WorkflowWebhookORM

__all__ = [
    "AppIntegrationORM",
    "ConversationMessageORM",
    "ConversationThreadORM",
    "MessageDirectionEnum",
    "MessageStatusEnum",
    "ThreadStatusEnum",
    "WorkflowWebhookORM",
]
