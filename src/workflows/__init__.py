"""Workflow engine client."""

from src.workflows.client import (
    HANDLE_INBOUND_MESSAGE_SIGNAL,
    HttpWorkflowClient,
    WorkflowClient,
    WorkflowClientError,
    WorkflowNotFoundError,
)

__all__ = [
    "HANDLE_INBOUND_MESSAGE_SIGNAL",
    "HttpWorkflowClient",
    "WorkflowClient",
    "WorkflowClientError",
    "WorkflowNotFoundError",
]
