"""Client for signalling workflows hosted by the external workflow engine."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import httpx

from src.errors import NotFoundError

logger = logging.getLogger(__name__)

HANDLE_INBOUND_MESSAGE_SIGNAL = "HandleInboundMessage"


class WorkflowClientError(Exception):
    """The workflow engine could not be reached or rejected the call."""


class WorkflowNotFoundError(WorkflowClientError, NotFoundError):
    """The addressed workflow instance does not exist or is not running."""

    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow with id {workflow_id} not found")


class WorkflowClient(ABC):
    """Narrow view of the workflow engine used by the routing core."""

    @abstractmethod
    async def signal(self, workflow_id: str, signal_name: str, payload: Any) -> None:
        """Deliver a signal to a running workflow instance.

        Args:
            workflow_id: Id of the workflow instance.
            signal_name: Name of the signal handler inside the workflow.
            payload: JSON-serializable signal argument.

        Raises:
            WorkflowNotFoundError: If no running instance has that id.
            WorkflowClientError: For any other engine or transport failure.
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None


class HttpWorkflowClient(WorkflowClient):
    """Signals workflows through the engine's HTTP API.

    Calls ``POST {base_url}/api/v1/namespaces/{namespace}/workflows/{id}/signal/{name}``
    with ``{"input": [payload]}``. A 404 from the engine means the workflow
    instance is unknown.

    Args:
        base_url: Engine HTTP API base URL.
        namespace: Namespace holding the workflows.
        api_key: Optional bearer token.
        timeout: Per-request timeout in seconds.
        client: Optional preconfigured httpx client (tests inject a mock transport).
    """

    def __init__(
        self,
        base_url: str,
        namespace: str = "default",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._namespace = namespace
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    def _signal_path(self, workflow_id: str, signal_name: str) -> str:
        return (
            f"/api/v1/namespaces/{quote(self._namespace, safe='')}"
            f"/workflows/{quote(workflow_id, safe='')}"
            f"/signal/{quote(signal_name, safe='')}"
        )

    async def signal(self, workflow_id: str, signal_name: str, payload: Any) -> None:
        try:
            response = await self._client.post(
                self._signal_path(workflow_id, signal_name),
                json={"input": [payload]},
            )
        except httpx.HTTPError as e:
            logger.warning(
                "workflow_signal_transport_error: workflow_id=%s, signal=%s, error=%s",
                workflow_id,
                signal_name,
                str(e),
            )
            raise WorkflowClientError(f"Workflow engine unreachable: {e}") from e

        if response.status_code == 404:
            logger.info(
                "workflow_signal_not_found: workflow_id=%s, signal=%s", workflow_id, signal_name
            )
            raise WorkflowNotFoundError(workflow_id)

        if response.status_code >= 400:
            logger.warning(
                "workflow_signal_rejected: workflow_id=%s, signal=%s, status=%d",
                workflow_id,
                signal_name,
                response.status_code,
            )
            raise WorkflowClientError(
                f"Workflow engine returned {response.status_code} for signal {signal_name}"
            )

        logger.debug("workflow_signal_sent: workflow_id=%s, signal=%s", workflow_id, signal_name)

    async def close(self) -> None:
        await self._client.aclose()
