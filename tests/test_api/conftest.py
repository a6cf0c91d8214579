"""Shared fixtures for API router tests."""

from typing import AsyncGenerator, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.app import create_app
from src.api.dependencies import (
    get_conversation_service,
    get_db,
    get_integration_service,
    get_publisher,
    get_settings,
    get_webhook_service,
    get_workflow_client,
)
from src.settings import Settings
from src.workflows.client import WorkflowClient


@pytest.fixture
def tenant_headers() -> Dict[str, str]:
    """Headers the gateway forwards for an authenticated tenant user."""
    return {"X-Tenant-Id": "tenant-acme", "X-User-Id": "admin@acme.test"}


@pytest.fixture
def test_settings() -> Settings:
    return Settings(public_base_url="https://router.acme.test")


@pytest.fixture
def db_session() -> AsyncSession:
    """Mock AsyncSession for database operations.

    Returns:
        An AsyncMock configured as AsyncSession.
    """
    mock_session = AsyncMock(spec=AsyncSession)
    mock_session.execute = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.add = MagicMock()
    mock_session.flush = AsyncMock()
    mock_session.refresh = AsyncMock()
    return mock_session


@pytest.fixture
def conversation_service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def integration_service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def webhook_service() -> MagicMock:
    return MagicMock()


@pytest.fixture
async def app(
    db_session: AsyncSession,
    test_settings: Settings,
    conversation_service: MagicMock,
    integration_service: MagicMock,
    webhook_service: MagicMock,
):
    """FastAPI application instance for testing.

    Creates a FastAPI app with test overrides:
    - Shared mock database session (from db_session fixture)
    - Test settings with a public base URL
    - Mock workflow client and no event stream
    - Mock conversation, integration and webhook services

    Yields:
        Configured FastAPI application.
    """
    test_app = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_settings] = lambda: test_settings
    test_app.dependency_overrides[get_workflow_client] = lambda: AsyncMock(spec=WorkflowClient)
    test_app.dependency_overrides[get_publisher] = lambda: None
    test_app.dependency_overrides[get_conversation_service] = lambda: conversation_service
    test_app.dependency_overrides[get_integration_service] = lambda: integration_service
    test_app.dependency_overrides[get_webhook_service] = lambda: webhook_service

    yield test_app

    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient for making test requests without tenant headers.

    Args:
        app: FastAPI application fixture.

    Yields:
        An AsyncClient bound to the test app.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def tenant_client(app, tenant_headers) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient with tenant headers pre-configured."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=tenant_headers
    ) as ac:
        yield ac
