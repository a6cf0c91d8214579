"""App integration management endpoints (tenant scoped)."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from integrations.models import IntegrationTestResult
from integrations.service import IntegrationCreate, IntegrationService, IntegrationUpdate
from src.api.dependencies import get_integration_service, get_settings, get_tenant_context
from src.api.schemas.integrations import IntegrationResponse
from src.settings import Settings
from src.tenancy import TenantContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/apps/integrations", tags=["integrations"])


@router.get("", response_model=list[IntegrationResponse])
async def list_integrations(
    platform_id: Optional[str] = Query(None, description="Filter by platform"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> list[IntegrationResponse]:
    """List the tenant's integrations, newest first. Secrets are masked."""
    rows = await service.list_for_tenant(tenant, platform_id=platform_id, limit=limit, offset=offset)
    return [IntegrationResponse.from_orm_row(row, settings.public_base_url) for row in rows]


@router.post("", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def create_integration(
    data: IntegrationCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> IntegrationResponse:
    """
    Create an integration and return it with its webhook URL.

    Raises:
        ValueError: 400 for an unsupported platform or missing required keys
        DuplicateIntegrationError: 409 if the name is taken for the agent activation
    """
    integration = await service.create(data, tenant)
    return IntegrationResponse.from_orm_row(integration, settings.public_base_url)


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> IntegrationResponse:
    integration = await service.get(integration_id, tenant)
    return IntegrationResponse.from_orm_row(integration, settings.public_base_url)


@router.patch("/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: UUID,
    data: IntegrationUpdate,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> IntegrationResponse:
    """Partially update an integration; configuration and secrets are merged."""
    integration = await service.update(integration_id, data, tenant)
    return IntegrationResponse.from_orm_row(integration, settings.public_base_url)


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
) -> Response:
    await service.delete(integration_id, tenant)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{integration_id}/enable", response_model=IntegrationResponse)
async def enable_integration(
    integration_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> IntegrationResponse:
    integration = await service.enable(integration_id, tenant)
    return IntegrationResponse.from_orm_row(integration, settings.public_base_url)


@router.post("/{integration_id}/disable", response_model=IntegrationResponse)
async def disable_integration(
    integration_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> IntegrationResponse:
    integration = await service.disable(integration_id, tenant)
    return IntegrationResponse.from_orm_row(integration, settings.public_base_url)


@router.post("/{integration_id}/test", response_model=IntegrationTestResult)
async def test_integration(
    integration_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
) -> IntegrationTestResult:
    """Static configuration check; no platform calls are made."""
    return await service.test(integration_id, tenant)


@router.post("/{integration_id}/rotate-secret", response_model=IntegrationResponse)
async def rotate_integration_secret(
    integration_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: IntegrationService = Depends(get_integration_service),
    settings: Settings = Depends(get_settings),
) -> IntegrationResponse:
    """Issue a new webhook secret; the old webhook URL stops working."""
    integration = await service.rotate_webhook_secret(integration_id, tenant)
    logger.info("integration_secret_rotated_via_api: integration_id=%s", integration_id)
    return IntegrationResponse.from_orm_row(integration, settings.public_base_url)
