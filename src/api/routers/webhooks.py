"""Inbound webhook endpoints for platform app integrations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from integrations.ingress import WebhookIngress
from src.api.dependencies import get_ingress, get_settings
from src.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/apps", tags=["webhooks"])


def _check_integrations_enabled(settings: Settings = Depends(get_settings)) -> None:
    """Check if integrations feature flag is enabled.

    Raises:
        HTTPException: 404 if integrations are disabled.
    """
    if not settings.feature_flags.enable_integrations:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not found",
        )


async def _handle(
    request: Request,
    ingress: WebhookIngress,
    platform_id: str,
    integration_id: str,
    webhook_secret: Optional[str],
) -> JSONResponse:
    body = await request.body()
    result = await ingress.handle_inbound(
        platform_id=platform_id,
        integration_id=integration_id,
        raw_body=body,
        headers=dict(request.headers),
        webhook_secret=webhook_secret,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post(
    "/{platform_id}/events/{integration_id}",
    dependencies=[Depends(_check_integrations_enabled)],
)
async def platform_event(
    platform_id: str,
    integration_id: str,
    request: Request,
    ingress: WebhookIngress = Depends(get_ingress),
) -> JSONResponse:
    """Receive a platform event for signature-verified platforms (Slack).

    Returns:
        200 accepted/ignored/challenge, 400 malformed, 401 unauthenticated,
        404 unknown or disabled integration.
    """
    return await _handle(request, ingress, platform_id, integration_id, None)


@router.post(
    "/{platform_id}/events/{integration_id}/{webhook_secret}",
    dependencies=[Depends(_check_integrations_enabled)],
)
async def platform_event_with_secret(
    platform_id: str,
    integration_id: str,
    webhook_secret: str,
    request: Request,
    ingress: WebhookIngress = Depends(get_ingress),
) -> JSONResponse:
    """Receive a platform event authenticated by the secret in the URL."""
    return await _handle(request, ingress, platform_id, integration_id, webhook_secret)


@router.post(
    "/msteams/messaging/{integration_id}/{webhook_secret}",
    dependencies=[Depends(_check_integrations_enabled)],
)
async def teams_messaging(
    integration_id: str,
    webhook_secret: str,
    request: Request,
    ingress: WebhookIngress = Depends(get_ingress),
) -> JSONResponse:
    """Bot Framework messaging endpoint registered for Teams bots."""
    return await _handle(request, ingress, "msteams", integration_id, webhook_secret)
