"""Tenant-scoped management of app integrations."""

import logging
import secrets as secrets_module
import string
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.platform import AppIntegrationORM
from src.db.repositories.integration_repo import AppIntegrationRepository
from src.errors import DuplicateIntegrationError, IntegrationNotFoundError
from src.tenancy import TenantContext
from integrations.base import PlatformAdapter
from integrations.models import (
    ConfigValue,
    IntegrationSecrets,
    IntegrationTestResult,
    MappingConfig,
)
from integrations.registry import AdapterRegistry

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_LENGTH = 32
WEBHOOK_SECRET_ALPHABET = string.ascii_letters + string.digits
WEBHOOK_PATH_KEY = "outgoingWebhookUrl"


class IntegrationCreate(BaseModel):
    """Request body for creating an integration."""

    platform_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    agent_name: str = Field(..., min_length=1, max_length=200)
    activation_name: str = Field(..., min_length=1, max_length=200)
    configuration: dict[str, ConfigValue] = Field(default_factory=dict)
    secrets: Optional[IntegrationSecrets] = None
    mapping_config: MappingConfig = Field(default_factory=MappingConfig)
    is_enabled: bool = True

    @field_validator("platform_id")
    @classmethod
    def _lower_platform(cls, value: str) -> str:
        return value.strip().lower()


class IntegrationUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    configuration: Optional[dict[str, ConfigValue]] = None
    secrets: Optional[IntegrationSecrets] = None
    mapping_config: Optional[MappingConfig] = None
    is_enabled: Optional[bool] = None


def generate_webhook_secret(length: int = WEBHOOK_SECRET_LENGTH) -> str:
    """Random URL-safe secret drawn uniformly from ``A-Za-z0-9``."""
    return "".join(secrets_module.choice(WEBHOOK_SECRET_ALPHABET) for _ in range(length))


def build_webhook_path(platform_id: str, integration_id: Any, webhook_secret: str) -> str:
    """Relative URL a platform must call to deliver events for an integration."""
    platform_id = platform_id.lower()
    if platform_id == "msteams":
        return f"/api/apps/msteams/messaging/{integration_id}/{webhook_secret}"
    return f"/api/apps/{platform_id}/events/{integration_id}/{webhook_secret}"


def migrate_legacy_secrets(
    adapter: PlatformAdapter,
    configuration: dict[str, Any],
    secret_bag: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Move secrets stored under legacy configuration keys into the secret bag.

    Running it again on its own output changes nothing.

    Returns:
        New (configuration, secrets) dicts; the inputs are not modified.
    """
    configuration = dict(configuration)
    secret_bag = dict(secret_bag)
    for config_key, secret_field in adapter.legacy_secret_keys.items():
        if config_key not in configuration:
            continue
        value = configuration.pop(config_key)
        if isinstance(value, str) and value:
            secret_bag[secret_field] = value
    return configuration, secret_bag


def missing_required_keys(
    adapter: PlatformAdapter,
    configuration: dict[str, Any],
    secret_bag: dict[str, Any],
) -> list[str]:
    """Required keys satisfied neither by configuration nor by the secret bag."""
    missing = []
    for key in adapter.required_config_keys:
        if configuration.get(key) not in (None, ""):
            continue
        secret_field = adapter.legacy_secret_keys.get(key)
        if secret_field and secret_bag.get(secret_field):
            continue
        missing.append(key)
    return missing


class IntegrationService:
    """CRUD, enable/disable and self-test for app integrations.

    All operations are scoped to the calling tenant; an integration owned by
    another tenant behaves as if it did not exist.

    Args:
        session: AsyncSession for this unit of work.
        registry: Adapter registry used for platform rules.
    """

    def __init__(self, session: AsyncSession, registry: AdapterRegistry) -> None:
        self._session = session
        self._registry = registry
        self._repo = AppIntegrationRepository(session)

    async def create(self, data: IntegrationCreate, tenant: TenantContext) -> AppIntegrationORM:
        """Create an integration with a fresh webhook secret and webhook path.

        Raises:
            UnsupportedPlatformError: If no adapter handles the platform.
            ValueError: If required configuration keys are missing.
            DuplicateIntegrationError: If the name is taken for the agent activation.
        """
        adapter = self._registry.require(data.platform_id)

        if await self._repo.exists_with_name(
            tenant.tenant_id, data.agent_name, data.activation_name, data.name
        ):
            raise DuplicateIntegrationError(
                self._duplicate_message(data.name, data.agent_name, data.activation_name)
            )

        secret_bag = data.secrets.model_dump(exclude_none=True) if data.secrets else {}
        configuration, secret_bag = migrate_legacy_secrets(
            adapter, dict(data.configuration), secret_bag
        )
        self._validate_required(adapter, configuration, secret_bag)

        webhook_secret = generate_webhook_secret()
        secret_bag["webhook_secret"] = webhook_secret

        integration = AppIntegrationORM(
            tenant_id=tenant.tenant_id,
            created_by=tenant.logged_in_user,
            platform_id=data.platform_id,
            name=data.name,
            description=data.description,
            agent_name=data.agent_name,
            activation_name=data.activation_name,
            configuration=configuration,
            secrets=secret_bag,
            mapping_config=data.mapping_config.model_dump(exclude_none=True),
            is_enabled=data.is_enabled,
        )
        try:
            integration = await self._repo.add(integration)
            integration.configuration = {
                **integration.configuration,
                WEBHOOK_PATH_KEY: build_webhook_path(
                    integration.platform_id, integration.id, webhook_secret
                ),
            }
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise DuplicateIntegrationError(
                self._duplicate_message(data.name, data.agent_name, data.activation_name)
            ) from e
        await self._session.refresh(integration)

        logger.info(
            "integration_created: integration_id=%s, tenant_id=%s, platform_id=%s",
            integration.id,
            tenant.tenant_id,
            integration.platform_id,
        )
        return integration

    async def update(
        self, integration_id: UUID, data: IntegrationUpdate, tenant: TenantContext
    ) -> AppIntegrationORM:
        """Merge a partial update into a stored integration.

        Configuration is merged key by key; provided non-empty secrets replace
        stored ones and the webhook secret is never taken from the request.

        Raises:
            IntegrationNotFoundError: If the integration is not the tenant's.
            DuplicateIntegrationError: If a rename collides with another integration.
            ValueError: If the merged configuration misses required keys.
        """
        integration = await self.get(integration_id, tenant)
        adapter = self._registry.require(integration.platform_id)

        if data.name is not None and data.name != integration.name:
            if await self._repo.exists_with_name(
                tenant.tenant_id,
                integration.agent_name,
                integration.activation_name,
                data.name,
                exclude_id=integration.id,
            ):
                raise DuplicateIntegrationError(
                    self._duplicate_message(
                        data.name, integration.agent_name, integration.activation_name
                    )
                )
            integration.name = data.name

        if data.description is not None:
            integration.description = data.description

        configuration = dict(integration.configuration or {})
        if data.configuration is not None:
            configuration.update(data.configuration)

        secret_bag = dict(integration.secrets or {})
        if data.secrets is not None:
            provided = data.secrets.model_dump(exclude={"webhook_secret", "custom_secrets"})
            secret_bag.update({k: v for k, v in provided.items() if v})
            if data.secrets.custom_secrets:
                secret_bag["custom_secrets"] = {
                    **(secret_bag.get("custom_secrets") or {}),
                    **data.secrets.custom_secrets,
                }

        configuration, secret_bag = migrate_legacy_secrets(adapter, configuration, secret_bag)
        self._validate_required(adapter, configuration, secret_bag)

        if not secret_bag.get("webhook_secret"):
            secret_bag["webhook_secret"] = generate_webhook_secret()
            configuration.pop(WEBHOOK_PATH_KEY, None)
        if not configuration.get(WEBHOOK_PATH_KEY):
            configuration[WEBHOOK_PATH_KEY] = build_webhook_path(
                integration.platform_id, integration.id, secret_bag["webhook_secret"]
            )

        integration.configuration = configuration
        integration.secrets = secret_bag
        if data.mapping_config is not None:
            integration.mapping_config = data.mapping_config.model_dump(exclude_none=True)
        if data.is_enabled is not None:
            integration.is_enabled = data.is_enabled
        integration.updated_by = tenant.logged_in_user

        try:
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise DuplicateIntegrationError(
                self._duplicate_message(
                    integration.name, integration.agent_name, integration.activation_name
                )
            ) from e
        await self._session.refresh(integration)

        logger.info(
            "integration_updated: integration_id=%s, tenant_id=%s", integration.id, tenant.tenant_id
        )
        return integration

    async def enable(self, integration_id: UUID, tenant: TenantContext) -> AppIntegrationORM:
        return await self._set_enabled(integration_id, tenant, True)

    async def disable(self, integration_id: UUID, tenant: TenantContext) -> AppIntegrationORM:
        return await self._set_enabled(integration_id, tenant, False)

    async def delete(self, integration_id: UUID, tenant: TenantContext) -> None:
        """Remove an integration.

        Raises:
            IntegrationNotFoundError: If the integration is not the tenant's.
        """
        integration = await self.get(integration_id, tenant)
        await self._repo.delete(integration.id)
        await self._session.commit()
        logger.info(
            "integration_deleted: integration_id=%s, tenant_id=%s", integration_id, tenant.tenant_id
        )

    async def get(self, integration_id: UUID, tenant: TenantContext) -> AppIntegrationORM:
        integration = await self._repo.get_for_tenant(tenant.tenant_id, integration_id)
        if integration is None:
            raise IntegrationNotFoundError(f"Integration {integration_id} not found")
        return integration

    async def list_for_tenant(
        self,
        tenant: TenantContext,
        platform_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AppIntegrationORM]:
        return await self._repo.list_for_tenant(tenant.tenant_id, platform_id, limit, offset)

    async def test(self, integration_id: UUID, tenant: TenantContext) -> IntegrationTestResult:
        """Check an integration carries what its platform needs.

        Raises:
            IntegrationNotFoundError: If the integration is not the tenant's.
        """
        integration = await self.get(integration_id, tenant)
        adapter = self._registry.get(integration.platform_id)
        if adapter is None:
            return IntegrationTestResult(
                is_successful=False,
                message=f"Unsupported platform: {integration.platform_id}",
            )
        result = adapter.test(integration)
        logger.info(
            "integration_tested: integration_id=%s, successful=%s",
            integration.id,
            result.is_successful,
        )
        return result

    async def rotate_webhook_secret(
        self, integration_id: UUID, tenant: TenantContext
    ) -> AppIntegrationORM:
        """Replace the webhook secret and the webhook path derived from it.

        The previous URL stops authenticating immediately.
        """
        integration = await self.get(integration_id, tenant)
        webhook_secret = generate_webhook_secret()
        integration.secrets = {**(integration.secrets or {}), "webhook_secret": webhook_secret}
        integration.configuration = {
            **(integration.configuration or {}),
            WEBHOOK_PATH_KEY: build_webhook_path(
                integration.platform_id, integration.id, webhook_secret
            ),
        }
        integration.updated_by = tenant.logged_in_user
        await self._session.commit()
        await self._session.refresh(integration)
        logger.info(
            "integration_secret_rotated: integration_id=%s, tenant_id=%s",
            integration.id,
            tenant.tenant_id,
        )
        return integration

    async def _set_enabled(
        self, integration_id: UUID, tenant: TenantContext, enabled: bool
    ) -> AppIntegrationORM:
        integration = await self.get(integration_id, tenant)
        if integration.is_enabled == enabled:
            return integration
        integration.is_enabled = enabled
        integration.updated_by = tenant.logged_in_user
        await self._session.commit()
        await self._session.refresh(integration)
        logger.info(
            "integration_enabled_changed: integration_id=%s, is_enabled=%s",
            integration.id,
            enabled,
        )
        return integration

    @staticmethod
    def _validate_required(
        adapter: PlatformAdapter, configuration: dict[str, Any], secret_bag: dict[str, Any]
    ) -> None:
        missing = missing_required_keys(adapter, configuration, secret_bag)
        if missing:
            raise ValueError(
                f"Missing required configuration for {adapter.platform_id}: {', '.join(missing)}"
            )

    @staticmethod
    def _duplicate_message(name: str, agent_name: str, activation_name: str) -> str:
        return (
            f"An integration with name '{name}' already exists for agent "
            f"'{agent_name}' and activation '{activation_name}'"
        )
