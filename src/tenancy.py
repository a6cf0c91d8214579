"""Acting tenant and user for a unit of work."""

from dataclasses import dataclass
from typing import Optional

ROUTER_USER = "app:router"


@dataclass(frozen=True)
class TenantContext:
    """Read-only tenant scope passed to services.

    Webhook ingress and the outbound router build this from the stored
    integration, never from caller-supplied values.
    """

    tenant_id: str
    logged_in_user: Optional[str] = None

    @classmethod
    def for_integration(
        cls, tenant_id: str, platform_id: str, integration_id: object
    ) -> "TenantContext":
        """Context used while handling a platform webhook for an integration."""
        return cls(tenant_id=tenant_id, logged_in_user=f"app:{platform_id}:{integration_id}")

    @classmethod
    def for_router(cls, tenant_id: str) -> "TenantContext":
        """Context used by the outbound router."""
        return cls(tenant_id=tenant_id, logged_in_user=ROUTER_USER)
