"""Settings configuration for the conversation routing service."""

from pydantic_settings import BaseSettings
from pydantic import BaseModel, Field, ConfigDict
from dotenv import load_dotenv
from typing import Optional

# Load environment variables from .env file
load_dotenv()


class FeatureFlags(BaseModel):
    """Simple boolean feature flags via environment variables.

    Controls which routing features are active. Each flag maps to
    a FEATURE_FLAGS__<FLAG_NAME> environment variable.
    """

    enable_integrations: bool = Field(
        default=True, description="Accept inbound platform webhooks under /api/apps"
    )
    enable_outbound_router: bool = Field(
        default=True, description="Run the outbound router for app-originated messages"
    )
    enable_webhooks: bool = Field(
        default=False, description="Fan out message events to workflow webhooks"
    )
    enable_background_processing: bool = Field(
        default=False, description="Queue webhook fan-out through Celery instead of inline"
    )


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")
    public_base_url: Optional[str] = Field(
        default=None,
        description="Externally reachable base URL used to render webhook URLs (optional)",
    )

    # Database
    database_url: Optional[str] = Field(
        default=None, description="PostgreSQL connection URL (postgresql+asyncpg://...)"
    )
    database_pool_size: int = Field(default=5, ge=1, le=50)
    database_pool_overflow: int = Field(default=10, ge=0, le=100)

    # Redis (Celery broker and result backend)
    redis_url: Optional[str] = Field(
        default=None, description="Redis connection URL (redis://localhost:6379/0)"
    )

    # Workflow engine
    workflow_engine_url: str = Field(
        default="http://localhost:7243", description="Base URL of the workflow engine HTTP API"
    )
    workflow_engine_namespace: str = Field(
        default="default", description="Workflow engine namespace holding agent workflows"
    )
    workflow_engine_api_key: Optional[str] = Field(
        default=None, description="Bearer token for the workflow engine API (optional)"
    )
    workflow_engine_timeout: float = Field(default=10.0, gt=0)

    # Webhook ingress
    slack_replay_window_seconds: int = Field(
        default=300, ge=1, description="Max age of a signed Slack request"
    )

    # Outbound routing
    router_queue_size: int = Field(
        default=1000, ge=1, description="Capacity of the router's inbound event queue"
    )
    router_integration_queue_size: int = Field(
        default=100, ge=1, description="Capacity of each per-integration delivery queue"
    )
    router_shutdown_timeout: float = Field(
        default=10.0, ge=0, description="Seconds to drain in-flight deliveries on shutdown"
    )
    router_worker_idle_seconds: float = Field(
        default=300.0, gt=0, description="Idle time before a per-integration worker exits"
    )
    event_publish_timeout: float = Field(
        default=1.0, ge=0, description="Seconds a publish waits for room in a subscriber queue"
    )
    outbound_http_timeout: float = Field(default=10.0, gt=0)

    # Feature Flags
    feature_flags: FeatureFlags = Field(
        default_factory=FeatureFlags, description="Routing feature toggles"
    )


def load_settings() -> Settings:
    """Load settings with proper error handling."""
    try:
        return Settings()
    except Exception as e:
        error_msg = f"Failed to load settings: {e}"
        if "database_url" in str(e).lower():
            error_msg += "\nMake sure DATABASE_URL in your .env file is a valid URL"
        raise ValueError(error_msg) from e
