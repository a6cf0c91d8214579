"""Unit tests for ORM model structure (no database required).

Validates table registration, column names, foreign keys, unique constraints,
and basic ORM instantiation by inspecting Base.metadata.
"""

from uuid import uuid4

import pytest

from src.db.base import Base

# Force all models to register with Base.metadata
import src.db.models  # noqa: F401
from src.db.models.conversation import (
    ConversationMessageORM,
    ConversationThreadORM,
    MessageDirectionEnum,
    MessageStatusEnum,
    ThreadStatusEnum,
)
from src.db.models.platform import AppIntegrationORM, WorkflowWebhookORM


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _table(name: str):
    """Return a Table object from Base.metadata by name."""
    return Base.metadata.tables[name]


def _col_names(table_name: str) -> set[str]:
    """Return the set of column names for a table."""
    return {c.name for c in _table(table_name).columns}


def _fk_target_tables(table_name: str) -> set[str]:
    """Return the set of target table.column strings for all FKs on a table."""
    return {f"{fk.column.table.name}.{fk.column.name}" for fk in _table(table_name).foreign_keys}


def _unique_constraint_columns(table_name: str) -> list[frozenset[str]]:
    """Return a list of column-name sets for each UniqueConstraint on a table."""
    from sqlalchemy import UniqueConstraint

    results: list[frozenset[str]] = []
    for constraint in _table(table_name).constraints:
        if isinstance(constraint, UniqueConstraint):
            results.append(frozenset(c.name for c in constraint.columns))
    return results


# ---------------------------------------------------------------------------
# Table existence
# ---------------------------------------------------------------------------

EXPECTED_TABLES = {
    "conversation_thread",
    "conversation_message",
    "app_integration",
    "workflow_webhook",
}


@pytest.mark.unit
class TestTableRegistration:
    def test_all_tables_registered(self, all_tables: set[str]) -> None:
        missing = EXPECTED_TABLES - set(all_tables)
        assert not missing, f"Missing tables: {missing}"

    def test_no_unexpected_tables(self, all_tables: set[str]) -> None:
        assert set(all_tables) == EXPECTED_TABLES


# ---------------------------------------------------------------------------
# conversation_thread
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestConversationThreadTable:
    def test_columns(self) -> None:
        expected = {
            "id",
            "tenant_id",
            "created_by",
            "workflow_id",
            "participant_id",
            "status",
            "last_activity_at",
            "created_at",
            "updated_at",
        }
        assert _col_names("conversation_thread") == expected

    def test_composite_key_is_unique(self) -> None:
        assert frozenset({"tenant_id", "workflow_id", "participant_id"}) in (
            _unique_constraint_columns("conversation_thread")
        )

    def test_status_defaults_to_active(self) -> None:
        status = _table("conversation_thread").c.status
        assert status.nullable is False
        assert "active" in str(status.server_default.arg)

    def test_status_enum_values(self) -> None:
        assert [s.value for s in ThreadStatusEnum] == ["active", "archived", "closed"]


# ---------------------------------------------------------------------------
# conversation_message
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestConversationMessageTable:
    def test_columns(self) -> None:
        expected = {
            "id",
            "tenant_id",
            "created_by",
            "thread_id",
            "workflow_id",
            "participant_channel_id",
            "direction",
            "content",
            "metadata",
            "origin",
            "status",
            "logs",
            "created_at",
        }
        assert _col_names("conversation_message") == expected

    def test_thread_foreign_key(self) -> None:
        assert _fk_target_tables("conversation_message") == {"conversation_thread.id"}

    def test_thread_delete_cascades(self) -> None:
        (fk,) = _table("conversation_message").c.thread_id.foreign_keys
        assert fk.ondelete == "CASCADE"

    def test_delivery_status_is_nullable(self) -> None:
        assert _table("conversation_message").c.status.nullable is True
        assert _table("conversation_message").c.direction.nullable is False

    def test_enum_values(self) -> None:
        assert {d.value for d in MessageDirectionEnum} == {"inbound", "outgoing"}
        assert {s.value for s in MessageStatusEnum} == {
            "delivered_to_workflow",
            "failed_to_deliver_to_workflow",
        }


# ---------------------------------------------------------------------------
# app_integration and workflow_webhook
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestAppIntegrationTable:
    def test_columns(self) -> None:
        expected = {
            "id",
            "tenant_id",
            "created_by",
            "updated_by",
            "platform_id",
            "name",
            "description",
            "agent_name",
            "activation_name",
            "configuration",
            "secrets",
            "mapping_config",
            "is_enabled",
            "created_at",
            "updated_at",
        }
        assert _col_names("app_integration") == expected

    def test_name_unique_per_activation(self) -> None:
        assert frozenset({"tenant_id", "agent_name", "activation_name", "name"}) in (
            _unique_constraint_columns("app_integration")
        )

    def test_no_foreign_keys(self) -> None:
        assert _fk_target_tables("app_integration") == set()


@pytest.mark.unit
class TestWorkflowWebhookTable:
    def test_columns(self) -> None:
        expected = {
            "id",
            "tenant_id",
            "created_by",
            "workflow_id",
            "callback_url",
            "event_type",
            "secret",
            "is_active",
            "last_triggered_at",
            "created_at",
            "updated_at",
        }
        assert _col_names("workflow_webhook") == expected


# ---------------------------------------------------------------------------
# ORM instantiation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestORMInstantiation:
    def test_thread(self) -> None:
        thread = ConversationThreadORM(
            tenant_id="tenant-acme",
            workflow_id="tenant-acme:support:Supervisor Workflow:prod",
            participant_id="U123",
            status=ThreadStatusEnum.ACTIVE,
        )
        assert thread.participant_id == "U123"
        assert thread.status == ThreadStatusEnum.ACTIVE

    def test_message_metadata_attribute(self) -> None:
        message = ConversationMessageORM(
            tenant_id="tenant-acme",
            thread_id=uuid4(),
            workflow_id="wf",
            participant_channel_id="C1",
            direction=MessageDirectionEnum.INBOUND,
            content={"text": "hi"},
            message_metadata={"ts": "1700000000.1"},
        )
        assert message.message_metadata == {"ts": "1700000000.1"}
        assert message.status is None

    def test_integration_workflow_id_and_origin(self) -> None:
        integration_id = uuid4()
        integration = AppIntegrationORM(
            id=integration_id,
            tenant_id="tenant-acme",
            platform_id="slack",
            name="Support Slack",
            agent_name="support",
            activation_name="prod",
        )
        assert integration.workflow_id == "tenant-acme:support:Supervisor Workflow:prod"
        assert integration.origin == f"app:slack:{integration_id}"

    def test_workflow_webhook(self) -> None:
        webhook = WorkflowWebhookORM(
            tenant_id="tenant-acme",
            workflow_id="wf",
            callback_url="https://hooks.acme.test/in",
            event_type="message.inbound",
            secret="s3cret",
        )
        assert webhook.last_triggered_at is None
