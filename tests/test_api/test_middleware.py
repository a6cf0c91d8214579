"""Unit tests for request id, request logging and error handling middleware."""

import logging
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from integrations.ingress import IngressResult
from src.api.dependencies import get_ingress
from src.api.middleware.observability import (
    AccessLogRedactionFilter,
    install_access_log_redaction,
    redact_path,
)
from src.errors import ConflictError

_SECRET = "Q7x2Lm9PzR4tVb8NcW1sKd5HfJ3gYa6E"


@pytest.mark.unit
class TestRedactPath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            (f"/api/apps/slack/events/abc/{_SECRET}", "/api/apps/slack/events/abc/***"),
            (f"/api/apps/msteams/messaging/abc/{_SECRET}", "/api/apps/msteams/messaging/abc/***"),
            ("/api/apps/slack/events/abc", "/api/apps/slack/events/abc"),
            ("/api/apps/integrations/abc/test", "/api/apps/integrations/abc/test"),
            ("/health", "/health"),
        ],
    )
    def test_redaction(self, path, expected) -> None:
        assert redact_path(path) == expected


@pytest.mark.unit
class TestAccessLogRedaction:
    def _access_record(self, full_path: str) -> logging.LogRecord:
        return logging.LogRecord(
            name="uvicorn.access",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg='%s - "%s %s HTTP/%s" %d',
            args=("10.0.0.7:51234", "POST", full_path, "1.1", 200),
            exc_info=None,
        )

    def test_secret_removed_from_access_line(self) -> None:
        record = self._access_record(f"/api/apps/msteams/messaging/abc/{_SECRET}?x=1")

        assert AccessLogRedactionFilter().filter(record) is True
        assert record.getMessage() == (
            '10.0.0.7:51234 - "POST /api/apps/msteams/messaging/abc/***?x=1 HTTP/1.1" 200'
        )

    def test_other_paths_untouched(self) -> None:
        record = self._access_record("/health")

        AccessLogRedactionFilter().filter(record)

        assert "/health" in record.getMessage()

    def test_installed_once(self) -> None:
        name = f"test.access.{uuid4()}"

        install_access_log_redaction(name)
        install_access_log_redaction(name)

        filters = logging.getLogger(name).filters
        assert sum(isinstance(f, AccessLogRedactionFilter) for f in filters) == 1

    async def test_app_installs_filter_on_uvicorn_access(self, app) -> None:
        filters = logging.getLogger("uvicorn.access").filters
        assert any(isinstance(f, AccessLogRedactionFilter) for f in filters)


@pytest.mark.unit
class TestRequestId:
    async def test_generated_when_missing(self, client) -> None:
        response = await client.get("/health")

        UUID(response.headers["X-Request-ID"])

    async def test_valid_id_echoed(self, client) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "gw-1234.abc_9"})

        assert response.headers["X-Request-ID"] == "gw-1234.abc_9"

    @pytest.mark.parametrize("bad_id", ["has space", "a" * 129, "line\tbreak", "<script>"])
    async def test_malformed_id_replaced(self, client, bad_id) -> None:
        response = await client.get("/health", headers={"X-Request-ID": bad_id})

        assert response.headers["X-Request-ID"] != bad_id
        UUID(response.headers["X-Request-ID"])


@pytest.mark.unit
class TestRequestLogging:
    async def test_webhook_secret_not_logged(self, client, app, caplog) -> None:
        ingress = AsyncMock()
        ingress.handle_inbound = AsyncMock(return_value=IngressResult(200, {"status": "ignored"}))
        app.dependency_overrides[get_ingress] = lambda: ingress

        with caplog.at_level(logging.INFO):
            await client.post(f"/api/apps/webhook/events/{uuid4()}/{_SECRET}", content=b"{}")

        own_lines = [
            record.getMessage()
            for record in caplog.records
            if record.name.startswith(("src.", "integrations."))
        ]
        assert any(line.startswith("http_request:") for line in own_lines)
        assert not any(_SECRET in line for line in own_lines)


@pytest.mark.unit
class TestErrorHandling:
    async def test_conflict_maps_to_409_with_request_id(
        self, tenant_client, integration_service
    ) -> None:
        integration_service.enable = AsyncMock(side_effect=ConflictError("taken"))

        response = await tenant_client.post(
            f"/api/apps/integrations/{uuid4()}/enable", headers={"X-Request-ID": "req-42"}
        )

        assert response.status_code == 409
        assert response.json() == {
            "error": "conflict",
            "message": "taken",
            "details": None,
            "request_id": "req-42",
        }

    async def test_unexpected_error_hides_details(
        self, tenant_client, integration_service
    ) -> None:
        integration_service.get = AsyncMock(side_effect=RuntimeError("password=hunter2"))

        response = await tenant_client.get(f"/api/apps/integrations/{uuid4()}")

        assert response.status_code == 500
        assert response.json()["message"] == "An unexpected error occurred"
        assert "hunter2" not in response.text
