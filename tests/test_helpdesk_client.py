#!/usr/bin/env python3
"""Unit tests for the helpdesk inventory HTTP client.

Tests cover:
    - Required environment configuration
    - Status code to exception mapping
    - Retry of transient failures and circuit breaker behavior
    - Cursor pagination
"""
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.devsync.api.exceptions import (
    CircuitOpenError,
    ConfigurationError,
    InvalidCredentialsError,
    NotFoundError,
    ServerError,
)
from src.devsync.api.helpdesk_client import HelpdeskClient, HelpdeskPaginationConfig


def mock_response(status: int = 200, json_body: dict | None = None, text: str = ""):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=json_body)
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


class RecordingSession:
    """Session stand-in that replays responses and records each request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method, url, params=None):
        self.calls.append((method, url, dict(params or {})))
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


@pytest.fixture
def client():
    return HelpdeskClient(base_url="https://helpdesk.example.org/api/", api_token="hd-token")


# ============================================
# Configuration Tests
# ============================================

class TestHelpdeskClientInit:
    """Test HelpdeskClient configuration."""

    def test_missing_settings_raise(self, monkeypatch):
        monkeypatch.delenv("HELPDESK_BASE_URL", raising=False)
        monkeypatch.delenv("HELPDESK_API_TOKEN", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            HelpdeskClient()

        assert exc_info.value.details["missing_keys"] == ["HELPDESK_BASE_URL", "HELPDESK_API_TOKEN"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("HELPDESK_BASE_URL", "https://helpdesk.example.org/api")
        monkeypatch.setenv("HELPDESK_API_TOKEN", "env-token")

        client = HelpdeskClient()

        assert client.base_url == "https://helpdesk.example.org/api"
        assert client.api_token == "env-token"

    @pytest.mark.asyncio
    async def test_request_outside_context_raises(self, client):
        with pytest.raises(RuntimeError):
            await client.get("/v1/rooms")


# ============================================
# Request Tests
# ============================================

class TestHelpdeskRequests:
    """Test single requests and error mapping."""

    @pytest.mark.asyncio
    async def test_get_builds_url(self, client):
        client._session = RecordingSession([mock_response(200, {"id": "asset-1"})])

        result = await client.get("/v1/assets/asset-1")

        assert result == {"id": "asset-1"}
        assert client._session.calls == [("GET", "https://helpdesk.example.org/api/v1/assets/asset-1", {})]

    @pytest.mark.asyncio
    async def test_unknown_serial_raises_not_found_without_retry(self, client):
        client._session = RecordingSession([mock_response(404)])

        with pytest.raises(NotFoundError):
            await client.get("/v1/assets/serial/XYZ")

        assert len(client._session.calls) == 1
        assert client.circuit_status["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_rejected_token(self, client):
        client._session = RecordingSession([mock_response(403, text="forbidden")])

        with pytest.raises(InvalidCredentialsError):
            await client.get("/v1/rooms")

    @pytest.mark.asyncio
    async def test_server_error_retried(self, client):
        client._session = RecordingSession([
            mock_response(502, text="Bad Gateway"),
            mock_response(200, {"items": []}),
        ])

        with patch("asyncio.sleep", new=AsyncMock()):
            result = await client.get("/v1/rooms")

        assert result == {"items": []}
        assert len(client._session.calls) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_open_circuit(self):
        client = HelpdeskClient(base_url="https://helpdesk.example.org/api", api_token="t")
        client._circuit_breaker.failure_threshold = 1
        client._session = RecordingSession([mock_response(500)])

        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ServerError):
                await client.get("/v1/rooms")

        assert len(client._session.calls) == 3

        with pytest.raises(CircuitOpenError):
            await client.get("/v1/rooms")

        assert len(client._session.calls) == 3


# ============================================
# Pagination Tests
# ============================================

class TestHelpdeskPagination:
    """Test cursor pagination."""

    @pytest.mark.asyncio
    async def test_follows_cursor(self, client):
        client._session = RecordingSession([
            mock_response(200, {"items": [{"id": "r1"}, {"id": "r2"}], "next": "cursor-2"}),
            mock_response(200, {"items": [{"id": "r3"}], "next": None}),
        ])
        config = HelpdeskPaginationConfig(page_size=2, delay_between_pages=0)

        rooms = await client.fetch_all("/v1/rooms", config, params={"building": "High School"})

        assert [room["id"] for room in rooms] == ["r1", "r2", "r3"]
        first, second = [params for _, _, params in client._session.calls]
        assert first == {"building": "High School", "limit": 2}
        assert second == {"building": "High School", "limit": 2, "next": "cursor-2"}

    @pytest.mark.asyncio
    async def test_empty_collection(self, client):
        client._session = RecordingSession([mock_response(200, {"items": []})])

        assert await client.fetch_all("/v1/rooms") == []
        assert len(client._session.calls) == 1

    @pytest.mark.asyncio
    async def test_max_pages_limit(self, client):
        client._session = RecordingSession([mock_response(200, {"items": [{"id": "a"}], "next": "more"})])
        config = HelpdeskPaginationConfig(delay_between_pages=0, max_pages=3)

        assets = await client.fetch_all("/v1/assets", config)

        assert len(assets) == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
