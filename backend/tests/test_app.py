"""
Tests for app-level endpoints and error rendering.
"""

import pytest
from httpx import AsyncClient

from services.error_sanitizer import sanitize_public_error_message


@pytest.mark.asyncio
class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    async def test_health(self, client: AsyncClient, path):
        response = await client.get(path)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "TextMorph AI API"
        assert data["version"] == "1.0.0"
        assert data["environment"] == "dev"
        assert data["uptime"] >= 0
        assert data["timestamp"]

    async def test_root(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "TextMorph AI API"

    async def test_db_test_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/db-test")
        assert response.status_code == 401

    async def test_db_test(self, auth_client: AsyncClient):
        response = await auth_client.get("/api/db-test")

        assert response.status_code == 200
        assert response.json()["success"] is True


@pytest.mark.asyncio
class TestErrorRendering:
    async def test_malformed_json_is_400(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        body = response.json()
        assert "error" in body
        assert isinstance(body["details"], list)

    async def test_large_invalid_input_is_truncated(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"email": "x" * 5000, "password": "pw", "name": "n"},
        )

        assert response.status_code == 400
        assert len(response.text) < 5000

    async def test_unknown_api_route(self, auth_client: AsyncClient):
        response = await auth_client.get("/api/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}


class TestErrorSanitizer:
    def test_plain_message_kept(self):
        assert sanitize_public_error_message("  connection   refused ") == "connection refused"

    @pytest.mark.parametrize(
        "message",
        [
            "Traceback (most recent call last): ...",
            "(sqlite3.OperationalError) no such table: users",
            'File "/home/app/main.py", line 3',
            "hash $2b$12$abcdefghijklmnopqrstuv leaked",
        ],
    )
    def test_internal_details_replaced(self, message):
        assert sanitize_public_error_message(message, fallback="Database error") == "Database error"

    def test_empty(self):
        assert sanitize_public_error_message("") is None
        assert sanitize_public_error_message("   ") is None


class TestRequestLogging:
    def test_sensitive_query_params_masked(self):
        from middleware.logging import mask_query_params

        assert mask_query_params({"token": "abc", "page": "2", "Password": "x"}) == {
            "token": "***",
            "page": "2",
            "Password": "***",
        }


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    response = await client.get("/api/presets")

    assert len(response.headers["X-Request-ID"]) == 8
