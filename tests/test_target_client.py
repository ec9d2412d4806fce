"""Tests for the FeatherPanel client against a mocked HTTP transport."""

import json
from collections.abc import Callable

import httpx
import pytest

from feather_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
)
from feather_migration.client.target_client import FeatherPanelClient
from feather_migration.config import TargetConfig

BASE_URL = "https://panel.example.org"

Handler = Callable[[httpx.Request], httpx.Response]


def make_client(handler: Handler) -> FeatherPanelClient:
    config = TargetConfig(url=BASE_URL, api_key="test-key")
    return FeatherPanelClient(config, rate_limit=0, transport=httpx.MockTransport(handler))


def session_response(permissions: list[str]) -> dict:
    return {
        "success": True,
        "data": {
            "user_info": {"username": "admin", "email": "admin@example.org"},
            "permissions": permissions,
        },
    }


class TestSession:
    @pytest.mark.asyncio
    async def test_admin_session(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=session_response(["admin.root"]))

        async with make_client(handler) as client:
            session = await client.ensure_admin()

        assert session.username == "admin"
        assert session.is_admin
        assert seen[0].url.path == "/api/user/session"
        assert seen[0].headers["Authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_missing_admin_permission(self):
        client = make_client(lambda request: httpx.Response(200, json=session_response(["x"])))

        with pytest.raises(AuthorizationError, match="admin.root"):
            await client.ensure_admin()
        await client.close()

    @pytest.mark.asyncio
    async def test_rejected_key(self):
        client = make_client(lambda request: httpx.Response(401, json={"message": "bad key"}))

        with pytest.raises(AuthenticationError) as exc_info:
            await client.get_session()
        await client.close()

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unreadable_session(self):
        client = make_client(lambda request: httpx.Response(200, json={"success": True}))

        with pytest.raises(APIError):
            await client.get_session()
        await client.close()


class TestPrerequisites:
    @pytest.mark.asyncio
    async def test_clean_panel(self):
        body = {"success": True, "data": {"users_count": 1, "panel_clean": True}}
        client = make_client(lambda request: httpx.Response(200, json=body))

        report = await client.check_prerequisites()
        await client.close()

        assert report.is_acceptable
        assert report.blocking_counts == {}

    @pytest.mark.asyncio
    async def test_panel_with_data(self):
        body = {
            "success": True,
            "data": {"users_count": 3, "nodes_count": 2, "servers_count": 0, "panel_clean": False},
        }
        client = make_client(lambda request: httpx.Response(200, json=body))

        report = await client.check_prerequisites()
        await client.close()

        assert not report.is_acceptable
        assert report.blocking_counts == {"nodes": 2, "users": 3}

    @pytest.mark.asyncio
    async def test_failed_check(self):
        body = {"success": False, "error": True, "error_message": "importer disabled"}
        client = make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(APIError, match="importer disabled"):
            await client.check_prerequisites()
        await client.close()


class TestImportEntity:
    @pytest.mark.asyncio
    async def test_assigned_id_is_extracted(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": {"location": {"id": 20}}})

        client = make_client(handler)
        result = await client.import_entity("location", {"name": "eu", "id": 9})
        await client.close()

        assert result.success
        assert result.assigned_id == 20
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/admin/pterodactyl-importer/locations"
        assert json.loads(seen[0].content) == {"name": "eu", "id": 9}

    @pytest.mark.asyncio
    async def test_database_host_id_path(self):
        body = {"success": True, "data": {"database_id": "4"}}
        client = make_client(lambda request: httpx.Response(200, json=body))

        result = await client.import_entity("database_host", {"id": 4})
        await client.close()

        assert result.assigned_id == 4

    @pytest.mark.asyncio
    async def test_success_without_id(self):
        client = make_client(lambda request: httpx.Response(200, json={"success": True}))

        result = await client.import_entity("task", {"task": {"id": 1}})
        await client.close()

        assert result.success
        assert result.assigned_id is None

    @pytest.mark.asyncio
    async def test_non_object_data_is_dropped(self):
        body = {"success": True, "data": [1]}
        client = make_client(lambda request: httpx.Response(200, json=body))

        result = await client.import_entity("task", {"task": {"id": 1}})
        await client.close()

        assert result.success
        assert result.data == {}

    @pytest.mark.asyncio
    async def test_failure_envelope(self):
        body = {"success": False, "error": True, "error_message": "duplicate uuid"}
        client = make_client(lambda request: httpx.Response(200, json=body))

        result = await client.import_entity("user", {"user": {"id": 2}})
        await client.close()

        assert not result.success
        assert result.error_message == "duplicate uuid"

    @pytest.mark.asyncio
    async def test_http_error_is_an_unsuccessful_result(self):
        body = {"success": False, "error_message": "validation failed"}
        client = make_client(lambda request: httpx.Response(422, json=body))

        result = await client.import_entity("server", {"server": {"id": 1}})
        await client.close()

        assert not result.success
        assert result.error_message == "validation failed"

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(NetworkError):
            await client.import_entity("node", {"node": {"id": 1}})
        await client.close()

    @pytest.mark.asyncio
    async def test_unknown_kind(self):
        client = make_client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ValueError):
            await client.import_entity("mount", {})
        await client.close()


class TestSettings:
    @pytest.mark.asyncio
    async def test_update(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = {"success": True, "data": {"updated_settings": ["app_name"]}}
            return httpx.Response(200, json=body)

        client = make_client(handler)
        result = await client.update_settings({"app_name": "Panel"})
        await client.close()

        assert result.success
        assert result.data["updated_settings"] == ["app_name"]
        assert seen[0].method == "PATCH"
        assert seen[0].url.path == "/api/admin/pterodactyl-importer/settings"

    @pytest.mark.asyncio
    async def test_forbidden(self):
        client = make_client(lambda request: httpx.Response(403, json={"message": "forbidden"}))

        result = await client.update_settings({"app_name": "Panel"})
        await client.close()

        assert not result.success
        assert result.error_message == "forbidden"
