import asyncio

import httpx
import pytest
from pydantic import SecretStr

from evnetwork_mcp import server
from evnetwork_mcp.client import NetworkClient, api_client_core
from evnetwork_mcp.config import ServerConfig
from evnetwork_mcp.models import APIConfiguration, NetworkError

from tests.builders import paged_network
from tests.test_team_view import FakeClient


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setenv("EVNETWORK_API_KEY", "secret-token")
    config = ServerConfig(_env_file=None, default_root_id=1, default_page_size=2)
    client = FakeClient()
    monkeypatch.setattr(server, "_config", config)
    monkeypatch.setattr(server, "_client", client)
    monkeypatch.setattr(server, "_views", {})
    return client


def use_http(monkeypatch, handler):
    """Swap in a real NetworkClient backed by a mock transport."""

    async def fake_sleep(delay):
        pass

    monkeypatch.setattr(api_client_core.asyncio, "sleep", fake_sleep)
    config = APIConfiguration(
        api_key=SecretStr("test-key"),
        base_url="https://api.test/api",
        request_delay=0,
        max_retries=2,
    )
    monkeypatch.setattr(server, "_client", NetworkClient(config, transport=httpx.MockTransport(handler)))


def test_helpers_require_startup(monkeypatch):
    monkeypatch.setattr(server, "_client", None)
    monkeypatch.setattr(server, "_config", None)
    with pytest.raises(RuntimeError):
        server.get_client()
    with pytest.raises(RuntimeError):
        server.get_config()


def test_resolve_root(configured, monkeypatch):
    assert server._resolve_root(7) == 7
    assert server._resolve_root(None) == 1
    monkeypatch.setattr(server._config, "default_root_id", None)
    with pytest.raises(ValueError):
        server._resolve_root(None)


def test_views_are_cached_per_root(configured):
    view = server.get_view()
    assert server.get_view(1) is view
    assert server.get_view(2) is not view
    assert view.pagination.page_size == 2
    assert view.pagination.min_depth == 1


def test_view_action_success_payload(configured):
    payload = asyncio.run(server._run_view_action(None, lambda view: view.refresh()))
    assert payload["success"] is True
    assert payload["engine"] == "merge"
    assert [m["id"] for m in payload["members"]] == [2, 100, 101]
    assert payload["left_pagination"]["total_pages"] == 3
    assert payload["view"]["pagination"]["can_next"] is True


def test_view_action_failure_returns_stale_page(configured):
    async def scenario():
        await server._run_view_action(1, lambda view: view.refresh())
        configured.fail_with = NetworkError("Server error: 502")
        return await server._run_view_action(1, lambda view: view.next_page())

    payload = asyncio.run(scenario())
    assert payload["success"] is False
    assert payload["retryable"] is True
    assert [m["id"] for m in payload["members"]] == [2, 100, 101]
    assert payload["view"]["stale"] is True


def test_view_action_without_root(configured, monkeypatch):
    monkeypatch.setattr(server._config, "default_root_id", None)
    payload = asyncio.run(server._run_view_action(None, lambda view: view.refresh()))
    assert payload["success"] is False
    assert "root_id is required" in payload["error"]
    assert configured.queries == []


def test_view_action_rejects_bad_page_size(configured):
    payload = asyncio.run(server._run_view_action(1, lambda view: view.set_page_size(0)))
    assert payload["success"] is False
    assert "page_size" in payload["error"]
    assert payload["view"]["pagination"]["page_size"] == 2


def test_fetch_members_success(configured, monkeypatch):
    use_http(monkeypatch, lambda request: httpx.Response(200, json=paged_network()))
    payload = asyncio.run(server._fetch_members(None, "left", 1, 4, None, None))
    assert payload["success"] is True
    assert [m["id"] for m in payload["members"]] == [2, 10, 11, 12, 13]


def test_fetch_members_server_error_is_reported(configured, monkeypatch):
    use_http(monkeypatch, lambda request: httpx.Response(503))
    payload = asyncio.run(server._fetch_members(1, "both", 1, 20, None, None))
    assert payload["success"] is False
    assert payload["retryable"] is True
    assert "503" in payload["error"]


def test_fetch_members_missing_root_not_retryable(configured, monkeypatch):
    use_http(monkeypatch, lambda request: httpx.Response(404, json={"detail": "Not found."}))
    payload = asyncio.run(server._fetch_members(99, "both", 1, 20, None, None))
    assert payload["success"] is False
    assert payload["retryable"] is False


def test_fetch_members_invalid_query(configured):
    payload = asyncio.run(server._fetch_members(1, "both", 1, 20, 5, 2))
    assert payload["success"] is False
    assert configured.queries == []
