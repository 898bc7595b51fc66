import asyncio
import json

import httpx
import pytest

from chatbuddy.dashboard.client import (
    NETWORK_ERROR_MESSAGE,
    SERVER_ERROR_MESSAGE,
    STATUS_MESSAGES,
    DashboardClient,
    DashboardError,
)
from chatbuddy.widget.controller import CONFIG_UPDATED_EVENT
from chatbuddy.widget.page import HostPage


def dashboard(handler, api_key="secret-key"):
    return DashboardClient(
        "https://api.tower.in/api/",
        api_key=api_key,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def raised(coroutine):
    with pytest.raises(DashboardError) as info:
        asyncio.run(coroutine)
    return info.value


def test_save_sends_key_and_notifies_page():
    seen = []
    notified = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"projectId": "default", "agentName": "Asha"})

    async def run():
        page = HostPage(url="https://dashboard.tower.in/")
        page.add_event_listener(CONFIG_UPDATED_EVENT, lambda event: notified.append(event.detail))
        return await dashboard(handler).save_widget_config("default", {"agentName": "Asha"}, page=page)

    saved = asyncio.run(run())
    assert saved["agentName"] == "Asha"
    assert str(seen[0].url) == "https://api.tower.in/api/widget-config/default"
    assert seen[0].headers["x-api-key"] == "secret-key"
    assert json.loads(seen[0].content) == {"agentName": "Asha"}
    assert notified == [{"projectId": "default"}]


@pytest.mark.parametrize("status", [401, 403, 404, 409, 429])
def test_status_codes_map_to_user_messages(status):
    client = dashboard(lambda request: httpx.Response(status, json={"error": "raw server text"}))
    error = raised(client.get_widget_config("default"))
    assert error.status_code == status
    assert error.message == STATUS_MESSAGES[status]
    assert error.detail == "raw server text"


def test_validation_message_is_shown_as_is():
    client = dashboard(lambda request: httpx.Response(400, json={"error": "Invalid or missing BHK preference"}))
    error = raised(client.list_leads(microsite="tower.in"))
    assert error.message == "Invalid or missing BHK preference"


def test_server_and_network_errors():
    server = dashboard(lambda request: httpx.Response(500, text="Traceback ..."))
    assert raised(server.event_summary()).message == SERVER_ERROR_MESSAGE

    def offline(request):
        raise httpx.ConnectError("refused", request=request)

    error = raised(dashboard(offline).api_key_status())
    assert error.message == NETWORK_ERROR_MESSAGE
    assert error.status_code is None


def test_login_verify_logout():
    calls = []

    def handler(request):
        calls.append((request.url.path, json.loads(request.content or b"{}")))
        if request.url.path == "/api/users/auth":
            return httpx.Response(200, json={"success": True, "token": "t0k", "username": "admin", "role": "admin"})
        if request.url.path == "/api/users/verify":
            return httpx.Response(200, json={"valid": True, "username": "admin", "role": "admin"})
        return httpx.Response(200, json={"success": True})

    async def run():
        client = dashboard(handler, api_key=None)
        await client.login("admin", "admin-pass-123")
        valid = await client.verify()
        await client.logout()
        return client, valid, await client.verify()

    client, valid, after_logout = asyncio.run(run())
    assert valid is True
    assert after_logout is False
    assert client.token is None
    assert [path for path, _ in calls] == ["/api/users/auth", "/api/users/verify", "/api/users/logout"]
    assert calls[1][1] == {"token": "t0k", "username": "admin"}


def test_list_leads_drops_empty_filters():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"items": [], "total": 0})

    result = asyncio.run(dashboard(handler).list_leads(microsite="tower.in", search=None, limit=10))
    assert result == {"items": [], "total": 0}
    assert dict(seen[0].url.params) == {"microsite": "tower.in", "limit": "10"}
