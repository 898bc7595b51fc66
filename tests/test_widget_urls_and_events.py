import asyncio
import json

import httpx

from chatbuddy.widget.events import EventDispatcher
from chatbuddy.widget.page import HostPage
from chatbuddy.widget.urls import (
    LOCAL_DEV_API_BASE_URL,
    config_project_id,
    normalize_api_base_url,
    resolve_api_base_url,
)


def test_normalize_strips_api_suffix_and_slashes():
    assert normalize_api_base_url("https://api.tower.in/api/") == "https://api.tower.in"
    assert normalize_api_base_url("https://api.tower.in//") == "https://api.tower.in"


def test_loopback_api_dropped_on_public_page():
    assert resolve_api_base_url("http://localhost:4000", HostPage(url="https://tower.in/")) is None


def test_plain_http_api_dropped_on_https_page():
    assert resolve_api_base_url("http://api.tower.in", HostPage(url="https://tower.in/")) is None
    assert resolve_api_base_url("https://api.tower.in/api", HostPage(url="https://tower.in/")) == "https://api.tower.in"


def test_local_dev_fallback_only_on_plain_http_loopback():
    assert resolve_api_base_url(None, HostPage(url="http://localhost:3000/")) == LOCAL_DEV_API_BASE_URL
    assert resolve_api_base_url("", HostPage(url="https://tower.in/")) is None


def test_design_config_project():
    assert config_project_id(HostPage(url="http://127.0.0.1:5173/"), "https://api.tower.in") == "local"
    assert config_project_id(HostPage(url="https://tower.in/"), "http://localhost:4000") == "local"
    assert config_project_id(HostPage(url="https://tower.in/"), "https://api.tower.in") == "default"


def test_dispatch_suppressed_for_loopback_api_on_public_page():
    async def run():
        dispatcher = EventDispatcher("http://localhost:4000", "tower-a", "tower.in", HostPage(url="https://tower.in/"))
        return dispatcher.suppressed, dispatcher.dispatch("widget_opened")

    suppressed, task = asyncio.run(run())
    assert suppressed is True
    assert task is None


def test_dispatch_posts_event_and_swallows_failures():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        raise httpx.ConnectError("refused", request=request)

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        dispatcher = EventDispatcher(
            "http://localhost:4000", "tower-a", "localhost", HostPage(url="http://localhost:3000/"), client=client
        )
        task = dispatcher("cta_selected", {"cta": "Get pricing details"})
        await dispatcher.flush()
        return task

    task = asyncio.run(run())
    assert task is not None
    assert task.exception() is None
    assert bodies[0]["type"] == "cta_selected"
    assert bodies[0]["projectId"] == "tower-a"
    assert bodies[0]["payload"]["cta"] == "Get pricing details"
    assert "at" in bodies[0]["payload"]


def test_dispatch_outside_event_loop_is_ignored():
    dispatcher = EventDispatcher("https://api.tower.in", "tower-a", "tower.in", HostPage(url="https://tower.in/"))
    assert dispatcher.dispatch("widget_opened") is None


def test_dispatch_swallows_unserializable_payload():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(202)

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        dispatcher = EventDispatcher(
            "https://api.tower.in", "tower-a", "tower.in", HostPage(url="https://tower.in/"), client=client
        )
        task = dispatcher("widget_opened", {"when": object()})
        await dispatcher.flush()
        return task

    task = asyncio.run(run())
    assert task is not None
    assert task.exception() is None
    assert calls == []
