import asyncio

import httpx

from chatbuddy.widget import controller
from chatbuddy.widget.controller import (
    CONFIG_UPDATED_EVENT,
    HOST_MARKER_ATTRIBUTE,
    MountConfig,
    NoopWidgetInstance,
    WidgetInstance,
    WidgetState,
    compose_theme,
    mount,
)
from chatbuddy.widget.fetcher import ConfigFetcher
from chatbuddy.widget.page import HostPage
from chatbuddy.widget.registry import WidgetRegistry

API = "https://api.tower.in"
MARKER = f'[{HOST_MARKER_ATTRIBUTE}="true"]'


def mount_config(**overrides):
    config = {
        "api_base_url": API,
        "project_id": "tower-a",
        "microsite": "tower.in",
        "theme": {"agentName": "Asha", "autoOpenDelayMs": 0},
        "config_project_id": "default",
    }
    config.update(overrides)
    return MountConfig(**config)


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def failing_client():
    return mock_client(lambda request: httpx.Response(503))


def test_compose_theme_precedence():
    theme = compose_theme(
        {"agentName": "Remote", "primaryColor": "#111", "propertyInfo": {"name": "Remote"}},
        {"agentName": "Override", "primaryColor": None, "propertyInfo": {"name": "Override"}},
        {"name": "Detected"},
    )
    assert theme == {"agentName": "Override", "primaryColor": "#111", "propertyInfo": {"name": "Detected"}}
    assert compose_theme({}, {"propertyInfo": {"name": "Override"}}, {})["propertyInfo"] == {"name": "Override"}


def test_mount_renders_into_shadow_root_and_registers():
    async def run():
        page = HostPage(url="https://tower.in/")
        registry = WidgetRegistry()
        instance = await mount(page, registry, mount_config(), http_client=failing_client())
        again = await mount(page, registry, mount_config(project_id="tower-b"), http_client=failing_client())
        result = (instance, again, page)
        instance.destroy()
        page.close()
        return result, registry

    (instance, again, page), registry = asyncio.run(run())
    assert isinstance(instance, WidgetInstance)
    assert again is instance
    assert instance.project_id == "tower-b"
    assert instance.state is WidgetState.DESTROYED
    assert registry.get() is None
    assert page.query_selector(MARKER) is None


def test_mount_contents_live_in_shadow_root():
    async def run():
        page = HostPage(url="https://tower.in/")
        instance = await mount(page, WidgetRegistry(), mount_config(), http_client=failing_client())
        host = page.query_selector(MARKER)
        found = (host is not None, list(host.children), instance.shadow_root.select_one(".chatbuddy-widget"))
        instance.destroy()
        page.close()
        return found

    has_host, host_children, widget = asyncio.run(run())
    assert has_host
    assert host_children == []
    assert widget is not None
    assert "Chat with Asha" in widget.select_one(".chatbuddy-bubble")["aria-label"]


def test_shadow_dom_fallback_styles_the_host():
    async def run():
        page = HostPage(url="https://tower.in/", shadow_dom_supported=False)
        instance = await mount(page, WidgetRegistry(), mount_config(), http_client=failing_client())
        host = page.query_selector(MARKER)
        found = (instance.shadow_root, host["style"], host.select_one("style"), host.select_one(".chatbuddy-widget"))
        instance.destroy()
        page.close()
        return found

    shadow_root, style_attribute, style_tag, widget = asyncio.run(run())
    assert shadow_root is None
    assert "all: initial" in style_attribute
    assert style_tag is not None
    assert widget is not None


def test_existing_dom_marker_blocks_mount():
    async def run():
        page = HostPage(f'<html><body><div {HOST_MARKER_ATTRIBUTE}="true"></div></body></html>', url="https://tower.in/")
        return await mount(page, WidgetRegistry(), mount_config()), page

    instance, page = asyncio.run(run())
    assert isinstance(instance, NoopWidgetInstance)
    assert len(page.query_selector_all(MARKER)) == 1


def test_mount_failure_degrades_to_noop():
    async def run():
        page = HostPage(url="https://tower.in/")

        def broken_attach(host):
            raise RuntimeError("renderer crashed")

        page.attach_shadow = broken_attach
        registry = WidgetRegistry()
        instance = await mount(page, registry, mount_config())
        instance.update_theme({"agentName": "x"})
        instance.update_project_id("tower-b")
        instance.start_config_polling()
        instance.destroy()
        return instance, page, registry

    instance, page, registry = asyncio.run(run())
    assert isinstance(instance, NoopWidgetInstance)
    assert instance.state is WidgetState.FAILED
    assert page.query_selector(MARKER) is None
    assert registry.get() is None


def test_empty_fetch_never_rerenders():
    async def run():
        page = HostPage(url="https://tower.in/")
        client = failing_client()
        fetcher = ConfigFetcher(client=client, page=page)
        instance = await mount(page, WidgetRegistry(), mount_config(), fetcher=fetcher, http_client=client)
        before = instance.render_count
        refreshed = await instance.refresh_config()
        page.dispatch_event(CONFIG_UPDATED_EVENT)
        await page.settle()
        after = instance.render_count
        instance.destroy()
        page.close()
        return before, refreshed, after

    before, refreshed, after = asyncio.run(run())
    assert before == 1
    assert refreshed is False
    assert after == 1


def test_deep_equal_updates_render_at_most_once():
    async def run():
        page = HostPage(url="https://tower.in/")
        instance = await mount(page, WidgetRegistry(), mount_config(), http_client=failing_client())
        first = instance.update_theme({"agentName": "Riya", "autoOpenDelayMs": 0, "primaryColor": None})
        second = instance.update_theme({"agentName": "Riya", "autoOpenDelayMs": 0})
        count = instance.render_count
        instance.destroy()
        page.close()
        return first, second, count

    first, second, count = asyncio.run(run())
    assert first is True
    assert second is False
    assert count == 2


def test_project_id_update_keeps_appearance():
    async def run():
        page = HostPage(url="https://tower.in/")
        instance = await mount(page, WidgetRegistry(), mount_config(), http_client=failing_client())
        theme = dict(instance.theme)
        changed = instance.update_project_id("tower-b")
        unchanged = instance.update_project_id("tower-b")
        result = (changed, unchanged, instance.theme == theme, instance.dispatcher.project_id)
        instance.destroy()
        page.close()
        return result

    assert asyncio.run(run()) == (True, False, True, "tower-b")


def test_polling_applies_remote_changes(monkeypatch):
    monkeypatch.setattr(controller, "POLL_INTERVAL_SECONDS", 0.01)
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"agent_name": "Polled", "auto_open_delay_ms": 0})

    async def run():
        page = HostPage(url="https://tower.in/")
        client = mock_client(handler)
        instance = await mount(
            page,
            WidgetRegistry(),
            mount_config(detected_property={"name": "Skyline"}),
            fetcher=ConfigFetcher(client=client, page=page),
            http_client=client,
        )
        await asyncio.sleep(0.1)
        result = (instance.theme, instance.render_count)
        instance.destroy()
        page.close()
        return result

    theme, render_count = asyncio.run(run())
    assert theme["agentName"] == "Polled"
    assert theme["propertyInfo"] == {"name": "Skyline"}
    # repeated identical polls do not re-render
    assert render_count == 2
    assert len(requests) > 2
    assert all("/api/widget-config/default" in str(request.url) for request in requests)


def test_config_updated_event_refreshes_immediately():
    agent = {"name": "Before"}

    def handler(request):
        return httpx.Response(200, json={"agentName": agent["name"], "autoOpenDelayMs": 0})

    async def run():
        page = HostPage(url="https://tower.in/")
        client = mock_client(handler)
        fetcher = ConfigFetcher(client=client, page=page)
        instance = await mount(page, WidgetRegistry(), mount_config(), fetcher=fetcher, http_client=client)
        await fetcher.fetch_theme(API, "default")
        agent["name"] = "After"
        page.dispatch_event(CONFIG_UPDATED_EVENT, {"projectId": "default"})
        await page.settle()
        name = instance.theme["agentName"]
        instance.destroy()
        page.close()
        return name

    assert asyncio.run(run()) == "After"


def test_destroy_then_mount_leaks_no_timer_or_listener():
    async def run():
        page = HostPage(url="https://tower.in/")
        registry = WidgetRegistry()
        first = await mount(page, registry, mount_config(), http_client=failing_client())
        first.start_config_polling()
        first.destroy()
        after_destroy = (page.active_intervals, page.listener_count(CONFIG_UPDATED_EVENT), registry.get())

        second = await mount(page, registry, mount_config(), http_client=failing_client())
        second.start_config_polling()
        after_mount = (
            second is not first,
            page.active_intervals,
            page.listener_count(CONFIG_UPDATED_EVENT),
            len(page.query_selector_all(MARKER)),
        )
        second.destroy()
        page.close()
        return after_destroy, after_mount

    after_destroy, after_mount = asyncio.run(run())
    assert after_destroy == (0, 0, None)
    assert after_mount == (True, 1, 1, 1)


def test_no_polling_without_api():
    async def run():
        page = HostPage(url="https://tower.in/")
        instance = await mount(page, WidgetRegistry(), mount_config(api_base_url=None))
        result = (instance.state, page.active_intervals, page.listener_count(CONFIG_UPDATED_EVENT))
        instance.destroy()
        page.close()
        return result

    assert asyncio.run(run()) == (WidgetState.MOUNTED, 0, 0)


def test_auto_open_after_delay():
    async def run():
        page = HostPage(url="https://tower.in/")
        registry = WidgetRegistry()
        instance = await mount(
            page, registry, mount_config(theme={"autoOpenDelayMs": 10}), http_client=failing_client()
        )
        await asyncio.sleep(0.05)
        opened = registry.conversation.is_open
        instance.destroy()
        page.close()
        return opened

    assert asyncio.run(run()) is True
