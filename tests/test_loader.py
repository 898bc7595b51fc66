import asyncio

import httpx

from chatbuddy.widget.controller import CONFIG_UPDATED_EVENT, HOST_MARKER_ATTRIBUTE, NoopWidgetInstance, WidgetInstance
from chatbuddy.widget.loader import InitOptions, auto_init, init, read_script_options
from chatbuddy.widget.page import HostPage
from chatbuddy.widget.registry import WidgetRegistry

MARKER = f'[{HOST_MARKER_ATTRIBUTE}="true"]'

LISTING_PAGE = """
<html>
  <head>
    <meta property="property:price" content="1.5 Cr">
    <script src="https://cdn.tower.in/widget.js" data-project="tower-a"
            data-api-base-url="https://api.tower.in/api" data-microsite="tower.in"></script>
  </head>
  <body><h1>Skyline Towers</h1></body>
</html>
"""


def slow_config_client(requests):
    async def handler(request):
        requests.append(request)
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"agent_name": "Asha", "auto_open_delay_ms": 0})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_read_script_options():
    options = read_script_options(HostPage(LISTING_PAGE, url="https://tower.in/"))
    assert options.project_id == "tower-a"
    assert options.api_base_url == "https://api.tower.in/api"
    assert options.microsite == "tower.in"
    assert options.auto_init is True


def test_read_script_options_without_script():
    options = read_script_options(HostPage(url="https://tower.in/"))
    assert options.project_id is None
    assert options.microsite == "tower.in"


def test_concurrent_init_mounts_once():
    requests = []

    async def run():
        page = HostPage(LISTING_PAGE, url="https://tower.in/")
        registry = WidgetRegistry()
        client = slow_config_client(requests)
        instances = await asyncio.gather(*(init(page, registry, http_client=client) for _ in range(5)))
        hosts = len(page.query_selector_all(MARKER))
        live = registry.get()
        theme = dict(live.theme)
        live.destroy()
        page.close()
        return instances, hosts, live, theme, registry

    instances, hosts, live, theme, registry = asyncio.run(run())
    assert hosts == 1
    assert all(instance is live for instance in instances)
    assert isinstance(live, WidgetInstance)
    assert live.project_id == "tower-a"
    assert live.api_base_url == "https://api.tower.in"
    assert theme["agentName"] == "Asha"
    assert theme["propertyInfo"] == {"price": "1.5 Cr", "name": "Skyline Towers"}
    assert len(requests) == 1
    assert "/api/widget-config/default" in str(requests[0].url)
    assert registry.init_in_progress is False


def test_init_after_mount_returns_existing_instance():
    async def run():
        page = HostPage(LISTING_PAGE, url="https://tower.in/")
        registry = WidgetRegistry()
        client = slow_config_client([])
        first = await init(page, registry, http_client=client)
        second = await init(page, registry, InitOptions(project_id="tower-b"), http_client=client)
        result = (first, second, first.project_id)
        first.destroy()
        page.close()
        return result

    first, second, project_id = asyncio.run(run())
    assert second is first
    assert project_id == "tower-b"


def test_auto_init_waits_for_dom_ready_and_mounts_once():
    async def run():
        page = HostPage(LISTING_PAGE, url="https://tower.in/", ready_state="loading")
        registry = WidgetRegistry()
        scheduled = auto_init(page, registry, http_client=slow_config_client([]))
        before = registry.get()
        page.mark_ready()
        await page.settle()
        hosts = len(page.query_selector_all(MARKER))
        live = registry.get()
        listeners = page.listener_count("DOMContentLoaded") + page.listener_count("load")
        polling = page.listener_count(CONFIG_UPDATED_EVENT)
        live.destroy()
        page.close()
        return scheduled, before, hosts, live, listeners, polling

    scheduled, before, hosts, live, listeners, polling = asyncio.run(run())
    assert scheduled is None
    assert before is None
    assert hosts == 1
    assert isinstance(live, WidgetInstance)
    assert listeners == 0
    assert polling == 1


def test_auto_init_can_be_disabled():
    page = HostPage(
        '<html><body><script data-project="tower-a" data-auto-init="false"></script></body></html>',
        url="https://tower.in/",
        ready_state="loading",
    )
    assert auto_init(page, WidgetRegistry()) is None
    assert page.listener_count("DOMContentLoaded") == 0


def test_init_on_ready_page_returns_task():
    async def run():
        page = HostPage(LISTING_PAGE, url="https://tower.in/")
        registry = WidgetRegistry()
        task = auto_init(page, registry, http_client=slow_config_client([]))
        instance = await task
        instance.destroy()
        page.close()
        return instance

    assert isinstance(asyncio.run(run()), WidgetInstance)


def test_unusable_api_still_mounts_with_defaults():
    async def run():
        page = HostPage(
            '<html><body><script data-project="tower-a" data-api-base-url="http://localhost:4000"></script></body></html>',
            url="https://tower.in/",
        )
        registry = WidgetRegistry()
        instance = await init(page, registry)
        result = (instance, instance.api_base_url, page.active_intervals)
        instance.destroy()
        page.close()
        return result

    instance, api_base_url, intervals = asyncio.run(run())
    assert isinstance(instance, WidgetInstance)
    assert api_base_url is None
    assert intervals == 0


def test_init_failure_returns_noop(monkeypatch):
    from chatbuddy.widget import loader

    def broken_detect(page):
        raise RuntimeError("detector exploded")

    monkeypatch.setattr(loader, "detect_property", broken_detect)

    async def run():
        registry = WidgetRegistry()
        instance = await init(HostPage(url="https://tower.in/"), registry, InitOptions(api_base_url=None))
        return instance, registry

    instance, registry = asyncio.run(run())
    assert isinstance(instance, NoopWidgetInstance)
    assert registry.init_in_progress is False
    assert registry.get() is None
