"""Embed entry point: read the script tag, fetch config, mount once"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from chatbuddy.widget.controller import MountConfig, NoopWidgetInstance, compose_theme, mount
from chatbuddy.widget.detector import detect_property
from chatbuddy.widget.fetcher import ConfigFetcher
from chatbuddy.widget.page import HostPage, PageEvent
from chatbuddy.widget.registry import WidgetRegistry
from chatbuddy.widget.urls import config_project_id, resolve_api_base_url

logger = logging.getLogger(__name__)

INIT_POLL_SECONDS = 0.1
INIT_WAIT_LIMIT_SECONDS = 10.0
DEFAULT_PROJECT_ID = "default"

SCRIPT_SELECTORS = (
    "script[data-project]",
    "script[data-project-id]",
    "script[data-api-base-url]",
)


@dataclass
class InitOptions:
    project_id: Optional[str] = None
    api_base_url: Optional[str] = None
    microsite: Optional[str] = None
    theme_overrides: Dict[str, Any] = field(default_factory=dict)
    auto_init: bool = True


def read_script_options(page: HostPage) -> InitOptions:
    """Options from the widget's own <script> data attributes"""
    script = page.current_script
    if script is None:
        for selector in SCRIPT_SELECTORS:
            script = page.query_selector(selector)
            if script is not None:
                break
    if script is None:
        return InitOptions(microsite=page.hostname or None)

    return InitOptions(
        project_id=script.get("data-project") or script.get("data-project-id"),
        api_base_url=script.get("data-api-base-url"),
        microsite=script.get("data-microsite") or page.hostname or None,
        auto_init=str(script.get("data-auto-init", "true")).strip().lower() != "false",
    )


async def _wait_for_other_init(registry: WidgetRegistry):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + INIT_WAIT_LIMIT_SECONDS
    while registry.init_in_progress and loop.time() < deadline:
        await asyncio.sleep(INIT_POLL_SECONDS)
    return registry.get() or NoopWidgetInstance()


async def init(
    page: HostPage,
    registry: WidgetRegistry,
    options: Optional[InitOptions] = None,
    *,
    fetcher: Optional[ConfigFetcher] = None,
    http_client: Optional[httpx.AsyncClient] = None,
):
    """
    Initialize the widget on ``page``

    Safe to call any number of times, concurrently included: a caller that
    arrives while another initialization runs waits for it and returns the
    same instance. Never raises; failures yield a NoopWidgetInstance.
    """
    existing = registry.get()
    if existing is not None:
        if options is not None and options.project_id:
            existing.update_project_id(options.project_id)
        return existing

    if registry.init_in_progress:
        return await _wait_for_other_init(registry)

    registry.init_in_progress = True
    try:
        options = options or read_script_options(page)
        await page.wait_until_ready()

        api_base_url = resolve_api_base_url(options.api_base_url, page)
        fetcher = fetcher or ConfigFetcher(client=http_client, page=page)
        design_project = config_project_id(page, api_base_url)
        remote = await fetcher.fetch_theme(api_base_url, design_project, force_refresh=True)
        detected = detect_property(page)

        config = MountConfig(
            api_base_url=api_base_url,
            project_id=options.project_id or DEFAULT_PROJECT_ID,
            microsite=options.microsite or page.hostname,
            theme=compose_theme(remote, options.theme_overrides, detected),
            theme_overrides=options.theme_overrides,
            detected_property=detected,
            config_project_id=design_project,
        )
        return await mount(page, registry, config, fetcher=fetcher, http_client=http_client)
    except Exception as e:
        logger.error(f"Widget initialization failed: {e}")
        return NoopWidgetInstance()
    finally:
        registry.init_in_progress = False


def auto_init(
    page: HostPage,
    registry: WidgetRegistry,
    options: Optional[InitOptions] = None,
    **kwargs: Any,
) -> Optional[asyncio.Task]:
    """
    Start the widget without an explicit ``init`` call

    While the page is loading, both DOMContentLoaded and load trigger
    ``init``; otherwise it is scheduled right away and the task returned.
    Does nothing when the script sets ``data-auto-init="false"``.
    """
    options = options or read_script_options(page)
    if not options.auto_init:
        logger.info("Widget auto-init disabled by data-auto-init")
        return None

    async def on_page_event(event: PageEvent):
        return await init(page, registry, options, **kwargs)

    if page.ready_state == "loading":
        page.add_event_listener("DOMContentLoaded", on_page_event, once=True)
        page.add_event_listener("load", on_page_event, once=True)
        return None

    return asyncio.get_running_loop().create_task(init(page, registry, options, **kwargs))
