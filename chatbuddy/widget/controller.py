"""
Widget mount controller

Mounts at most one widget per page, keeps it in step with the stored design
config, and tears it down without leaking timers or listeners.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from bs4.element import Tag

from chatbuddy.services.theme import resolve_theme, strip_empty
from chatbuddy.widget.conversation import WidgetProps
from chatbuddy.widget.events import EventDispatcher
from chatbuddy.widget.fetcher import ConfigFetcher
from chatbuddy.widget.leads import LeadClient
from chatbuddy.widget.page import HostPage, PageEvent, ShadowDomUnsupported, ShadowRoot
from chatbuddy.widget.registry import WidgetRegistry
from chatbuddy.widget.renderer import HOST_RESET_STYLE, WIDGET_CSS, RenderRoot

logger = logging.getLogger(__name__)

HOST_MARKER_ATTRIBUTE = "data-chatbuddy-widget-host"
HOST_ELEMENT_ID = "chatbuddy-widget-host"
CONFIG_UPDATED_EVENT = "chatbuddy-config-updated"
POLL_INTERVAL_SECONDS = 3.0


class WidgetState(str, Enum):
    UNINITIALIZED = "uninitialized"
    MOUNTING = "mounting"
    MOUNTED = "mounted"
    UPDATING = "updating"
    DESTROYED = "destroyed"
    FAILED = "failed"


@dataclass
class MountConfig:
    api_base_url: Optional[str]
    project_id: str
    microsite: str
    theme: Dict[str, Any] = field(default_factory=dict)
    theme_overrides: Dict[str, Any] = field(default_factory=dict)
    detected_property: Dict[str, str] = field(default_factory=dict)
    # Design config key; falls back to project_id
    config_project_id: Optional[str] = None
    target: Optional[Tag] = None


def compose_theme(
    remote: Optional[Dict[str, Any]],
    overrides: Optional[Dict[str, Any]] = None,
    detected: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Stored config, then embed overrides, then detected listing info"""
    theme = {**(remote or {}), **strip_empty(overrides)}
    if detected:
        theme["propertyInfo"] = dict(detected)
    return theme


class NoopWidgetInstance:
    """Returned when mounting fails; every operation is a no-op"""

    state = WidgetState.FAILED
    host = None
    render_count = 0

    def update_theme(self, theme: Dict[str, Any]) -> bool:
        return False

    def update_project_id(self, project_id: str) -> bool:
        return False

    async def refresh_config(self) -> bool:
        return False

    def start_config_polling(self) -> None:
        pass

    def stop_config_polling(self) -> None:
        pass

    def destroy(self) -> None:
        pass


class WidgetInstance:
    def __init__(
        self,
        page: HostPage,
        registry: WidgetRegistry,
        host: Tag,
        shadow_root: Optional[ShadowRoot],
        render_root: RenderRoot,
        config: MountConfig,
        fetcher: ConfigFetcher,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.page = page
        self.registry = registry
        self.host = host
        self.shadow_root = shadow_root
        self.render_root = render_root
        self.fetcher = fetcher
        self.state = WidgetState.MOUNTING

        self.api_base_url = config.api_base_url
        self.project_id = config.project_id
        self.microsite = config.microsite
        self.config_project_id = config.config_project_id or config.project_id
        self.theme_overrides = dict(config.theme_overrides)
        self.detected_property = dict(config.detected_property)
        self.theme: Dict[str, Any] = dict(config.theme)

        self.dispatcher = EventDispatcher(self.api_base_url, self.project_id, self.microsite, page, client=http_client)
        self.lead_client = LeadClient(self.api_base_url, client=http_client)

        self._poll_handle: Optional[int] = None
        self._auto_open_handle: Optional[int] = None
        self._listening = False

    @property
    def render_count(self) -> int:
        return self.render_root.render_count

    @property
    def widget(self):
        return self.render_root.widget

    def _props(self) -> WidgetProps:
        return WidgetProps(
            api_base_url=self.api_base_url,
            project_id=self.project_id,
            microsite=self.microsite,
            theme=self.theme,
            on_event=self.dispatcher.dispatch,
            preserved_state=self.registry.conversation,
            lead_client=self.lead_client,
        )

    def render(self) -> None:
        self.render_root.render(self._props())

    def update_theme(self, theme: Dict[str, Any]) -> bool:
        """Replace the theme and re-render in place; returns False when nothing changed"""
        if self.state not in (WidgetState.MOUNTED, WidgetState.MOUNTING):
            return False
        if strip_empty(theme) == strip_empty(self.theme):
            return False

        self.state = WidgetState.UPDATING
        try:
            self.theme = dict(theme)
            self.render()
        finally:
            self.state = WidgetState.MOUNTED
        logger.debug("Widget theme updated")
        return True

    def update_project_id(self, project_id: str) -> bool:
        """Change lead attribution only; appearance is untouched"""
        if self.state is not WidgetState.MOUNTED or not project_id or project_id == self.project_id:
            return False
        self.project_id = project_id
        self.dispatcher.project_id = project_id
        self.render()
        return True

    async def refresh_config(self) -> bool:
        remote = await self.fetcher.fetch_theme(self.api_base_url, self.config_project_id, force_refresh=True)
        if not remote:
            return False
        return self.update_theme(compose_theme(remote, self.theme_overrides, self.detected_property))

    async def _on_config_updated(self, event: PageEvent) -> None:
        self.fetcher.clear_cache()
        await self.refresh_config()

    def start_config_polling(self) -> None:
        if self.state is not WidgetState.MOUNTED or not self.api_base_url:
            return
        if self._poll_handle is None:
            self._poll_handle = self.page.set_interval(self.refresh_config, POLL_INTERVAL_SECONDS)
        if not self._listening:
            self.page.add_event_listener(CONFIG_UPDATED_EVENT, self._on_config_updated)
            self._listening = True

    def stop_config_polling(self) -> None:
        if self._poll_handle is not None:
            self.page.clear_interval(self._poll_handle)
            self._poll_handle = None
        if self._listening:
            self.page.remove_event_listener(CONFIG_UPDATED_EVENT, self._on_config_updated)
            self._listening = False

    def schedule_auto_open(self) -> None:
        delay_ms = resolve_theme(self.theme).get("autoOpenDelayMs")
        if self.registry.conversation.has_shown or not isinstance(delay_ms, (int, float)) or delay_ms <= 0:
            return
        self._auto_open_handle = self.page.set_timeout(self._auto_open, delay_ms / 1000)

    def _auto_open(self) -> None:
        self._auto_open_handle = None
        if self.state is WidgetState.MOUNTED and self.widget is not None:
            self.widget.open(auto=True)

    def destroy(self) -> None:
        if self.state is WidgetState.DESTROYED:
            return
        self.stop_config_polling()
        if self._auto_open_handle is not None:
            self.page.clear_timeout(self._auto_open_handle)
            self._auto_open_handle = None

        self.render_root.unmount()
        self.page.release_shadow(self.host)
        self.host.extract()
        if self.registry.get() is self:
            self.registry.clear()
        self.state = WidgetState.DESTROYED
        logger.info("Widget destroyed")


def _update_existing(instance, config: MountConfig) -> None:
    if config.project_id:
        instance.update_project_id(config.project_id)
    if config.theme:
        instance.update_theme(config.theme)


async def mount(
    page: HostPage,
    registry: WidgetRegistry,
    config: MountConfig,
    fetcher: Optional[ConfigFetcher] = None,
    http_client: Optional[httpx.AsyncClient] = None,
):
    """
    Mount the widget, or hand back the one already on the page

    Returns:
        The live WidgetInstance, or a NoopWidgetInstance when the DOM marker
        exists without a registered instance or mounting failed
    """
    existing = registry.get()
    if existing is not None:
        _update_existing(existing, config)
        return existing

    if page.query_selector(f'[{HOST_MARKER_ATTRIBUTE}="true"]') is not None:
        logger.warning("Widget host already on the page without a registered instance; skipping mount")
        return NoopWidgetInstance()

    host = None
    try:
        target = config.target or page.body or await page.wait_for_body()
        if target is None:
            raise RuntimeError("Document has no body to mount into")

        host = page.create_element("div", **{"id": HOST_ELEMENT_ID, HOST_MARKER_ATTRIBUTE: "true"})
        target.append(host)

        try:
            shadow_root = page.attach_shadow(host)
            container = shadow_root
        except ShadowDomUnsupported as e:
            logger.warning(f"Shadow DOM unavailable, using scoped host styles: {e}")
            shadow_root = None
            host["style"] = HOST_RESET_STYLE
            container = host

        style = page.create_element("style")
        style.string = WIDGET_CSS
        mount_node = page.create_element("div", **{"class": "chatbuddy-root"})
        container.append(style)
        container.append(mount_node)

        instance = WidgetInstance(
            page,
            registry,
            host,
            shadow_root,
            RenderRoot(mount_node),
            config,
            fetcher or ConfigFetcher(client=http_client, page=page),
            http_client=http_client,
        )
        instance.render()
        instance.state = WidgetState.MOUNTED
        registry.set(instance)
        instance.start_config_polling()
        instance.schedule_auto_open()
        logger.info(f"Widget mounted for project {config.project_id}")
        return instance
    except Exception as e:
        logger.error(f"Widget mount failed: {e}")
        if host is not None:
            page.release_shadow(host)
            host.extract()
        return NoopWidgetInstance()
