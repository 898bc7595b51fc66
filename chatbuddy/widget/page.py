"""
The host page a widget runs in.

A HostPage stands in for the browser globals the widget touches: the parsed
document, ``location``, page-level custom events, interval/timeout timers
and shadow-root attachment. Everything is driven from the running asyncio
loop.
"""
import asyncio
import inspect
import itertools
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

logger = logging.getLogger(__name__)

LOOPBACK_HOSTNAMES = ("localhost", "127.0.0.1", "::1", "")

Listener = Callable[["PageEvent"], Any]


class ShadowDomUnsupported(RuntimeError):
    """Raised by attach_shadow when the page cannot isolate a subtree"""


class PageEvent:
    def __init__(self, type: str, detail: Any = None):
        self.type = type
        self.detail = detail


class ShadowRoot:
    """An isolated subtree attached to a host element"""

    def __init__(self, host: Tag):
        self.host = host
        self.fragment = BeautifulSoup("", "html.parser")

    def append(self, node: Tag) -> Tag:
        self.fragment.append(node)
        return node

    @property
    def children(self) -> List[Tag]:
        return [child for child in self.fragment.children if isinstance(child, Tag)]

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.fragment.select_one(selector)

    def __str__(self) -> str:
        return str(self.fragment)


class HostPage:
    def __init__(
        self,
        html: str = "<html><head></head><body></body></html>",
        url: str = "http://localhost/",
        ready_state: str = "complete",
        shadow_dom_supported: bool = True,
    ):
        self.document = BeautifulSoup(html, "html.parser")
        self.url = url
        parsed = urlparse(url)
        self.protocol = f"{parsed.scheme}:"
        self.hostname = (parsed.hostname or "").lower()
        self.search = parsed.query
        self.ready_state = ready_state
        self.shadow_dom_supported = shadow_dom_supported
        self.current_script: Optional[Tag] = None
        self.shadow_roots: List[ShadowRoot] = []

        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._once: List[Listener] = []
        self._timers: Dict[int, asyncio.Task] = {}
        self._intervals: Set[int] = set()
        self._timer_ids = itertools.count(1)
        self._pending: Set[asyncio.Future] = set()

    # Location

    @property
    def is_loopback(self) -> bool:
        return self.hostname in LOOPBACK_HOSTNAMES

    @property
    def is_secure(self) -> bool:
        return self.protocol == "https:"

    def query_param(self, name: str) -> Optional[str]:
        values = parse_qs(self.search).get(name)
        return values[0] if values else None

    # Document

    @property
    def body(self) -> Optional[Tag]:
        return self.document.body

    def query_selector(self, selector: str) -> Optional[Tag]:
        return self.document.select_one(selector)

    def query_selector_all(self, selector: str) -> List[Tag]:
        return self.document.select(selector)

    def create_element(self, tag_name: str, **attrs: str) -> Tag:
        return self.document.new_tag(tag_name, attrs=attrs)

    def ensure_body(self) -> Tag:
        """Create <body> (as the DOM parser would once parsing reaches it)"""
        if self.document.body is None:
            html = self.document.html
            if html is None:
                html = self.document.new_tag("html")
                self.document.append(html)
            html.append(self.document.new_tag("body"))
        return self.document.body

    def attach_shadow(self, host: Tag) -> ShadowRoot:
        if not self.shadow_dom_supported:
            raise ShadowDomUnsupported("attachShadow is not supported on this page")
        if any(root.host is host for root in self.shadow_roots):
            raise ShadowDomUnsupported("Host element already has a shadow root")
        root = ShadowRoot(host)
        self.shadow_roots.append(root)
        return root

    def release_shadow(self, host: Tag) -> None:
        self.shadow_roots = [root for root in self.shadow_roots if root.host is not host]

    # Events

    def add_event_listener(self, type: str, listener: Listener, once: bool = False) -> None:
        if listener in self._listeners[type]:
            return
        self._listeners[type].append(listener)
        if once:
            self._once.append(listener)

    def remove_event_listener(self, type: str, listener: Listener) -> None:
        if listener in self._listeners[type]:
            self._listeners[type].remove(listener)
        if listener in self._once:
            self._once.remove(listener)

    def listener_count(self, type: str) -> int:
        return len(self._listeners[type])

    def dispatch_event(self, type: str, detail: Any = None) -> None:
        """Call every listener; coroutine listeners are scheduled on the loop"""
        event = PageEvent(type, detail)
        for listener in list(self._listeners[type]):
            if listener in self._once:
                self.remove_event_listener(type, listener)
            try:
                result = listener(event)
            except Exception as e:
                logger.error(f"Listener for {type} failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(result))

    def _track(self, future: asyncio.Future) -> None:
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def settle(self) -> None:
        """Wait for every scheduled listener coroutine to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Readiness

    async def wait_until_ready(self) -> None:
        """Resolve once DOMContentLoaded has fired"""
        if self.ready_state != "loading":
            return
        ready = asyncio.get_running_loop().create_future()

        def on_ready(event: PageEvent) -> None:
            if not ready.done():
                ready.set_result(None)

        self.add_event_listener("DOMContentLoaded", on_ready, once=True)
        await ready

    async def wait_for_body(self, timeout: float = 5.0, poll_seconds: float = 0.05) -> Optional[Tag]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.body is None and loop.time() < deadline:
            await asyncio.sleep(poll_seconds)
        return self.body

    def mark_ready(self) -> None:
        """Finish parsing: fire DOMContentLoaded then load"""
        self.ensure_body()
        self.ready_state = "interactive"
        self.dispatch_event("DOMContentLoaded")
        self.ready_state = "complete"
        self.dispatch_event("load")

    # Timers

    def set_interval(self, callback: Callable[[], Awaitable[Any]], seconds: float) -> int:
        handle = next(self._timer_ids)

        async def run() -> None:
            while True:
                await asyncio.sleep(seconds)
                try:
                    await callback()
                except Exception as e:
                    logger.error(f"Interval callback failed: {e}")

        self._timers[handle] = asyncio.get_running_loop().create_task(run())
        self._intervals.add(handle)
        return handle

    def set_timeout(self, callback: Callable[[], Any], seconds: float) -> int:
        handle = next(self._timer_ids)

        async def run() -> None:
            await asyncio.sleep(seconds)
            self._timers.pop(handle, None)
            result = callback()
            if inspect.isawaitable(result):
                await result

        self._timers[handle] = asyncio.get_running_loop().create_task(run())
        return handle

    def clear_interval(self, handle: Optional[int]) -> None:
        task = self._timers.pop(handle, None)
        self._intervals.discard(handle)
        if task is not None and not task.done():
            task.cancel()

    clear_timeout = clear_interval

    @property
    def active_intervals(self) -> int:
        return sum(1 for handle in self._intervals if not self._timers[handle].done())

    def close(self) -> None:
        """Cancel every timer (page unload)"""
        for handle in list(self._timers):
            self.clear_interval(handle)
