"""Widget theme fetching with a short-lived cache"""
import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from chatbuddy.services.theme import normalize_theme_fields
from chatbuddy.widget.page import HostPage

logger = logging.getLogger(__name__)

CACHE_WINDOW_SECONDS = 1.0
FETCH_TIMEOUT_SECONDS = 5.0

NO_CACHE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


@dataclass
class CacheEntry:
    theme: Dict[str, Any]
    fetched_at: float


class ConfigFetcher:
    """
    Fetches ``/api/widget-config/{projectId}`` and normalizes it to camelCase

    Failures of any kind (network, timeout, non-2xx, bad JSON) come back as
    ``{}`` and are never cached.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        page: Optional[HostPage] = None,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        cache_window: float = CACHE_WINDOW_SECONDS,
    ):
        self.client = client
        self.page = page
        self.clock = clock
        self.timeout = timeout
        self.cache_window = cache_window
        self._cache: Dict[str, CacheEntry] = {}
        self.requests_made = 0

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Theme cache cleared")

    def _client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient()
        return self.client

    def _cache_busted(self) -> bool:
        return self.page is not None and self.page.query_param("widget_cache_bust") == "true"

    async def fetch_theme(self, base_url: Optional[str], project_id: str, force_refresh: bool = False) -> Dict[str, Any]:
        if not base_url or not project_id:
            return {}

        key = f"{base_url}:{project_id}"
        if force_refresh or self._cache_busted():
            self._cache.pop(key, None)
        else:
            entry = self._cache.get(key)
            if entry and self.clock() - entry.fetched_at < self.cache_window:
                return copy.deepcopy(entry.theme)

        timestamp = int(time.time() * 1000)
        self.requests_made += 1
        try:
            response = await self._client().get(
                f"{base_url}/api/widget-config/{quote(project_id, safe='')}",
                params={"t": timestamp, "_": timestamp},
                headers=NO_CACHE_HEADERS,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(f"Widget theme fetch timed out for {project_id}, using defaults")
            return {}
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Widget theme fetch failed for {project_id}, using defaults: {e}")
            return {}

        if not isinstance(data, dict) or not data:
            return {}

        theme = normalize_theme_fields(data)
        self._cache[key] = CacheEntry(theme=theme, fetched_at=self.clock())
        return copy.deepcopy(theme)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
