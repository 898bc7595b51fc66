"""Fire-and-forget analytics events from the widget"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from chatbuddy.widget.page import HostPage
from chatbuddy.widget.urls import is_loopback_url

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    ``dispatch(type, extra)`` posts ``{type, projectId, microsite, payload}``
    to ``/api/events`` without waiting for the response

    Nothing is sent when the API is loopback and the page is not. Send
    failures never reach the caller.
    """

    def __init__(
        self,
        api_base_url: Optional[str],
        project_id: str,
        microsite: str,
        page: HostPage,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_base_url = api_base_url
        self.project_id = project_id
        self.microsite = microsite
        self.page = page
        self.client = client
        self._pending: Set[asyncio.Task] = set()

    @property
    def suppressed(self) -> bool:
        if not self.api_base_url:
            return True
        return is_loopback_url(self.api_base_url) and not self.page.is_loopback

    def dispatch(self, type: str, extra: Optional[Dict[str, Any]] = None) -> Optional[asyncio.Task]:
        if self.suppressed:
            return None

        body = {
            "type": type,
            "projectId": self.project_id,
            "microsite": self.microsite,
            "payload": {**(extra or {}), "at": datetime.now(timezone.utc).isoformat()},
        }
        try:
            task = asyncio.get_running_loop().create_task(self._send(body))
        except RuntimeError as e:
            self._debug(f"Event {type} not sent: {e}")
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    __call__ = dispatch

    async def _send(self, body: Dict[str, Any]) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient()
        try:
            await self.client.post(f"{self.api_base_url}/api/events", json=body)
        except Exception as e:
            self._debug(f"Event dispatch failed (non-critical): {e}")

    def _debug(self, message: str) -> None:
        if self.page.is_loopback:
            logger.debug(message)

    async def flush(self) -> None:
        """Wait for in-flight sends"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
