"""HTTP client the dashboard uses against the Chat Buddy API"""
import logging
from typing import Any, Dict, Optional

import httpx

from chatbuddy.widget.controller import CONFIG_UPDATED_EVENT
from chatbuddy.widget.page import HostPage

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0

STATUS_MESSAGES = {
    400: "Some of the details are invalid. Please check and try again.",
    401: "Your session has expired or the API key is missing. Please sign in again.",
    403: "The API key was rejected. Check WIDGET_CONFIG_API_KEY.",
    404: "The requested item was not found.",
    409: "That item already exists.",
    413: "The file is too large.",
    429: "Too many requests. Please wait a few minutes and try again.",
}
SERVER_ERROR_MESSAGE = "The server ran into a problem. Please try again later."
NETWORK_ERROR_MESSAGE = "Could not reach the server. Check your connection and the API URL."


class DashboardError(Exception):
    """A failed dashboard call, carrying a message fit to show the user"""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        detail = data.get("error") or data.get("message") or data.get("detail")
        return detail if isinstance(detail, str) else None
    return None


def error_for_response(response: httpx.Response) -> DashboardError:
    detail = _error_detail(response)
    status = response.status_code
    if status >= 500:
        message = SERVER_ERROR_MESSAGE
    elif status == 400 and detail:
        # Validation messages are written for people
        message = detail
    else:
        message = STATUS_MESSAGES.get(status, detail or f"Request failed ({status})")
    return DashboardError(message, status_code=status, detail=detail)


class DashboardClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        if self.base_url.endswith("/api"):
            self.base_url = self.base_url[: -len("/api")]
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
        self.token: Optional[str] = None
        self.username: Optional[str] = None

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {}
        if authenticated and self.api_key:
            headers["X-API-Key"] = self.api_key
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, authenticated: bool = False, **kwargs) -> Any:
        headers = {**self._headers(authenticated), **kwargs.pop("headers", {})}
        try:
            response = await self.client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise DashboardError(NETWORK_ERROR_MESSAGE) from e

        if response.status_code >= 400:
            error = error_for_response(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {error.detail}")
            raise error
        if not response.content:
            return None
        return response.json()

    # Widget config

    async def get_widget_config(self, project_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/widget-config/{project_id}")

    async def save_widget_config(
        self,
        project_id: str,
        config: Dict[str, Any],
        page: Optional[HostPage] = None,
    ) -> Dict[str, Any]:
        """
        Store the config, then tell any widget on ``page`` to refresh now
        instead of waiting for its next poll
        """
        saved = await self._request("POST", f"/api/widget-config/{project_id}", authenticated=True, json=config)
        if page is not None:
            page.dispatch_event(CONFIG_UPDATED_EVENT, {"projectId": project_id})
        return saved

    async def api_key_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/widget-config/api-key-status")

    # Leads and sessions

    async def list_leads(self, **filters: Any) -> Dict[str, Any]:
        """Filters: microsite, search, startDate, endDate, limit, skip"""
        params = {key: value for key, value in filters.items() if value is not None}
        return await self._request("GET", "/api/leads", params=params)

    async def list_chat_sessions(self, **filters: Any) -> Dict[str, Any]:
        params = {key: value for key, value in filters.items() if value is not None}
        return await self._request("GET", "/api/chat-sessions", params=params)

    async def event_summary(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/events/summary")

    async def upload_profile_picture(self, filename: str, content: bytes, content_type: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/upload/profile-picture",
            authenticated=True,
            files={"image": (filename, content, content_type)},
        )

    # Dashboard users

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        data = await self._request("POST", "/api/users/auth", json={"username": username, "password": password})
        self.token = data.get("token")
        self.username = data.get("username")
        return data

    async def verify(self) -> bool:
        if not self.token or not self.username:
            return False
        try:
            data = await self._request("POST", "/api/users/verify", json={"token": self.token, "username": self.username})
        except DashboardError as e:
            if e.status_code in (400, 401):
                return False
            raise
        return bool(data and data.get("valid"))

    async def logout(self) -> None:
        if self.token:
            await self._request("POST", "/api/users/logout", json={"token": self.token})
        self.token = None
        self.username = None

    async def aclose(self) -> None:
        await self.client.aclose()
