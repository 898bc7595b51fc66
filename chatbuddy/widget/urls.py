"""API base URL resolution for the embedded widget"""
import logging
import re
from typing import Optional

from chatbuddy.widget.page import HostPage

logger = logging.getLogger(__name__)

LOCAL_DEV_API_BASE_URL = "http://localhost:4000"
LOOPBACK_MARKERS = ("localhost", "127.0.0.1")

_TRAILING_API = re.compile(r"/api/?$")


def is_loopback_url(url: Optional[str]) -> bool:
    return bool(url) and any(marker in url for marker in LOOPBACK_MARKERS)


def normalize_api_base_url(url: str) -> str:
    """Strip a trailing ``/api`` (the clients append it) and trailing slashes"""
    url = _TRAILING_API.sub("", url.strip())
    return url.rstrip("/")


def resolve_api_base_url(candidate: Optional[str], page: HostPage) -> Optional[str]:
    """
    Pick the API origin the widget may talk to from this page

    A loopback API is dropped on a non-loopback page, and a plain-HTTP API is
    dropped on an HTTPS page; neither request could succeed. Without a
    candidate, a plain-HTTP loopback page falls back to the local dev API.
    Returns None when no usable origin remains.
    """
    url = (candidate or "").strip() or None

    if url is None:
        if page.is_loopback and page.protocol == "http:":
            logger.info(f"Using local development API {LOCAL_DEV_API_BASE_URL}")
            url = LOCAL_DEV_API_BASE_URL
        else:
            logger.error("No API base URL configured; set data-api-base-url on the widget script")
            return None

    if is_loopback_url(url) and not page.is_loopback:
        logger.error(f"Ignoring loopback API {url} on non-loopback page {page.hostname}")
        return None

    if page.is_secure and url.lower().startswith("http://"):
        logger.error(f"Ignoring plain-HTTP API {url} on HTTPS page")
        return None

    return normalize_api_base_url(url)


def config_project_id(page: HostPage, api_base_url: Optional[str]) -> str:
    """Design config key: ``local`` for local development, ``default`` otherwise"""
    if page.is_loopback or (api_base_url and "localhost" in api_base_url):
        return "local"
    return "default"
