"""Input sanitizers for public lead/event payloads"""
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

MAX_STRING_LENGTH = 2000
MAX_CONVERSATION_ENTRIES = 200
MAX_DEPTH = 4

_MICROSITE = re.compile(r"^[a-z0-9.\-:]{1,255}$")


def sanitize_microsite(value: Any) -> Optional[str]:
    """Reduce a microsite to a bare host[:port]; None when unusable"""
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    if not text:
        return None
    if "://" in text:
        text = urlparse(text).netloc
    text = text.split("/")[0]
    return text if _MICROSITE.match(text) else None


def _clean(value: Any, depth: int) -> Any:
    if depth > MAX_DEPTH:
        return None
    if isinstance(value, str):
        return value[:MAX_STRING_LENGTH]
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            key = str(key)
            if key.startswith("$") or key.startswith("__"):
                continue
            cleaned[key[:100]] = _clean(item, depth + 1)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [_clean(item, depth + 1) for item in list(value)[:MAX_CONVERSATION_ENTRIES]]
    return str(value)[:MAX_STRING_LENGTH]


def sanitize_metadata(value: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(value, dict):
        return None
    return _clean(value, 0)


def sanitize_conversation(value: Any) -> List[Any]:
    if not isinstance(value, list):
        return []
    return [_clean(entry, 1) for entry in value[:MAX_CONVERSATION_ENTRIES]]
