"""
Retry helper for transient connection errors against the hosted database.
"""
import time
import logging
from typing import Callable, Any

logger = logging.getLogger(__name__)

TRANSIENT_MARKERS = ("connection reset", "errno 104", "server disconnected", "connection refused")


def _is_transient(error: Exception) -> bool:
    if isinstance(error, (ConnectionResetError, ConnectionError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def retry_query(query_func: Callable[[], Any], max_retries: int = 3, base_delay: float = 0.5) -> Any:
    """
    Execute a query with exponential backoff on transient errors.

    Usage:
        result = retry_query(
            lambda: client.table("leads").select("*").execute()
        )

    Args:
        query_func: A callable that executes the query
        max_retries: Maximum number of retry attempts
        base_delay: First backoff delay in seconds (doubles, capped at 4s)

    Returns:
        The query result
    """
    for attempt in range(max_retries + 1):
        try:
            return query_func()
        except Exception as e:
            if not _is_transient(e) or attempt >= max_retries:
                raise
            delay = min(base_delay * (2 ** attempt), 4.0)
            logger.warning(
                f"Database connection error, retry {attempt + 1}/{max_retries}. "
                f"Waiting {delay}s..."
            )
            time.sleep(delay)
