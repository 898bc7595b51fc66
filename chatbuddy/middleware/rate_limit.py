"""In-memory sliding-window rate limiting"""
from collections import defaultdict, deque
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable, Deque, Dict, Optional, Tuple
from chatbuddy.config import get_settings
import threading
import time
import logging

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 15 * 60

# name -> (max requests per window, message)
LIMITS: Dict[str, Tuple[int, str]] = {
    "general": (100, "Too many requests from this IP, please try again later."),
    "leads": (50, "Too many lead submissions, please try again later."),
    "config": (10, "Too many config updates, please try again later."),
    "auth": (10, "Too many login attempts, please try again later."),
}

LOOPBACK_HOSTS = {"127.0.0.1", "::1", "localhost", "testclient"}


class SlidingWindowLimiter:
    """Counts hits per key over the trailing window"""

    def __init__(self, max_requests: int, window_seconds: float = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Record one request for ``key``

        Returns:
            (allowed, seconds until the oldest hit leaves the window)
        """
        now = self.clock()
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = int(hits[0] + self.window_seconds - now) + 1
                return False, retry_after
            hits.append(now)
            return True, 0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def create_limiters() -> Dict[str, SlidingWindowLimiter]:
    return {name: SlidingWindowLimiter(limit) for name, (limit, _) in LIMITS.items()}


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def is_exempt(request: Request) -> bool:
    """Loopback clients are not limited outside production"""
    if get_settings().is_production:
        return False
    return client_ip(request) in LOOPBACK_HOSTS


def _limiter(request: Request, name: str) -> Optional[SlidingWindowLimiter]:
    limiters = getattr(request.app.state, "limiters", None)
    return limiters.get(name) if limiters else None


def rate_limit(name: str):
    """FastAPI dependency enforcing the named limit"""

    async def dependency(request: Request) -> None:
        limiter = _limiter(request, name)
        if limiter is None or is_exempt(request):
            return
        allowed, retry_after = limiter.hit(client_ip(request))
        if not allowed:
            logger.warning(f"Rate limit '{name}' exceeded for {client_ip(request)}")
            raise HTTPException(
                status_code=429,
                detail=LIMITS[name][1],
                headers={"Retry-After": str(retry_after)},
            )

    return dependency


class RateLimitMiddleware(BaseHTTPMiddleware):
    """General per-IP limit on /api, production only; widget config reads are exempt"""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if (
            not get_settings().is_production
            or not path.startswith("/api")
            or (request.method == "GET" and path.startswith("/api/widget-config"))
            or request.method == "OPTIONS"
        ):
            return await call_next(request)

        limiter = _limiter(request, "general")
        if limiter is not None:
            allowed, retry_after = limiter.hit(client_ip(request))
            if not allowed:
                return JSONResponse(
                    status_code=429,
                    content={"error": LIMITS["general"][1]},
                    headers={"Retry-After": str(retry_after)},
                )
        return await call_next(request)
