"""Request monitoring"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Dict
import threading
import time
import logging

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class RequestStats:
    """Process-wide counters exposed by /api/monitoring/stats"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started_at = time.time()
        self.total = 0
        self.errors = 0
        self.slow = 0
        self.total_duration = 0.0
        self.by_status: Dict[str, int] = {}

    def record(self, status_code: int, duration: float) -> None:
        with self._lock:
            self.total += 1
            self.total_duration += duration
            if status_code >= 500:
                self.errors += 1
            if duration >= SLOW_REQUEST_SECONDS:
                self.slow += 1
            key = str(status_code)
            self.by_status[key] = self.by_status.get(key, 0) + 1

    def snapshot(self) -> Dict:
        with self._lock:
            average = self.total_duration / self.total if self.total else 0.0
            return {
                "uptimeSeconds": int(time.time() - self.started_at),
                "requests": self.total,
                "errors": self.errors,
                "slowRequests": self.slow,
                "averageResponseMs": round(average * 1000, 2),
                "byStatus": dict(self.by_status),
            }


class MonitoringMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, stats: RequestStats):
        super().__init__(app)
        self.stats = stats

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        self.stats.record(response.status_code, duration)
        if duration >= SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {duration:.2f}s")
        return response
