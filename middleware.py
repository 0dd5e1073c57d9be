import logging
import threading
import time
from typing import Dict, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

import settings

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "style-src 'self' 'unsafe-inline' https://unpkg.com https://cdnjs.cloudflare.com",
    "script-src 'self' https://unpkg.com https://cdnjs.cloudflare.com",
    "img-src 'self' data: https: blob:",
    "connect-src 'self' https://router.project-osrm.org https://*.googleapis.com https://*.firebaseio.com",
    "font-src 'self' data:",
    "frame-src https://*.firebaseapp.com",
])


def client_key(request: Request) -> str:
    # Proxy addresses are resolved by uvicorn --proxy-headers, never from raw headers
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window request counter per client address."""

    def __init__(self, app, window_seconds: int = None, max_requests: int = None):
        super().__init__(app)
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.max_requests = max_requests or settings.RATE_LIMIT_MAX
        # key -> (window start, count)
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = 0.0
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        expired = [key for key, (start, _) in self._hits.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._hits[key]
        self._last_sweep = now

    def _hit(self, key: str, now: float) -> Tuple[int, float]:
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            start, count = self._hits.get(key, (now, 0))
            if now - start >= self.window_seconds:
                start, count = now, 0
            count += 1
            self._hits[key] = (start, count)
        return count, start + self.window_seconds

    async def dispatch(self, request: Request, call_next):
        now = time.time()
        count, reset_at = self._hit(client_key(request), now)
        remaining = max(self.max_requests - count, 0)
        headers = {
            "RateLimit-Limit": str(self.max_requests),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(max(int(reset_at - now), 0)),
        }

        if count > self.max_requests:
            logger.warning("Rate limit exceeded for %s on %s", client_key(request), request.url.path)
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": "Too many requests, please try again later"},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["Referrer-Policy"] = "no-referrer"
        if settings.IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
        return response
