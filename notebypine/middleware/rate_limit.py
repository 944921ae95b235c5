"""
In-memory rate limiting.

RateLimitMiddleware guards the admin API: login attempts and write requests
are counted per client IP in a sliding window. ToolRateLimiter guards MCP
tool calls per client id in fixed windows.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Rule name -> (max_requests, window_seconds)
AUTH_LIMIT: Tuple[int, int] = (5, 60)     # 5 login attempts per minute
WRITE_LIMIT: Tuple[int, int] = (60, 60)   # 60 writes per minute

AUTH_PATH = "/api/v1/auth/login"
API_PREFIX = "/api/v1/"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window rate limiter for login and write endpoints.

    Tracks request timestamps per (client_ip, rule) in a dict.
    Stale entries are cleaned up periodically.

    Attributes:
        _counters: Dict mapping (ip, rule) to list of request timestamps.
    """

    def __init__(self, app, auth_limit: Tuple[int, int] = AUTH_LIMIT,
                 write_limit: Tuple[int, int] = WRITE_LIMIT):
        super().__init__(app)
        self._limits: Dict[str, Tuple[int, int]] = {"auth": auth_limit, "write": write_limit}
        self._counters: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._last_cleanup = time.time()
        logger.info("RateLimitMiddleware active for login and write endpoints")

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request, respecting X-Forwarded-For."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def _match_rule(self, request: Request) -> Optional[str]:
        if request.method not in WRITE_METHODS:
            return None
        path = request.url.path
        if path.startswith(AUTH_PATH):
            return "auth"
        if path.startswith(API_PREFIX):
            return "write"
        return None

    def _cleanup_stale(self) -> None:
        """Remove expired timestamps older than the largest window."""
        now = time.time()
        # Only clean up every 60 seconds to avoid overhead
        if now - self._last_cleanup < 60:
            return
        self._last_cleanup = now

        max_window = max(w for _, w in self._limits.values())
        cutoff = now - max_window
        stale_keys = []
        for key, timestamps in self._counters.items():
            self._counters[key] = [t for t in timestamps if t > cutoff]
            if not self._counters[key]:
                stale_keys.append(key)
        for key in stale_keys:
            del self._counters[key]

    async def dispatch(self, request: Request, call_next):
        """Check rate limits before processing.

        Returns:
            Response from next handler, or 429 if rate limited.
        """
        rule = self._match_rule(request)
        if rule is None:
            return await call_next(request)

        max_requests, window_seconds = self._limits[rule]
        client_ip = self._get_client_ip(request)
        key = (client_ip, rule)
        now = time.time()

        self._cleanup_stale()

        # Remove timestamps outside the window
        self._counters[key] = [
            t for t in self._counters[key] if t > now - window_seconds
        ]

        if len(self._counters[key]) >= max_requests:
            retry_after = max(int(window_seconds - (now - self._counters[key][0])), 1)
            logger.warning(
                f"Rate limit hit: {client_ip} on {rule} "
                f"({len(self._counters[key])}/{max_requests} in {window_seconds}s)"
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": f"Too many requests. Try again in {retry_after} seconds.",
                    "code": "RATE_LIMIT_EXCEEDED",
                },
                headers={"Retry-After": str(retry_after)},
            )

        self._counters[key].append(now)
        return await call_next(request)


class ToolRateLimiter:
    """Fixed-window call counter per MCP client id.

    The first call from a client opens a window; calls beyond the limit are
    refused until the window expires.
    """

    def __init__(self, max_calls: int = 100, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        # client id -> (count, window reset time)
        self._windows: Dict[str, Tuple[int, float]] = {}

    def check(self, client_id: str) -> bool:
        """Count one call; return False if the client is over its limit."""
        now = self._clock()
        window = self._windows.get(client_id)
        if window is None or now >= window[1]:
            self._windows[client_id] = (1, now + self.window_seconds)
            return True
        count, reset_at = window
        if count >= self.max_calls:
            return False
        self._windows[client_id] = (count + 1, reset_at)
        return True

    def reset(self) -> None:
        self._windows.clear()
