import logging
import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from fastapi import HTTPException, Request

from app.vars import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS

logger = logging.getLogger("uvicorn.error")

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class SlidingWindowRateLimiter:
    """Counts requests per client key over a rolling time window."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        """Record a request for key; False when the quota for the window is used up."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            self._prune(cutoff)
            return True

    def retry_after(self, key: str) -> float:
        """Seconds until key may be counted again; 0 while it is under quota."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            live = [t for t in self._hits.get(key, ()) if t > cutoff]
            if len(live) < self.max_requests:
                return 0.0
            return live[len(live) - self.max_requests] + self.window_seconds - now

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def _prune(self, cutoff: float) -> None:
        # Drop idle clients so the table does not grow without bound
        stale = [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for k in stale:
            del self._hits[k]


rate_limiter = SlidingWindowRateLimiter(
    max_requests=RATE_LIMIT_MAX_REQUESTS, window_seconds=RATE_LIMIT_WINDOW_SECONDS
)


def client_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency rejecting clients that exceeded their quota with a 429."""
    client_ip = client_identity(request)
    if not rate_limiter.hit(client_ip):
        logger.warning(f"[RateLimit] Quota exceeded for {client_ip}")
        retry_after = math.ceil(rate_limiter.retry_after(client_ip))
        raise HTTPException(
            status_code=429,
            detail=RATE_LIMIT_MESSAGE,
            headers={"Retry-After": str(max(retry_after, 1))},
        )
