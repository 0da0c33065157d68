import logging
import time
from collections import deque
from typing import Deque, Dict

from fastapi import HTTPException, Request

log = logging.getLogger("swapstudio.rate_limit")

class RateLimiter:
    """
    Sliding-window limit per client IP, used as a route dependency:

        @app.post("/submit", dependencies=[Depends(RateLimiter(5, 15 * 60))])

    State is in-process only.
    """

    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}

    def __call__(self, request: Request):
        ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        self._prune(now)
        hits = self._hits.get(ip, ())

        if len(hits) >= self.max_requests:
            log.warning("Rate limit hit ip=%s path=%s", ip, request.url.path)
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please wait a moment before trying again.",
            )
        self._hits.setdefault(ip, deque()).append(now)

    def _prune(self, now: float):
        cutoff = now - self.window_seconds
        for ip in list(self._hits):
            hits = self._hits[ip]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[ip]

    def tracked(self) -> int:
        return len(self._hits)

    def reset(self):
        self._hits.clear()
