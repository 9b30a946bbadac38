import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request

from ..auth.deps import get_current_user_id

logger = logging.getLogger(__name__)


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int


class InMemoryRateLimiter:
    """Sliding-window counter per key. Process-local, so each worker limits on its own."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._clock = clock

    def check(self, key: str, limit: int, window_seconds: int) -> RateDecision:
        now = self._clock()
        window_start = now - window_seconds
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= window_start:
                hits.popleft()
            if len(hits) >= limit:
                oldest = hits[0]
                return RateDecision(allowed=False, retry_after_seconds=max(1, int(oldest + window_seconds - now)))
            hits.append(now)
            return RateDecision(allowed=True, retry_after_seconds=0)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def rate_limit_key(action: str, user_id: str) -> str:
    return f"{action}:user:{user_id}"


def rate_limit_dependency(action: str, limit: int, window_seconds: int):
    """Route dependency that throttles `action` per authenticated user."""

    def _dep(request: Request, user_id: str = Depends(get_current_user_id)) -> None:
        limiter: InMemoryRateLimiter = request.app.state.services.limiter
        decision = limiter.check(rate_limit_key(action, user_id), limit=limit, window_seconds=window_seconds)
        if not decision.allowed:
            logger.info("[rate-limit] action=%s user_id=%s retry_after=%s", action, user_id, decision.retry_after_seconds)
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {decision.retry_after_seconds}s",
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )

    return Depends(_dep)
