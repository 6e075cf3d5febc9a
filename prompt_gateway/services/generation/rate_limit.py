"""Per-user sliding-window rate limiting backed by the usage log."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ...errors import ErrorKind, GenerationError
from .store import GenerationStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 30
DEFAULT_WINDOW = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRateLimiter:
    """Reject a user who already logged ``limit`` generations inside the window.

    The count-then-act check is not atomic: concurrent requests from the
    same user may overshoot the limit by a few calls.
    """

    def __init__(
        self,
        store: GenerationStore,
        *,
        limit: int = DEFAULT_LIMIT,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.limit = limit
        self.window = window
        self._clock = clock

    def _describe_window(self) -> str:
        minutes = int(self.window.total_seconds() // 60)
        if minutes and self.window.total_seconds() % 60 == 0:
            return f"{minutes} minutes"
        return f"{int(self.window.total_seconds())} seconds"

    async def check(self, user_id: str) -> None:
        since = self._clock() - self.window
        try:
            count = await asyncio.to_thread(self._store.count_usage_since, user_id, since)
        except Exception:
            # A failed count must not block generation.
            logger.exception("Rate limit check failed", extra={"user_id": user_id})
            return

        if count >= self.limit:
            logger.info(
                "User rate limit reached",
                extra={"user_id": user_id, "count": count, "limit": self.limit},
            )
            raise GenerationError(
                ErrorKind.RATE_LIMITED,
                f"You have reached the generation limit of {self.limit} requests per "
                f"{self._describe_window()}. Please try again later.",
                details={"limit": self.limit, "window_seconds": int(self.window.total_seconds())},
            )


__all__ = ["DEFAULT_LIMIT", "DEFAULT_WINDOW", "UserRateLimiter"]
