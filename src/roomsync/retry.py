"""Retry policies: server rate limiting and failed-sync backoff."""

from dataclasses import dataclass
from typing import Any, Optional

from .constants import DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC, DEFAULT_RETRY_AFTER_MS


@dataclass
class RateLimitPolicy:
    """
    How the transport reacts to HTTP 429.

    ``max_retries=None`` retries for as long as the server keeps limiting.
    """

    default_wait_ms: int = DEFAULT_RETRY_AFTER_MS
    max_retries: Optional[int] = None

    def retry_after_ms(self, body: Any) -> int:
        """
        Extract the server-requested wait from a 429 body.

        Looks at the top-level ``retry_after_ms`` first, then ``error.retry_after_ms``,
        and falls back to ``default_wait_ms``.
        """
        if isinstance(body, dict):
            value = body.get("retry_after_ms")
            if value is None and isinstance(body.get("error"), dict):
                value = body["error"].get("retry_after_ms")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return int(value)
        return self.default_wait_ms

    def should_retry(self, retries_so_far: int) -> bool:
        return self.max_retries is None or retries_so_far < self.max_retries


class SyncBackoff:
    """Doubling delay between failed syncs, reset after a success."""

    def __init__(
        self, initial: float, ceiling: float = DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC
    ):
        self.initial = initial
        self.ceiling = ceiling
        self.current = initial

    def next_delay(self) -> float:
        """Return the delay to sleep now and double the one after, up to the ceiling."""
        delay = self.current
        self.current = min(self.current * 2, self.ceiling)
        return delay

    def reset(self) -> None:
        self.current = self.initial
