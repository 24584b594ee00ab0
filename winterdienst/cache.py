"""Expiring in-memory cache for reference data and the timeout/retry fetch helper.

One :class:`DataCache` is created when the application starts and handed to
every component that reads reference data. Entries expire lazily: a read
after ``timestamp + ttl`` is a miss and removes the entry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

__all__ = [
    "CACHE_KEYS",
    "DataCache",
    "FetchTimeoutError",
    "MISSING",
    "fetch_with_timeout_and_retry",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING: Any = object()

DEFAULT_TTL = 30.0


class FetchTimeoutError(TimeoutError):
    """Raised when a single fetch attempt did not finish in time."""


@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class DataCache:
    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str, default: Any = MISSING) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.expired(self._clock()):
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: float = DEFAULT_TTL) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock(), ttl=ttl)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: str) -> None:
        for key in [key for key in self._entries if pattern in key]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class _CacheKeys:
    CITIES = "cities"
    CUSTOMERS = "billing_customers"
    CUSTOMERS_ACTIVE = "billing_customers_active"
    PRICING = "billing_pricing"
    TEMPLATES = "billing_templates"
    INVOICES = "billing_invoices"

    @staticmethod
    def user_role(user_id: int) -> str:
        return f"user_role_{user_id}"

    @staticmethod
    def areas(city_id: int) -> str:
        return f"areas_{city_id}"

    @staticmethod
    def streets(city_id: int) -> str:
        return f"streets_{city_id}"


CACHE_KEYS = _CacheKeys()


def _discard_outcome(task: "asyncio.Future[Any]") -> None:
    # abandoned attempts may still finish; their result is dropped
    if not task.cancelled():
        task.exception()


async def fetch_with_timeout_and_retry(
    fetch: Callable[[], Awaitable[T]],
    timeout: float = 3.0,
    attempts: int = 2,
    backoff: float = 0.2,
) -> T:
    """Run ``fetch`` racing a timer, retrying up to ``attempts`` times.

    A timed-out attempt is abandoned but not cancelled. Between attempts the
    helper sleeps ``backoff`` seconds. The error of the last attempt is
    raised when every attempt failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    attempt = 1
    while True:
        task = asyncio.ensure_future(fetch())
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_discard_outcome)
            last_error: BaseException = FetchTimeoutError(f"Zeitüberschreitung nach {timeout:.2f}s")
        except Exception as exc:
            last_error = exc
        logger.warning("Fetch attempt %s/%s failed: %s", attempt, attempts, last_error)
        if attempt >= attempts:
            raise last_error
        attempt += 1
        await asyncio.sleep(backoff)
