"""In-process fixed-window counter store bounded by LRU eviction."""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from admission.app.core.logging import get_logger
from admission.app.stores.ban import BanTracker, DisabledBanTracker, LocalBanTracker
from admission.app.stores.base import ClientRecord, RouteInfo, Store

logger = get_logger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class _WindowEntry:
    """Counter for one key and the absolute time its window ends."""
    current: int
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class LocalStore(Store):
    """Fixed-window counter store kept in process memory.

    Suitable for single-instance deployments. Each child store (one per
    route scope) owns a separate map.

    Memory optimization:
    - Uses OrderedDict for LRU cache behavior
    - Limits max entries to prevent unbounded memory growth
    - Evicting an active key loses its count, so a burst right after
      eviction is undercounted
    """

    name = "local"
    DEFAULT_MAX_ENTRIES = 5000

    def __init__(
        self,
        time_window_ms: int,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        continue_exceeding: bool = False,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        """Initialize local store.

        Args:
            time_window_ms: Window length in milliseconds
            max_entries: Maximum number of keys to keep (LRU eviction)
            continue_exceeding: Restart the window on every exceeding request
            clock: Time source returning milliseconds
        """
        self.time_window_ms = time_window_ms
        self.continue_exceeding = continue_exceeding
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _WindowEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _enforce_lru_limit(self) -> None:
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            logger.debug("Evicted least recently used key", extra={"store": self.name})

    async def increment(self, key: str, max_requests: Optional[int] = None) -> ClientRecord:
        with self._lock:
            now = self._clock()

            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                entry = _WindowEntry(current=0, expires_at=now + self.time_window_ms)
                self._entries[key] = entry
            self._entries.move_to_end(key)

            entry.current += 1
            if (
                self.continue_exceeding
                and max_requests is not None
                and entry.current > max_requests
            ):
                entry.expires_at = now + self.time_window_ms

            record = ClientRecord(
                current=entry.current,
                ttl=max(0, int(entry.expires_at - now)),
            )
            self._enforce_lru_limit()
            return record

    def child(self, route_info: RouteInfo) -> "LocalStore":
        policy = route_info.policy
        return LocalStore(
            time_window_ms=policy.time_window_ms,
            max_entries=self._max_entries,
            continue_exceeding=policy.continue_exceeding,
            clock=self._clock,
        )

    def create_ban_tracker(self, ban_threshold: Optional[int]) -> BanTracker:
        if ban_threshold is None:
            return DisabledBanTracker()
        return LocalBanTracker(ban_threshold, max_entries=self._max_entries)
