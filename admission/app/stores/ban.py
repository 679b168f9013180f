"""Ban escalation for keys that keep exceeding their limit.

Each key moves through ``Clean -> Exceeding(n) -> Banned``. Every denied
request records one exceedance; once the count passes the threshold the key
is banned for good. Nothing in this module ever lifts a ban; a local
tracker can only forget a key through LRU eviction.
"""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import redis

from admission.app.core.logging import get_logger
from admission.app.exceptions import StoreError

logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 5000


class BanTracker(ABC):
    """Abstract base class for per-scope ban state."""

    @abstractmethod
    async def record_exceed(self, key: str) -> bool:
        """Record one exceedance for ``key``.

        Returns:
            True if the key is banned once this exceedance is counted.
        """
        pass

    @abstractmethod
    async def is_banned(self, key: str) -> bool:
        """Check whether ``key`` is banned."""
        pass


class DisabledBanTracker(BanTracker):
    """Tracker used when banning is not configured."""

    async def record_exceed(self, key: str) -> bool:
        return False

    async def is_banned(self, key: str) -> bool:
        return False


@dataclass
class _BanState:
    exceed_count: int = 0
    banned: bool = False


class LocalBanTracker(BanTracker):
    """In-process ban tracker bounded by LRU eviction.

    Suitable for single-instance deployments, mirrors LocalStore.
    """

    def __init__(self, ban_threshold: int, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.ban_threshold = ban_threshold
        self._max_entries = max_entries
        self._states: OrderedDict[str, _BanState] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._states)

    async def record_exceed(self, key: str) -> bool:
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = _BanState()
                self._states[key] = state
                while len(self._states) > self._max_entries:
                    self._states.popitem(last=False)
            else:
                self._states.move_to_end(key)

            if state.banned:
                return True

            state.exceed_count += 1
            if state.exceed_count > self.ban_threshold:
                state.banned = True
                logger.info(f"Key banned after {state.exceed_count} exceedances")
            return state.banned

    async def is_banned(self, key: str) -> bool:
        with self._lock:
            state = self._states.get(key)
            return state is not None and state.banned


class RedisBanTracker(BanTracker):
    """Ban tracker sharing exceedance counters through Redis.

    Counters are plain integers under ``{key_prefix}{key}`` without expiry,
    so a ban holds across every instance using the same Redis.
    """

    def __init__(
        self,
        get_client: Callable[[], Awaitable[Any]],
        key_prefix: str,
        ban_threshold: int,
    ):
        self._get_client = get_client
        self._key_prefix = key_prefix
        self.ban_threshold = ban_threshold

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def record_exceed(self, key: str) -> bool:
        try:
            client = await self._get_client()
            count = await client.incr(self._make_key(key))
        except redis.RedisError as e:
            logger.error(f"Redis ban counter update failed: {e}")
            raise StoreError(f"Failed to record exceedance: {e}", store="redis") from e
        return int(count) > self.ban_threshold

    async def is_banned(self, key: str) -> bool:
        try:
            client = await self._get_client()
            value = await client.get(self._make_key(key))
        except redis.RedisError as e:
            logger.error(f"Redis ban lookup failed: {e}")
            raise StoreError(f"Failed to read ban state: {e}", store="redis") from e
        return value is not None and int(value) > self.ban_threshold
