"""Redis-backed counter store for multi-instance deployments."""

from typing import Any, Optional

import redis
import redis.asyncio as aioredis

from admission.app.core.logging import get_logger
from admission.app.exceptions import StoreError
from admission.app.stores.ban import BanTracker, DisabledBanTracker, RedisBanTracker
from admission.app.stores.base import ClientRecord, RouteInfo, Store
from admission.app.stores.redis_lua import INCREMENT_SCRIPT

logger = get_logger(__name__)

COUNTER_NAMESPACE = "count"
BAN_NAMESPACE = "ban"


class RedisStore(Store):
    """Redis-based distributed counter store.

    Every increment is a single EVAL round trip, so the count is shared by
    every instance pointing at the same Redis and nothing is cached locally.

    Redis key format:
    - {prefix}count:{len(scope)}:{scope}:{key} - window counters
    - {prefix}ban:{len(scope)}:{scope}:{key} - exceedance counters (see RedisBanTracker)

    ``scope`` is empty for the global store and ``{METHOD}{path}`` for route
    child stores. Keys are opaque, so the namespace and the length-prefixed
    scope come before the key: no key can reach another scope's counter or
    any ban counter.
    """

    name = "redis"
    DEFAULT_KEY_PREFIX = "admission-rate-limit-"

    def __init__(
        self,
        time_window_ms: int,
        redis_client: Optional[Any] = None,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = DEFAULT_KEY_PREFIX,
        continue_exceeding: bool = False,
        connect_timeout: Optional[float] = None,
        parent: Optional["RedisStore"] = None,
        scope: str = "",
    ):
        """Initialize Redis store.

        Args:
            time_window_ms: Window length in milliseconds
            redis_client: Optional Redis client instance
            redis_url: Redis connection URL, used when no client is given
            key_prefix: Root of every key this store writes
            continue_exceeding: Restart the window on every exceeding request
            connect_timeout: Socket connect/read timeout in seconds
            parent: Store whose connection this child shares
            scope: Route the counters belong to; empty for the global store
        """
        self.time_window_ms = time_window_ms
        self.key_prefix = key_prefix
        self.scope = scope
        self.continue_exceeding = continue_exceeding
        self._redis = redis_client
        self._redis_url = redis_url
        self._connect_timeout = connect_timeout
        self._parent = parent

    async def _get_redis(self) -> Any:
        """Get or create Redis connection (shared with child stores)."""
        if self._parent is not None:
            return await self._parent._get_redis()
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_connect_timeout=self._connect_timeout,
                socket_timeout=self._connect_timeout,
            )
        return self._redis

    def namespace(self, kind: str) -> str:
        """Prefix shared by every key of one kind in this store's scope."""
        return f"{self.key_prefix}{kind}:{len(self.scope)}:{self.scope}:"

    def _make_key(self, key: str) -> str:
        return f"{self.namespace(COUNTER_NAMESPACE)}{key}"

    async def increment(self, key: str, max_requests: Optional[int] = None) -> ClientRecord:
        try:
            client = await self._get_redis()
            result = await client.eval(
                INCREMENT_SCRIPT,
                1,
                self._make_key(key),
                self.time_window_ms,
                -1 if max_requests is None else max_requests,
                "1" if self.continue_exceeding else "0",
            )
        except redis.ConnectionError as e:
            logger.error(f"Redis connection failed: {e}", extra={"store": self.name})
            raise StoreError(f"Redis connection failed: {e}", store=self.name) from e
        except redis.TimeoutError as e:
            logger.warning(f"Redis timeout: {e}", extra={"store": self.name})
            raise StoreError(f"Redis timeout: {e}", store=self.name) from e
        except redis.RedisError as e:
            logger.error(f"Redis error: {e}", extra={"store": self.name})
            raise StoreError(f"Redis error: {e}", store=self.name) from e

        try:
            current, ttl = result
            return ClientRecord(current=int(current), ttl=int(ttl))
        except (TypeError, ValueError) as e:
            logger.error(f"Unexpected Redis reply {result!r}", extra={"store": self.name})
            raise StoreError(f"Unexpected Redis reply: {result!r}", store=self.name) from e

    def child(self, route_info: RouteInfo) -> "RedisStore":
        policy = route_info.policy
        return RedisStore(
            time_window_ms=policy.time_window_ms,
            redis_url=self._redis_url,
            key_prefix=self.key_prefix,
            continue_exceeding=policy.continue_exceeding,
            connect_timeout=self._connect_timeout,
            parent=self._parent or self,
            scope=f"{self.scope}{route_info.method}{route_info.path}",
        )

    def create_ban_tracker(self, ban_threshold: Optional[int]) -> BanTracker:
        if ban_threshold is None:
            return DisabledBanTracker()
        return RedisBanTracker(self._get_redis, self.namespace(BAN_NAMESPACE), ban_threshold)

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._parent is None and self._redis is not None:
            await self._redis.aclose()
            self._redis = None
