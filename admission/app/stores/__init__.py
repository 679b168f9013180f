"""Counter stores for the admission engine.

Provides a pluggable store system with in-memory and Redis implementations.
"""

from typing import TYPE_CHECKING, Optional

from admission.app.core.config import Settings, settings as default_settings
from admission.app.core.logging import get_logger
from admission.app.stores.ban import BanTracker, DisabledBanTracker, LocalBanTracker, RedisBanTracker
from admission.app.stores.base import ClientRecord, RouteInfo, Store
from admission.app.stores.local import LocalStore
from admission.app.stores.redis_store import RedisStore

if TYPE_CHECKING:
    from admission.app.services.policy import Policy

logger = get_logger(__name__)

__all__ = [
    "BanTracker",
    "DisabledBanTracker",
    "LocalBanTracker",
    "RedisBanTracker",
    "ClientRecord",
    "RouteInfo",
    "Store",
    "LocalStore",
    "RedisStore",
    "create_store",
]


def create_store(
    settings: Optional[Settings] = None,
    backend: Optional[str] = None,
    policy: Optional["Policy"] = None,
) -> Store:
    """Create the root store for the global scope.

    Args:
        settings: Settings to read; defaults to the global settings instance.
        backend: Store backend to use ('memory', 'redis', or None for auto).
            When None, checks settings.redis_enabled.
        policy: Global policy; its window and continue_exceeding flag take
            precedence over the settings values.

    Returns:
        A Store instance (LocalStore or RedisStore).
    """
    cfg = settings or default_settings

    if backend == "redis":
        use_redis = True
    elif backend == "memory":
        use_redis = False
    else:
        use_redis = cfg.redis_enabled

    if policy is not None:
        time_window_ms = policy.time_window_ms
        continue_exceeding = policy.continue_exceeding
    else:
        time_window_ms = cfg.rate_limit_time_window_ms
        continue_exceeding = cfg.rate_limit_continue_exceeding

    if use_redis:
        logger.info("Using Redis rate limit store")
        return RedisStore(
            time_window_ms=time_window_ms,
            redis_url=cfg.redis_url,
            key_prefix=cfg.rate_limit_key_prefix,
            continue_exceeding=continue_exceeding,
            connect_timeout=cfg.redis_connect_timeout,
        )

    logger.debug("Using in-memory rate limit store")
    return LocalStore(
        time_window_ms=time_window_ms,
        max_entries=cfg.rate_limit_cache_size,
        continue_exceeding=continue_exceeding,
    )
