"""Store interface for per-key request counters.

The limiter depends on this abstraction (not the concrete implementation)
so the backing resource can be swapped (in-process LRU, Redis, or an
application-supplied store) without changing the decision logic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from admission.app.stores.ban import BanTracker, DisabledBanTracker, LocalBanTracker

if TYPE_CHECKING:
    from admission.app.services.policy import Policy


@dataclass(frozen=True)
class ClientRecord:
    """Counter state for one key as reported by a store.

    Attributes:
        current: Number of increments in the active window, including the
            one that produced this record.
        ttl: Milliseconds left before the window resets.
    """
    current: int
    ttl: int


@dataclass(frozen=True)
class RouteInfo:
    """Route a child store is created for.

    Custom stores may use it to partition their backing resource per route.
    """
    method: str
    path: str
    policy: "Policy"

    @property
    def scope_name(self) -> str:
        return f"{self.method} {self.path}"


class Store(ABC):
    """Abstract base class for counter stores.

    Implementations must make ``increment`` atomic per key: concurrent calls
    for the same key never lose an update and never observe the same
    ``current`` value within one window.
    """

    name: str = "custom"

    @abstractmethod
    async def increment(self, key: str, max_requests: Optional[int] = None) -> ClientRecord:
        """Count one request for ``key`` and report the window state.

        Args:
            key: Rate limit key
            max_requests: Effective ceiling for this request. Only used by
                stores configured to restart the window while exceeding.

        Returns:
            ClientRecord with the count including this call.

        Raises:
            StoreError: If the backing resource fails.
        """
        pass

    @abstractmethod
    def child(self, route_info: RouteInfo) -> "Store":
        """Create a store for one route.

        The child shares the parent's backing resource but has its own key
        namespace, so route counters never collide with global ones.
        """
        pass

    def create_ban_tracker(self, ban_threshold: Optional[int]) -> BanTracker:
        """Create the ban tracker paired with this store.

        Stores backed by a shared resource override this so bans are shared
        as well. The default keeps ban state in process memory.
        """
        if ban_threshold is None:
            return DisabledBanTracker()
        return LocalBanTracker(ban_threshold)

    async def close(self) -> None:
        """Release resources held by the store."""
        pass
