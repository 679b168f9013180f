"""Rate limit scopes: the global one and one per route with its own policy.

Each scope owns a store and a ban tracker created when the scope is
registered. Routes without their own policy share the global scope's
counters; routes with one get a child store with an isolated key namespace.
"""

from dataclasses import dataclass
from typing import Any, Optional

from admission.app.core.config import Settings, settings as default_settings
from admission.app.core.logging import get_logger
from admission.app.services.decision import Decision
from admission.app.services.limiter import RateLimiter
from admission.app.services.policy import Policy, PolicyResolver, RoutePolicy
from admission.app.stores import create_store
from admission.app.stores.ban import BanTracker
from admission.app.stores.base import RouteInfo, Store

logger = get_logger(__name__)

GLOBAL_SCOPE = "global"


@dataclass
class RateLimitScope:
    """Policy, store and ban tracker for one registration boundary."""
    name: str
    policy: Policy
    store: Store
    ban_tracker: BanTracker
    limiter: RateLimiter

    @classmethod
    def build(cls, name: str, policy: Policy, store: Store) -> "RateLimitScope":
        ban_tracker = store.create_ban_tracker(policy.ban_threshold)
        return cls(
            name=name,
            policy=policy,
            store=store,
            ban_tracker=ban_tracker,
            limiter=RateLimiter(policy, store, ban_tracker, scope_name=name),
        )

    async def evaluate(self, request_context: Any = None, key: Optional[str] = None) -> Decision:
        return await self.limiter.evaluate(request_context, key)


class AdmissionController:
    """Owns every scope of one application.

    Example:
        >>> controller = AdmissionController(Policy(max=100, time_window="1 minute"))
        >>> controller.register_route("POST", "/login", RoutePolicy(max=3))
        >>> decision = await controller.evaluate(request, "POST", "/login", key="10.0.0.1")
    """

    def __init__(
        self,
        global_policy: Optional[Policy] = None,
        store: Optional[Store] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the controller and its global scope.

        Args:
            global_policy: Global policy; built from settings when omitted
            store: Root store; created from settings when omitted
            settings: Settings to read; defaults to the global settings instance
        """
        cfg = settings or default_settings
        self.global_policy = global_policy if global_policy is not None else Policy.from_settings(cfg)
        # Stores with __len__ are falsy while empty
        self.store = store if store is not None else create_store(cfg, policy=self.global_policy)
        self.global_scope = RateLimitScope.build(GLOBAL_SCOPE, self.global_policy, self.store)
        self._routes: dict[tuple[str, str], Optional[RateLimitScope]] = {}

    def register_route(
        self,
        method: str,
        path: str,
        route_policy: Optional[RoutePolicy] = None,
    ) -> Optional[RateLimitScope]:
        """Register a route and return the scope that limits it.

        Registering the same method and path again returns the existing scope.

        Returns:
            The route's scope, the global scope, or None if the route is not
            rate limited.

        Raises:
            ConfigurationError: If the merged route policy is invalid.
        """
        method = method.upper()
        route_key = (method, path)
        if route_key in self._routes:
            return self._routes[route_key]

        scope: Optional[RateLimitScope]
        if not PolicyResolver.applies(self.global_policy, route_policy):
            scope = None
        elif route_policy is None:
            scope = self.global_scope
        else:
            policy = PolicyResolver.resolve(self.global_policy, route_policy)
            route_info = RouteInfo(method=method, path=path, policy=policy)
            scope = RateLimitScope.build(route_info.scope_name, policy, self.store.child(route_info))

        self._routes[route_key] = scope
        logger.info(
            f"Registered rate limit for {method} {path}: "
            f"{scope.name if scope is not None else 'disabled'}",
            extra={"method": method, "path": path, "route": scope.name if scope else None},
        )
        return scope

    def scope_for(self, method: str, path: str) -> Optional[RateLimitScope]:
        """Return the scope for a route, falling back to the global rules."""
        route_key = (method.upper(), path)
        if route_key in self._routes:
            return self._routes[route_key]
        return self.global_scope if self.global_policy.apply_globally else None

    async def evaluate(
        self,
        request_context: Any,
        method: str,
        path: str,
        key: Optional[str] = None,
    ) -> Optional[Decision]:
        """Evaluate a request for a route.

        Returns:
            The decision, or None when the route is not rate limited.
        """
        scope = self.scope_for(method, path)
        if scope is None:
            return None
        return await scope.evaluate(request_context, key)

    async def close(self) -> None:
        """Release the root store."""
        await self.store.close()
