"""Fixed-window admission decisions for one scope.

The limiter itself holds no counters. The store serializes increments per
key and the ban tracker serializes exceedances, so evaluations for the same
key can run concurrently (threads or asyncio tasks) without extra locking.
"""

from typing import Any, Callable, Optional

from admission.app.core.logging import get_log_context, get_logger
from admission.app.core.resolver import resolve_value
from admission.app.core.utils import format_duration
from admission.app.exceptions import StoreError
from admission.app.services.decision import Allow, Ban, Decision, Deny
from admission.app.services.policy import Policy
from admission.app.stores.ban import BanTracker
from admission.app.stores.base import Store

logger = get_logger(__name__)


class RateLimiter:
    """Evaluates requests against one policy, store and ban tracker.

    Order of evaluation, each step short-circuiting the rest:

    1. Banned keys get ``Ban`` without touching the store.
    2. Allow-listed keys get ``Allow`` without touching the store.
    3. ``max`` is resolved (dynamic resolvers may suspend).
    4. The store counts the request. A store failure is absorbed as
       ``Allow`` when ``skip_on_error`` is set and raised otherwise.
    5. Within the limit: ``Allow``.
    6. Over the limit: the exceedance is recorded and the result is
       ``Ban`` if that banned the key, ``Deny`` otherwise.
    """

    def __init__(
        self,
        policy: Policy,
        store: Store,
        ban_tracker: Optional[BanTracker] = None,
        scope_name: str = "global",
    ):
        self.policy = policy
        self.store = store
        if ban_tracker is None:
            ban_tracker = store.create_ban_tracker(policy.ban_threshold)
        self.ban_tracker = ban_tracker
        self.scope_name = scope_name

    async def resolve_key(self, request_context: Any) -> str:
        """Resolve the rate limit key with the policy's key generator."""
        if self.policy.key_generator is None:
            raise ValueError(
                f"No key given and no key_generator configured for scope {self.scope_name!r}"
            )
        key = await resolve_value(self.policy.key_generator, request_context)
        return str(key)

    async def resolve_max(self, request_context: Any, key: str) -> int:
        """Resolve the effective ceiling for this request."""
        max_requests = await self.policy.max_resolver.resolve(request_context, key)
        if not isinstance(max_requests, int) or isinstance(max_requests, bool) or max_requests < 0:
            raise TypeError(
                f"max resolver must return a non-negative integer, got {max_requests!r}"
            )
        return max_requests

    async def is_allow_listed(self, request_context: Any, key: str) -> bool:
        policy = self.policy
        if policy.allow_list_resolver is not None:
            return bool(await policy.allow_list_resolver.resolve(request_context, key))
        if policy.allow_list:
            return key in policy.allow_list
        return False

    async def _notify(
        self,
        callback: Optional[Callable[..., Any]],
        request_context: Any,
        key: str,
    ) -> None:
        """Invoke a notification callback; its outcome never changes the decision."""
        if callback is None:
            return
        try:
            await resolve_value(callback, request_context, key)
        except Exception:
            logger.exception(
                f"Rate limit callback {getattr(callback, '__name__', callback)!r} failed",
                extra=get_log_context(key=key, route=self.scope_name),
            )

    async def _skip_on_error(
        self,
        request_context: Any,
        key: str,
        error: StoreError,
        max_requests: Optional[int] = None,
    ) -> Decision:
        if not self.policy.skip_on_error:
            raise error
        logger.warning(
            f"Rate limit store failed, allowing request (skip_on_error): {error.message}",
            extra=get_log_context(key=key, route=self.scope_name, decision="allow", store=error.store),
        )
        # Ban lookup failures happen before max is resolved
        if max_requests is None:
            max_requests = await self.resolve_max(request_context, key)
        return Allow(max=max_requests, remaining=max_requests, ttl=0, counted=False)

    async def evaluate(self, request_context: Any = None, key: Optional[str] = None) -> Decision:
        """Decide whether a request is admitted.

        Args:
            request_context: Opaque request object handed to resolvers and callbacks
            key: Rate limit key; resolved with the policy's key generator when omitted

        Returns:
            Allow, Deny or Ban.

        Raises:
            StoreError: If the store fails and skip_on_error is not set.
        """
        if key is None:
            key = await self.resolve_key(request_context)
        policy = self.policy

        try:
            banned = await self.ban_tracker.is_banned(key)
        except StoreError as e:
            return await self._skip_on_error(request_context, key, e)
        if banned:
            logger.debug(
                "Banned key rejected",
                extra=get_log_context(key=key, route=self.scope_name, decision="ban"),
            )
            return Ban()

        if await self.is_allow_listed(request_context, key):
            max_requests = await self.resolve_max(request_context, key)
            return Allow(max=max_requests, remaining=max_requests, ttl=0, counted=False)

        max_requests = await self.resolve_max(request_context, key)

        try:
            record = await self.store.increment(key, max_requests)
        except StoreError as e:
            return await self._skip_on_error(request_context, key, e, max_requests)

        if record.current <= max_requests:
            logger.debug(
                "Request allowed",
                extra=get_log_context(
                    key=key,
                    route=self.scope_name,
                    decision="allow",
                    current=record.current,
                    max=max_requests,
                    ttl_ms=record.ttl,
                ),
            )
            return Allow(max=max_requests, remaining=max_requests - record.current, ttl=record.ttl)

        await self._notify(policy.on_exceeding, request_context, key)

        try:
            now_banned = await self.ban_tracker.record_exceed(key)
        except StoreError as e:
            if not policy.skip_on_error:
                raise
            # Counter already says the limit is exceeded; only ban state is unknown
            logger.warning(
                f"Ban tracker failed, denying without escalation (skip_on_error): {e.message}",
                extra=get_log_context(key=key, route=self.scope_name, decision="deny", store=e.store),
            )
            now_banned = False

        if now_banned:
            await self._notify(policy.on_exceeded, request_context, key)
            logger.warning(
                "Rate limit exceeded, key banned",
                extra=get_log_context(key=key, route=self.scope_name, decision="ban", current=record.current, max=max_requests),
            )
            return Ban()

        logger.warning(
            "Rate limit exceeded",
            extra=get_log_context(
                key=key,
                route=self.scope_name,
                decision="deny",
                current=record.current,
                max=max_requests,
                ttl_ms=record.ttl,
            ),
        )
        return Deny(max=max_requests, ttl=record.ttl, after=format_duration(record.ttl))
