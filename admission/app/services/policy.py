"""Rate limit policies and the merge of global and per-route settings.

A ``Policy`` is the effective configuration for one scope. The global
policy comes from code or from settings; a route may declare a
``RoutePolicy`` whose set fields replace the global ones. Merging happens
once, when the route is registered, and every validation error surfaces
there as ConfigurationError.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Optional, Union

from admission.app.core.config import Settings
from admission.app.core.resolver import Resolver
from admission.app.core.utils import parse_duration
from admission.app.exceptions import ConfigurationError

DEFAULT_MAX = 1000
DEFAULT_TIME_WINDOW_MS = 60000

MaxValue = Union[int, Callable[..., Any]]
AllowList = Union[Collection[str], Callable[..., Any], None]


class _Unset:
    """Marker for route fields that inherit from the global policy."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class Policy:
    """Effective rate limit configuration for one scope.

    Attributes:
        max: Requests allowed per window, or a callable
            ``(request_context, key) -> int`` (may be async)
        time_window: Window length in milliseconds or a duration string
        ban_threshold: Denials tolerated before a key is banned; None disables banning
        allow_list: Keys exempt from limiting, or a predicate
            ``(request_context, key) -> bool`` (may be async)
        skip_on_error: Allow requests when the store fails instead of raising
        continue_exceeding: Restart the window on every exceeding request
        key_generator: Callable ``(request_context) -> str`` (may be async)
        on_exceeding: Notified ``(request_context, key)`` when a request exceeds the limit
        on_exceeded: Notified ``(request_context, key)`` when a key gets banned
        apply_globally: For the global policy, whether routes without their
            own policy are limited
    """
    max: MaxValue = DEFAULT_MAX
    time_window: Union[int, str] = DEFAULT_TIME_WINDOW_MS
    ban_threshold: Optional[int] = None
    allow_list: AllowList = None
    skip_on_error: bool = False
    continue_exceeding: bool = False
    key_generator: Optional[Callable[..., Any]] = None
    on_exceeding: Optional[Callable[..., Any]] = None
    on_exceeded: Optional[Callable[..., Any]] = None
    apply_globally: bool = True

    time_window_ms: int = field(init=False, repr=False, compare=False)
    max_resolver: Resolver[int] = field(init=False, repr=False, compare=False)
    allow_list_resolver: Optional[Resolver[bool]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if callable(self.max):
            object.__setattr__(self, "max_resolver", Resolver(self.max))
        elif isinstance(self.max, int) and not isinstance(self.max, bool) and self.max >= 0:
            object.__setattr__(self, "max_resolver", Resolver(self.max))
        else:
            raise ConfigurationError(
                f"max must be a non-negative integer or a callable, got {self.max!r}",
                field="max",
            )

        try:
            time_window_ms = parse_duration(self.time_window)
        except ValueError as e:
            raise ConfigurationError(str(e), field="time_window") from e
        if time_window_ms <= 0:
            raise ConfigurationError(
                f"time_window must be positive, got {self.time_window!r}",
                field="time_window",
            )
        object.__setattr__(self, "time_window_ms", time_window_ms)

        if self.ban_threshold is not None and (
            not isinstance(self.ban_threshold, int)
            or isinstance(self.ban_threshold, bool)
            or self.ban_threshold <= 0
        ):
            raise ConfigurationError(
                f"ban_threshold must be a positive integer when set, got {self.ban_threshold!r}",
                field="ban_threshold",
            )

        if self.allow_list is None:
            object.__setattr__(self, "allow_list_resolver", None)
        elif callable(self.allow_list):
            object.__setattr__(self, "allow_list_resolver", Resolver(self.allow_list))
        elif isinstance(self.allow_list, str):
            raise ConfigurationError(
                "allow_list must be a collection of keys, not a single string",
                field="allow_list",
            )
        else:
            object.__setattr__(self, "allow_list", frozenset(self.allow_list))
            object.__setattr__(self, "allow_list_resolver", None)

        for name in ("key_generator", "on_exceeding", "on_exceeded"):
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise ConfigurationError(f"{name} must be callable", field=name)

    @property
    def banning_enabled(self) -> bool:
        return self.ban_threshold is not None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "Policy":
        """Build the global policy from settings.

        Callables (key generator, hooks, dynamic max) cannot come from the
        environment and are passed as ``overrides``.
        """
        values: dict[str, Any] = {
            "max": settings.rate_limit_max,
            "time_window": settings.rate_limit_time_window,
            "ban_threshold": settings.rate_limit_ban,
            "skip_on_error": settings.rate_limit_skip_on_error,
            "continue_exceeding": settings.rate_limit_continue_exceeding,
            "apply_globally": settings.rate_limit_global,
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class RoutePolicy:
    """Per-route override of the global policy.

    Fields left UNSET inherit the global value. ``ban_threshold=None``
    explicitly disables banning for the route. ``enabled=False`` opts the
    route out of rate limiting entirely.
    """
    max: MaxValue = UNSET
    time_window: Union[int, str] = UNSET
    ban_threshold: Optional[int] = UNSET
    allow_list: AllowList = UNSET
    skip_on_error: bool = UNSET
    continue_exceeding: bool = UNSET
    key_generator: Optional[Callable[..., Any]] = UNSET
    on_exceeding: Optional[Callable[..., Any]] = UNSET
    on_exceeded: Optional[Callable[..., Any]] = UNSET
    enabled: bool = True

    def overrides(self) -> dict[str, Any]:
        """Return the fields this route sets explicitly."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if f.name != "enabled" and getattr(self, f.name) is not UNSET
        }


class PolicyResolver:
    """Merges the global policy with route overrides."""

    @staticmethod
    def applies(global_policy: Policy, route_policy: Optional[RoutePolicy]) -> bool:
        """Whether a route is rate limited at all.

        A route with its own enabled policy is always limited. A route
        without one is limited only when the global policy applies globally.
        """
        if route_policy is None:
            return global_policy.apply_globally
        return route_policy.enabled

    @staticmethod
    def resolve(global_policy: Policy, route_policy: Optional[RoutePolicy]) -> Policy:
        """Merge ``route_policy`` into ``global_policy`` field by field.

        Raises:
            ConfigurationError: If the merged policy is invalid.
        """
        if route_policy is None:
            return global_policy
        overrides = route_policy.overrides()
        if not overrides:
            return global_policy
        return dataclasses.replace(global_policy, **overrides)
