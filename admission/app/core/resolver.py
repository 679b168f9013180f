"""Uniform access to configuration values that may be computed per request.

A policy value such as ``max`` or ``allow_list`` is either a constant or a
callable of ``(request_context, key)``. Callables may be plain functions or
coroutine functions; both are awaited the same way by the limiter.
"""

import inspect
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

T = TypeVar("T")

ValueOrFactory = Union[T, Callable[..., Union[T, Awaitable[T]]]]


async def resolve_value(value: Any, *args: Any) -> Any:
    """Return ``value`` itself, or the (awaited) result of calling it with ``args``."""
    if not callable(value):
        return value
    result = value(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Resolver(Generic[T]):
    """Constant or callable configuration value.

    Example:
        >>> max_requests = Resolver(100)
        >>> await max_requests.resolve(request, "10.0.0.1")
        100
        >>> async def per_plan(request, key):
        ...     return await lookup_plan_limit(key)
        >>> await Resolver(per_plan).resolve(request, "10.0.0.1")
    """

    __slots__ = ("_value",)

    def __init__(self, value: ValueOrFactory[T]):
        self._value = value

    @property
    def is_dynamic(self) -> bool:
        return callable(self._value)

    @property
    def value(self) -> ValueOrFactory[T]:
        return self._value

    async def resolve(self, *args: Any) -> T:
        return await resolve_value(self._value, *args)

    def __repr__(self) -> str:
        return f"Resolver({self._value!r})"
