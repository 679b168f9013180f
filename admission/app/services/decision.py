"""Decision values produced by the rate limiter.

Decisions are plain values. The consumer (usually the HTTP integration)
turns them into status codes and headers.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Allow:
    """Request may proceed.

    Attributes:
        max: Effective ceiling for this request
        remaining: Requests left in the current window
        ttl: Milliseconds until the window resets (0 when the store was not consulted)
        counted: False when the request bypassed the store (allow-listed,
            or store failure with skip_on_error)
    """
    max: int
    remaining: int
    ttl: int
    counted: bool = True

    kind = "allow"
    allowed = True


@dataclass(frozen=True)
class Deny:
    """Request exceeds the limit for the current window."""
    max: int
    ttl: int
    after: str
    remaining: int = 0

    kind = "deny"
    allowed = False


@dataclass(frozen=True)
class Ban:
    """Key is banned; no further requests are counted."""

    kind = "ban"
    allowed = False


Decision = Union[Allow, Deny, Ban]
