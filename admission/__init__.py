"""Request admission control: fixed-window rate limiting with ban escalation."""

from admission.app.exceptions import AdmissionException, ConfigurationError, StoreError
from admission.app.services import (
    AdmissionController,
    Allow,
    Ban,
    Decision,
    Deny,
    Policy,
    PolicyResolver,
    RateLimiter,
    RateLimitScope,
    RoutePolicy,
)
from admission.app.stores import LocalStore, RedisStore, Store

__version__ = "0.1.0"

__all__ = [
    "AdmissionException",
    "ConfigurationError",
    "StoreError",
    "AdmissionController",
    "Allow",
    "Ban",
    "Decision",
    "Deny",
    "Policy",
    "PolicyResolver",
    "RateLimiter",
    "RateLimitScope",
    "RoutePolicy",
    "LocalStore",
    "RedisStore",
    "Store",
]
