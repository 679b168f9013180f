"""Services package for the admission engine.

This package provides:
- Policies and the merge of global and per-route settings
- The fixed-window rate limiter and its decisions
- Scope registration (global scope plus one scope per route)
"""

from admission.app.services.decision import Allow, Ban, Decision, Deny
from admission.app.services.limiter import RateLimiter
from admission.app.services.policy import UNSET, Policy, PolicyResolver, RoutePolicy
from admission.app.services.registry import AdmissionController, RateLimitScope

__all__ = [
    "Allow",
    "Ban",
    "Decision",
    "Deny",
    "RateLimiter",
    "UNSET",
    "Policy",
    "PolicyResolver",
    "RoutePolicy",
    "AdmissionController",
    "RateLimitScope",
]
