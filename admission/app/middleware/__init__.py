"""Middleware package for the admission engine."""

from admission.app.middleware.rate_limit import (
    RateLimitMiddleware,
    build_headers,
    default_key_generator,
    rate_limit,
)

__all__ = [
    "RateLimitMiddleware",
    "build_headers",
    "default_key_generator",
    "rate_limit",
]
