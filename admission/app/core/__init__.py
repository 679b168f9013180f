"""Core utilities for the admission engine."""

from admission.app.core.config import Settings, settings
from admission.app.core.logging import get_logger, setup_logging
from admission.app.core.resolver import Resolver, resolve_value
from admission.app.core.utils import format_duration, parse_duration

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
    "Resolver",
    "resolve_value",
    "format_duration",
    "parse_duration",
]
