"""Core module for exceptions, webhook security, telemetry and time helpers."""

from messengerflow.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    PlatformRejection,
)
from messengerflow.core.security import verify_signature, verify_subscription
from messengerflow.core.telemetry import get_tracer, setup_all_instrumentation, setup_telemetry

__all__ = [
    "BadRequestError",
    "ForbiddenError",
    "NotFoundError",
    "PersistenceError",
    "PlatformRejection",
    "verify_signature",
    "verify_subscription",
    "get_tracer",
    "setup_telemetry",
    "setup_all_instrumentation",
]
