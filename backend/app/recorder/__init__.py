"""
Recorder Package

Records browser interactions as ordered steps with self-healing
selectors and renders them as Playwright test projects.

Structure:
- core/: session store, state machine, durable mirror
- healing/: fallback selector generation and live resolution
- codegen/: Playwright script, config, CI and report renderers
- browser/: Playwright engine pool and interaction capture
- notifications/: session event fan-out
"""

from .errors import (
    RecorderError,
    NotFoundError,
    SessionNotFound,
    StepNotFound,
    ValidationFailure,
    InvalidTransition,
    DriverUnavailable,
    HealingExhausted,
    DurableWriteFailure
)

__all__ = [
    "RecorderError",
    "NotFoundError",
    "SessionNotFound",
    "StepNotFound",
    "ValidationFailure",
    "InvalidTransition",
    "DriverUnavailable",
    "HealingExhausted",
    "DurableWriteFailure"
]
