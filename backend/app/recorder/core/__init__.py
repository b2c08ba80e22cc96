"""
Core Module

Recording session store, durable mirror and step validation.
"""

from .session_store import RecordingSessionStore
from .durable_mirror import DurableMirror
from .step_validator import validate_session_steps

__all__ = [
    "RecordingSessionStore",
    "DurableMirror",
    "validate_session_steps"
]
