"""
Browser Module

Playwright engine pool, per-session bindings and interaction capture.
"""

from .browser_manager import BrowserManager, BrowserBinding
from .event_capture import EventCapture, CandidateStep, event_to_draft, navigation_to_draft

__all__ = [
    "BrowserManager",
    "BrowserBinding",
    "EventCapture",
    "CandidateStep",
    "event_to_draft",
    "navigation_to_draft"
]
