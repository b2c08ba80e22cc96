"""
Self-Healing Module

Fallback selector generation and live re-resolution for recorded steps.
"""

from .healing_engine import (
    SelfHealingEngine,
    HealingResult,
    PRIMARY_CONFIDENCE,
    FALLBACK_CONFIDENCE,
    UNRESOLVED_CONFIDENCE
)

__all__ = [
    "SelfHealingEngine",
    "HealingResult",
    "PRIMARY_CONFIDENCE",
    "FALLBACK_CONFIDENCE",
    "UNRESOLVED_CONFIDENCE"
]
