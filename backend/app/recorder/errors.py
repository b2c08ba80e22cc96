"""
Recorder Errors

Stable failure categories surfaced by the recording backend.
Every error carries a category string and a human-readable detail.
"""

from typing import Any, Dict, List, Optional


class RecorderError(Exception):
    """Base class for all recorder failures"""

    category = "RecorderError"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.category, "detail": self.detail}


class NotFoundError(RecorderError):
    category = "NotFound"


class SessionNotFound(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class StepNotFound(NotFoundError):
    def __init__(self, session_id: str, step_id: str):
        super().__init__(f"Step not found: {step_id} (session {session_id})")
        self.session_id = session_id
        self.step_id = step_id


class ValidationFailure(RecorderError):
    """Malformed input, rejected before any mutation"""

    category = "ValidationFailure"

    def __init__(self, detail: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(detail)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class InvalidTransition(RecorderError):
    category = "InvalidTransition"

    def __init__(self, session_id: str, current: str, action: str):
        super().__init__(f"Cannot {action} session {session_id} while {current}")
        self.session_id = session_id
        self.current = current
        self.action = action


class DriverUnavailable(RecorderError):
    category = "DriverUnavailable"


class HealingExhausted(RecorderError):
    """No locator resolved within the retry ceiling"""

    category = "HealingExhausted"

    def __init__(self, selector: str, attempts: int):
        super().__init__(
            f"All selectors failed for {selector} after {attempts} attempt(s)"
        )
        self.selector = selector
        self.attempts = attempts


class DurableWriteFailure(RecorderError):
    """In-memory mutation succeeded but the durable mirror write did not"""

    category = "DurableWriteFailure"


def from_pydantic_errors(detail: str, errors) -> ValidationFailure:
    """Build a ValidationFailure from pydantic's error list"""
    fields = []
    for err in errors:
        fields.append({
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        })
    return ValidationFailure(detail, fields)
