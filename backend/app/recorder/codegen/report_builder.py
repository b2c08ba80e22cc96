"""
Report Builder

Human-oriented documentation of a recorded session: what the test
does step by step, with the settings it was recorded under.
"""

from typing import Any, Dict

from models import ActionType, RecordingSession


def build_report(session: RecordingSession) -> Dict[str, Any]:
    """Build the documentation report for a session"""
    steps = []
    for number, step in enumerate(session.steps, start=1):
        steps.append({
            "step_number": number,
            "type": step.type.value if isinstance(step.type, ActionType) else str(step.type),
            "description": step.description,
            "selector": step.selector,
            "fallback_count": len(step.fallback_selectors),
            "timestamp": step.timestamp.isoformat(),
        })

    return {
        "test_name": session.test_name,
        "description": f"Automated test for {session.target_url}",
        "status": session.status.value,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
        "target_url": session.target_url,
        "steps_count": len(session.steps),
        "steps": steps,
        "settings": session.settings.model_dump(mode="json"),
        "metadata": session.metadata.model_dump(mode="json"),
    }
