"""
Step Validator

Checks a recorded session for steps that would not produce a runnable
script before it is exported.
"""

from typing import List

from pydantic import ValidationError

from models import (
    ActionType,
    RecordingSession,
    SELECTOR_REQUIRED,
    StepValidationReport,
    validate_action_params,
)


def validate_session_steps(session: RecordingSession) -> StepValidationReport:
    errors: List[str] = []
    warnings: List[str] = []

    if not session.steps:
        errors.append("Session has no recorded steps")

    for number, step in enumerate(session.steps, 1):
        label = f"Step {number} ({step.type.value})"

        if step.type in SELECTOR_REQUIRED and not step.selector.strip():
            errors.append(f"{label}: selector is required")

        if step.type == ActionType.NAVIGATE and not (step.action_params.get("url") or step.selector):
            errors.append(f"{label}: url is required")

        try:
            validate_action_params(step.type, step.action_params)
        except ValidationError as e:
            for err in e.errors():
                field = ".".join(str(part) for part in err.get("loc", ()))
                errors.append(f"{label}: {field or 'action_params'} {err.get('msg', 'is invalid')}")

        if step.type in SELECTOR_REQUIRED and step.selector and not step.fallback_selectors:
            warnings.append(f"{label}: no fallback selectors, healing cannot recover this step")

    if session.steps and not any(step.type == ActionType.ASSERTION for step in session.steps):
        warnings.append("Consider adding more assertions for better test coverage")

    return StepValidationReport(is_valid=not errors, errors=errors, warnings=warnings)
