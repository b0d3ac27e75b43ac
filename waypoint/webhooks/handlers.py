"""Decision request validation."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any

SECRET_HEADER = "X-Waypoint-Secret"


@dataclass(frozen=True)
class Decision:
    task_id: str
    step_id: str | None
    approved: bool


def validate_generic_secret(provided: str, configured: str) -> bool:
    """Validate a shared secret via constant-time comparison.

    Returns False if no secret is configured (rejects unauthenticated requests).
    """
    if not configured:
        return False
    if not provided:
        return False
    return hmac.compare_digest(provided, configured)


def parse_decision(payload: Any) -> Decision:
    """Parse ``{task_id, step_id?, approved}``. Raises ValueError if malformed."""
    if not isinstance(payload, dict):
        raise ValueError("Body must be a JSON object")

    task_id = payload.get("task_id")
    if not isinstance(task_id, str) or not task_id:
        raise ValueError("'task_id' must be a non-empty string")

    step_id = payload.get("step_id")
    if step_id is not None and (not isinstance(step_id, str) or not step_id):
        raise ValueError("'step_id' must be a non-empty string when given")

    approved = payload.get("approved")
    if not isinstance(approved, bool):
        raise ValueError("'approved' must be a boolean")

    return Decision(task_id=task_id, step_id=step_id, approved=approved)
