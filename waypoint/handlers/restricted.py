"""Sensitive step types that need an external integration.

A confirmation only authorizes intent. Until a wallet, credential or cloud
integration is registered under the same type tag, these fail closed.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from waypoint.handlers.base import StepHandler, StepOutcome
from waypoint.utils.logging import get_logger

log = get_logger(__name__)

_REASONS = {
    "transfer_money": "Money transfers require a secure wallet integration",
    "issue_credential": "Credential issuance requires an identity provider integration",
    "deploy_infra": "Cloud provisioning requires credentials and a deployment integration",
}


class RestrictedHandler(StepHandler):
    def __init__(self, step_type: str) -> None:
        if step_type not in _REASONS:
            raise ValueError(f"Not a restricted step type: {step_type}")
        self._step_type = step_type

    @property
    def step_type(self) -> str:
        return self._step_type

    async def handle(
        self, params: Mapping[str, Any], work_dir: Path, task_id: str, timeout: float
    ) -> StepOutcome:
        log.warning("restricted_step_refused", task_id=task_id, type=self._step_type)
        return StepOutcome.fail(_REASONS[self._step_type])


def restricted_handlers() -> list[RestrictedHandler]:
    return [RestrictedHandler(t) for t in _REASONS]
