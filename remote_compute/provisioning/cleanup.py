"""Best-effort cleanup: attempt each step, record the outcome, keep going."""

import logging
from dataclasses import dataclass

from remote_compute.provisioning.types import ApiResponse

logger = logging.getLogger(__name__)


@dataclass
class CleanupStep:
    label: str
    ok: bool
    detail: str = ""


class CleanupReport:
    """Collects outcomes of compensating actions.

    A step fails if its coroutine raises or returns a non-2xx
    ``ApiResponse`` whose status is not in *gone_statuses* (a 404 on a
    delete means the remote side is already gone).
    """

    def __init__(self, gone_statuses=(404,)):
        self.gone_statuses = gone_statuses
        self.steps: list[CleanupStep] = []

    async def attempt(self, label, action) -> bool:
        """Await ``action()`` and record the outcome. Never raises on failure."""
        try:
            result = await action()
        except Exception as e:
            logger.warning(f"Cleanup '{label}' failed: {e}")
            self.steps.append(CleanupStep(label, False, str(e)))
            return False

        if isinstance(result, ApiResponse) and not result.ok and result.status not in self.gone_statuses:
            detail = f"HTTP {result.status}"
            logger.warning(f"Cleanup '{label}' failed: {detail}")
            self.steps.append(CleanupStep(label, False, detail))
            return False

        self.steps.append(CleanupStep(label, True))
        return True

    def skip(self, label, reason):
        """Record a step that could not be attempted at all."""
        logger.warning(f"Cleanup '{label}' skipped: {reason}")
        self.steps.append(CleanupStep(label, False, reason))

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def errors(self) -> list[str]:
        return [f"{step.label}: {step.detail}" for step in self.steps if not step.ok]
