"""
Reconciliation log for best-effort steps.

Some writes are maintenance that follows a primary effect which has
already succeeded: deleting a provisional record, fixing a trainer's
student list, removing an activation index entry. Their failure must not
fail the operation, but it must not disappear either. Each step runs
through `run_step`, which records the outcome here so a later pass (or a
person) can find what was left behind.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from .models import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationEntry:
    """Outcome of one best-effort step."""
    operation: str
    step: str
    target: str
    succeeded: bool
    error: Optional[str] = None
    recorded_at: datetime = field(default_factory=utcnow)


class ReconciliationLog:
    """Bounded, in-memory record of best-effort step outcomes."""

    def __init__(self, max_entries: int = 500) -> None:
        self._entries: deque[ReconciliationEntry] = deque(maxlen=max_entries)

    async def run_step(
        self,
        operation: str,
        step: str,
        target: str,
        action: Callable[[], Awaitable[object]],
    ) -> bool:
        """
        Run a best-effort step and record what happened.

        Returns True when the step succeeded. Never raises.
        """
        try:
            await action()
        except Exception as e:
            logger.warning(
                "Best-effort step failed",
                extra={
                    "operation": operation,
                    "step": step,
                    "target": target,
                    "error": str(e),
                },
            )
            self._entries.append(
                ReconciliationEntry(operation, step, target, succeeded=False, error=str(e))
            )
            return False

        self._entries.append(ReconciliationEntry(operation, step, target, succeeded=True))
        return True

    def record(self, operation: str, step: str, target: str, error: Optional[str] = None) -> None:
        """Record the outcome of a step that ran outside `run_step`."""
        self._entries.append(
            ReconciliationEntry(operation, step, target, succeeded=error is None, error=error)
        )

    @property
    def entries(self) -> list[ReconciliationEntry]:
        return list(self._entries)

    def failures(self) -> list[ReconciliationEntry]:
        return [e for e in self._entries if not e.succeeded]

    def pending_for(self, target: str) -> list[ReconciliationEntry]:
        """Failed steps that touched `target`."""
        return [e for e in self._entries if not e.succeeded and e.target == target]

    def clear(self) -> None:
        self._entries.clear()
