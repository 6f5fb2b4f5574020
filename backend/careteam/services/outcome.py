"""Outcome type and best-effort step runner.

A booking or status change whose primary write succeeded is reported as
success even if an enrichment step (counter, record linking, notification)
failed. Those failures are logged and collected on the ``Outcome``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EnrichmentFailure:
    """A best-effort step that raised."""

    step: str
    error_type: str
    message: str


@dataclass
class Outcome(Generic[T]):
    """Primary result plus any enrichment failures."""

    value: T
    failures: list[EnrichmentFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


async def run_best_effort(
    outcome: Outcome[Any],
    step: str,
    func: Callable[[], Awaitable[Any]],
    *,
    db: AsyncSession | None = None,
    context: dict[str, Any] | None = None,
) -> Any:
    """Run ``func``; on failure log it, record it on ``outcome`` and return None.

    With ``db`` the step runs inside a SAVEPOINT, so a failing step rolls back
    only its own writes and leaves the primary write intact.
    """
    try:
        if db is None:
            return await func()
        async with db.begin_nested():
            return await func()
    except Exception as e:
        logger.warning(
            "Best-effort step %s failed: %s",
            step,
            e,
            exc_info=True,
            extra={"step": step, **(context or {})},
        )
        outcome.failures.append(
            EnrichmentFailure(step=step, error_type=type(e).__name__, message=str(e))
        )
        return None
