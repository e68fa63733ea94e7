"""
Best-effort sub-operations.

A sub-operation is a non-critical write attached to a primary call, such as
recording a content-hash reference after a project insert. Its failure is
logged and reported on its own channel, never as the primary call's failure.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class SubOperationResult:
    """Outcome of a best-effort sub-operation."""

    name: str
    ok: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


async def run_best_effort(
    name: str,
    operation: Callable[[], Awaitable[Any]],
    *,
    context: dict[str, Any] | None = None,
) -> SubOperationResult:
    """Run ``operation`` and contain any failure.

    Args:
        name: Sub-operation name, used in logs and the result
        operation: Zero-argument coroutine factory
        context: Extra fields for the warning log record

    Returns:
        SubOperationResult, ``ok`` False when the operation raised
    """
    try:
        await operation()
    except Exception as e:
        logger.warning(
            f"Best-effort {name} failed: {e}",
            extra={"sub_operation": name, **(context or {})},
        )
        return SubOperationResult(name=name, ok=False, error=str(e))
    return SubOperationResult(name=name, ok=True)
