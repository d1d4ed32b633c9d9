"""Best-effort side effects with an observable error channel.

Work such as patient bookkeeping after an encounter submission must never fail
the primary operation. :class:`SideEffectLog` runs it, swallows any
``Exception``, logs it and keeps a record the caller can inspect or report.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SideEffectFailure:
    name: str
    error: str
    context: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class SideEffectLog:
    """Runs best-effort callables and records their failures."""

    def __init__(self) -> None:
        self._failures: List[SideEffectFailure] = []

    def run(
        self,
        name: str,
        func: Callable[..., T],
        *args: Any,
        context: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Optional[T]:
        """Call ``func``; return its result, or None if it raised."""
        try:
            return func(*args, **kwargs)
        except Exception as e:
            failure = SideEffectFailure(
                name=name,
                error=f"{type(e).__name__}: {e}",
                context=dict(context or {}),
            )
            self._failures.append(failure)
            logger.warning(
                f"Side effect '{name}' failed: {failure.error} (context={failure.context})"
            )
            return None

    @property
    def failures(self) -> List[SideEffectFailure]:
        return list(self._failures)

    def failure_counts(self) -> Dict[str, int]:
        """Number of recorded failures per side-effect name."""
        return dict(Counter(failure.name for failure in self._failures))

    def clear(self) -> None:
        self._failures.clear()
