"""Deferred side effects.

Notifications and audit entries are queued while a transition is being
applied and executed only after its transaction has committed. A failing
effect is logged and skipped; it never undoes the transition.
"""

import logging
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)


class SideEffects:

    def __init__(self):
        self._pending: List[Tuple[str, Callable[..., Any], tuple, dict]] = []

    def add(self, description: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._pending.append((description, func, args, kwargs))

    def __len__(self) -> int:
        return len(self._pending)

    def run(self) -> int:
        """
        Execute queued effects in order.

        Returns:
            Number of effects that failed
        """
        failures = 0
        pending, self._pending = self._pending, []
        for description, func, args, kwargs in pending:
            try:
                func(*args, **kwargs)
            except Exception:
                failures += 1
                logger.exception(f"Side effect failed: {description}")
        return failures
