from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta

from .errors import OperationTimeoutError


class Deadline:
    """
    Wall-clock bound for one lifecycle operation.
    Set once when the operation starts and never extended.
    """

    def __init__(
        self,
        operation: str,
        budget: timedelta,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.operation = operation
        self.budget = budget
        self._clock = clock
        self._expires_at = clock() + budget.total_seconds()

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, step: str = "") -> float:
        """Returns the seconds left, or raises if none are."""
        if self.expired():
            raise self.timeout(step)
        return self.remaining()

    def timeout(self, step: str = "") -> OperationTimeoutError:
        return OperationTimeoutError(self.operation, self.budget, step=step)
