import logging
import time
from collections.abc import Callable

from tenacity import Retrying, before_sleep_log, retry_if_result
from tenacity.wait import wait_base

from .core import POLL_INTERVAL
from .deadline import Deadline
from .logger import logger
from .schemas.api import Instance, RunState


class wait_until_deadline(wait_base):
    """Fixed wait, clamped so a sleep never runs past the deadline."""

    def __init__(self, interval: float, deadline: Deadline) -> None:
        self.interval = interval
        self.deadline = deadline

    def __call__(self, retry_state: object) -> float:
        return min(self.interval, self.deadline.remaining())


def wait_for_run_state(
    fetch: Callable[[], Instance],
    target: RunState,
    deadline: Deadline,
    interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> Instance:
    """
    Calls ``fetch`` until the returned instance reaches ``target``.

    Exceptions from ``fetch`` (not-found included) propagate on the first
    occurrence. The loop has no deadline of its own: it stops once the
    caller's deadline has passed, raising ``tenacity.RetryError`` for the
    caller to report as a timeout.
    """
    retryer = Retrying(
        retry=retry_if_result(lambda inst: inst.run_state != target),
        wait=wait_until_deadline(interval, deadline),
        stop=lambda retry_state: deadline.expired(),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.DEBUG),
    )
    return retryer(fetch)
