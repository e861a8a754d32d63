"""Interval polling against remote services."""
from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from src.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class PollTimeoutError(TimeoutError):
    """Raised when a condition is not met within the allowed attempts."""

    def __init__(self, label: str, attempts: int) -> None:
        super().__init__(f"{label} timeout after {attempts} attempts")
        self.label = label
        self.attempts = attempts


def poll_until(
    check: Callable[[int], T | None],
    *,
    label: str,
    interval_s: float,
    max_attempts: int,
    backoff: float = 1.0,
    max_interval_s: float | None = None,
    retry_on: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
    log: logging.Logger | None = None,
) -> T:
    """
    Call ``check(attempt)`` until it returns something other than None.

    Exceptions raised by ``check`` propagate immediately unless they are
    instances of ``retry_on``, in which case they count as a failed attempt.
    The delay between attempts starts at ``interval_s`` and is multiplied by
    ``backoff`` after each attempt, capped at ``max_interval_s``.

    Raises:
        PollTimeoutError: if ``max_attempts`` checks all returned None.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if interval_s < 0:
        raise ValueError("interval_s must be >= 0")

    log = log or logger
    delay = interval_s
    for attempt in range(1, max_attempts + 1):
        try:
            result = check(attempt)
        except retry_on as exc:
            log.warning("%s: attempt %d/%d failed: %s", label, attempt, max_attempts, exc)
            result = None

        if result is not None:
            log.debug("%s: done after %d attempts", label, attempt)
            return result

        if attempt < max_attempts:
            sleep(delay)
            delay = delay * backoff
            if max_interval_s is not None:
                delay = min(delay, max_interval_s)

    raise PollTimeoutError(label, max_attempts)
