"""Bounded retry with exponential backoff for transient storage failures."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ..exceptions import OperationCancelled, TransientIOError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many extra attempts a transient failure gets, and how long to wait between them."""

    retry_count: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Return the wait before retry number ``attempt`` (1-based)."""
        return self.retry_delay * (self.retry_backoff ** (attempt - 1))

    def call(
        self,
        func: Callable[[], T],
        description: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        """Run ``func``, retrying only on TransientIOError.

        The last TransientIOError propagates once the attempts are used up.
        A set ``cancel_event`` interrupts the backoff wait.
        """
        attempts = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled(f"Cancelled before {description}")
            try:
                return func()
            except TransientIOError as exc:
                attempts += 1
                if attempts > self.retry_count:
                    LOGGER.error("Giving up on %s after %s attempts: %s", description, attempts, exc)
                    raise
                delay = self.delay_for(attempts)
                LOGGER.warning(
                    "Transient failure during %s (attempt %s/%s), retrying in %.1fs: %s",
                    description,
                    attempts,
                    self.retry_count + 1,
                    delay,
                    exc,
                )
                if cancel_event is not None:
                    if cancel_event.wait(delay):
                        raise OperationCancelled(f"Cancelled while retrying {description}") from exc
                else:
                    time.sleep(delay)
