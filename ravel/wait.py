"""
Poll-until-predicate helpers for eventually-consistent cloud APIs.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

from .errors import Cancelled, NotFound, TransientAPIError, WaitTimeout

logger = logging.getLogger(__name__)


class _Gone:
    """Sentinel state for a resource that can no longer be described."""

    def __repr__(self):
        return "GONE"

    def __bool__(self):
        return False


GONE = _Gone()


def is_gone(state: Any) -> bool:
    return state is GONE


class Deadline:
    """
    An overall time budget that can also be cancelled from another thread.

    Waits and teardown passes check it so that an outer limit such as
    "tear this cluster down within 20 minutes" aborts them early.
    """

    def __init__(self, seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """Raise Cancelled if the deadline was cancelled or has passed."""
        if self.cancelled:
            raise Cancelled("operation cancelled")
        if self.expired():
            raise Cancelled("deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep up to seconds, waking early if cancelled."""
        self._cancelled.wait(seconds)


def wait_until(
    describe: Callable[[], Any],
    predicate: Callable[[Any], bool],
    interval: float = 5.0,
    timeout: float = 600.0,
    description: str = "resource",
    deadline: Optional[Deadline] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """
    Poll describe() until predicate(state) holds.

    describe() raising NotFound is reported to the predicate as GONE, so
    "wait until deleted" is just predicate=is_gone. TransientAPIError is
    retried until the timeout; any other exception propagates immediately.

    Args:
        describe: Returns the current state of the thing being waited on
        predicate: Returns True once the state is the one we want
        interval: Seconds between polls
        timeout: Seconds after the first poll before giving up
        description: Used in log lines and the timeout message
        deadline: Optional outer deadline; cancelling it aborts the wait
        sleep: Sleep function (defaults to deadline.wait or time.sleep)
        clock: Monotonic clock used to measure the timeout

    Returns:
        The first state for which predicate returned True

    Raises:
        WaitTimeout: timeout elapsed before the predicate held
        Cancelled: the deadline was cancelled or expired
    """
    if sleep is None:
        sleep = deadline.wait if deadline is not None else time.sleep

    start = clock()
    polls = 0
    state: Any = None
    last_error: Optional[TransientAPIError] = None

    while True:
        if deadline is not None:
            deadline.check()

        polls += 1
        try:
            state = describe()
            last_error = None
        except NotFound:
            state = GONE
            last_error = None
        except TransientAPIError as e:
            last_error = e
            logger.debug(f"Transient error polling {description} (poll {polls}): {e}")
        else:
            logger.debug(f"Polled {description} (poll {polls}): {state!r}")

        if last_error is None and predicate(state):
            return state

        elapsed = clock() - start
        if elapsed >= timeout:
            raise WaitTimeout(description, timeout, state) from last_error

        delay = min(interval, timeout - elapsed)
        if deadline is not None:
            remaining = deadline.remaining()
            if remaining is not None:
                delay = min(delay, remaining)
        sleep(delay)


def wait_until_gone(describe: Callable[[], Any], **kwargs) -> None:
    """Wait until describe() raises NotFound."""
    wait_until(describe, is_gone, **kwargs)
