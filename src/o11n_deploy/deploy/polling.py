"""Bounded fixed-delay polling with cooperative cancellation."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import structlog

from o11n_deploy.core.exceptions import DeploymentCancelledError, O11nDeployError
from o11n_deploy.deploy.models import PollResult, PollState


logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    max_attempts: int
    delay: float


# Worst case 55 seconds of waiting for the service to come back.
RESTART_WAIT = PollPolicy(max_attempts=12, delay=5.0)
# Worst case 115 seconds of waiting for pending configuration changes.
CONVERGENCE_WAIT = PollPolicy(max_attempts=24, delay=5.0)


class CancellationToken:
    """Lets another thread (or a signal handler) stop a running deployment."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DeploymentCancelledError()

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, waking up early if cancelled."""
        if self._event.wait(seconds):
            raise DeploymentCancelledError()


def poll_until(
    check: Callable[[], T],
    is_done: Callable[[T], bool],
    max_attempts: int,
    delay: float,
    *,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[Callable[[float], None]] = None,
    description: str = "condition",
) -> PollResult[T]:
    """Call ``check`` until ``is_done`` accepts its result or attempts run out.

    A ``check`` that raises an ``O11nDeployError`` aborts the loop at once;
    the failure does not count as a "not done" attempt.

    Raises:
        DeploymentCancelledError: if ``cancel_token`` fires.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if sleep is None:
        sleep = cancel_token.sleep if cancel_token is not None else time.sleep

    last: Optional[T] = None
    for attempt in range(1, max_attempts + 1):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            last = check()
        except DeploymentCancelledError:
            raise
        except O11nDeployError as e:
            logger.warning("Polling aborted", condition=description, attempt=attempt, error=str(e))
            return PollResult(PollState.ABORTED, attempt, error=e)

        if is_done(last):
            logger.debug("Polling finished", condition=description, attempt=attempt)
            return PollResult(PollState.DONE, attempt, value=last)

        if attempt < max_attempts:
            logger.info("Still waiting", condition=description, attempt=attempt, max_attempts=max_attempts)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            sleep(delay)

    logger.warning("Polling timed out", condition=description, attempts=max_attempts)
    return PollResult(PollState.TIMED_OUT, max_attempts, value=last)
