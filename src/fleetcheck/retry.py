# retry.py
from __future__ import annotations

import threading
import time
from typing import Callable, Optional, TypeVar

from .errors import RetryExhausted, RunCancelled
from .log import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Failures that count as "not yet" rather than "broken".
RETRYABLE = (AssertionError, ConnectionError)


def _check(predicate: Callable[[T], Optional[bool]], value: T) -> bool:
    verdict = predicate(value)
    # predicates may assert instead of returning
    return verdict is None or bool(verdict)


def retry_until(
    fn: Callable[[], T],
    predicate: Callable[[T], Optional[bool]],
    max_wait: float,
    poll_interval: float,
    *,
    cancel: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """
    Call `fn` until `predicate(fn())` holds, polling at a fixed interval.

    Returns the first accepted value; `fn` is never called again after that.
    AssertionError / ConnectionError from `fn` or `predicate` count as a
    failed attempt. Anything else propagates immediately.

    Raises:
        RetryExhausted: `max_wait` elapsed without success.
        RunCancelled: `cancel` was set while waiting.
    """
    if poll_interval <= 0:
        raise ValueError("poll_interval must be positive")

    if sleep is None:
        if cancel is not None:
            def sleep(seconds: float) -> None:
                if cancel.wait(seconds):
                    raise RunCancelled("cancelled while waiting to retry")
        else:
            sleep = time.sleep

    start = clock()
    deadline = start + max_wait
    attempts = 0
    last_result: Optional[T] = None
    last_error: BaseException | None = None

    while True:
        attempts += 1
        try:
            value = fn()
            last_result = value
            if _check(predicate, value):
                if attempts > 1:
                    log.debug("retry.succeeded", attempts=attempts)
                return value
            last_error = None
        except RETRYABLE as e:
            last_error = e

        now = clock()
        if now >= deadline:
            break

        log.debug("retry.waiting", attempt=attempts, error=str(last_error) if last_error else None)
        sleep(min(poll_interval, max(0.0, deadline - now)))

    elapsed = clock() - start
    exc = RetryExhausted(attempts, elapsed, last_result=last_result, last_error=last_error)
    if last_error is not None:
        raise exc from last_error
    raise exc
