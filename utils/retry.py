"""
Bounded retry with backoff.

Two shapes cover every retry loop in the project:

- ``retry_call`` re-invokes a callable that raised, as long as the
  exception is one ``should_retry`` accepts.
- ``poll_until`` re-fetches a value until ``predicate`` accepts it
  (e.g. waiting for a SetupIntent to leave ``processing``).

Both take an explicit attempt budget and delay so the contract is visible at
the call site, and an injectable ``sleep`` so tests never wait.
"""
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised by poll_until when the predicate never accepted a value."""

    def __init__(self, description: str, attempts: int, last_value: Any = None):
        super().__init__(f"{description}: gave up after {attempts} attempts")
        self.attempts = attempts
        self.last_value = last_value


def backoff_delay(attempt: int, delay: float, backoff: float, max_delay: Optional[float] = None) -> float:
    """Delay before retry number ``attempt`` (0-based): delay * backoff**attempt."""
    sleep_for = delay * (backoff ** attempt)
    if max_delay is not None:
        sleep_for = min(sleep_for, max_delay)
    return sleep_for


def retry_call(
    fn: Callable[[], Any],
    should_retry: Callable[[Exception], bool],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    max_delay: Optional[float] = None,
    desc: str = 'call',
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Call ``fn`` until it succeeds, retrying exceptions ``should_retry`` accepts.

    The last exception is re-raised once ``max_attempts`` calls have failed;
    exceptions ``should_retry`` rejects are raised immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return fn()
        except Exception as e:
            if not should_retry(e) or attempt == max_attempts - 1:
                raise
            sleep_for = backoff_delay(attempt, delay, backoff, max_delay)
            logger.warning(
                f"{desc}: attempt {attempt + 1}/{max_attempts} failed ({e}); "
                f"retrying in {sleep_for:.2f}s"
            )
            sleep(sleep_for)


def poll_until(
    fetch: Callable[[], Any],
    predicate: Callable[[Any], bool],
    max_attempts: int = 5,
    delay: float = 1.0,
    backoff: float = 1.5,
    max_delay: Optional[float] = None,
    desc: str = 'poll',
    sleep: Callable[[float], None] = time.sleep,
    raise_on_exhaust: bool = False,
) -> Any:
    """
    Fetch a value until ``predicate(value)`` is true.

    Returns the first accepted value. When the budget runs out the last value
    is returned, or ``RetryExhausted`` is raised if ``raise_on_exhaust``.
    Exceptions from ``fetch`` propagate unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    value = None
    for attempt in range(max_attempts):
        value = fetch()
        if predicate(value):
            return value
        if attempt < max_attempts - 1:
            sleep_for = backoff_delay(attempt, delay, backoff, max_delay)
            logger.debug(f"{desc}: not ready after attempt {attempt + 1}, sleeping {sleep_for:.2f}s")
            sleep(sleep_for)

    if raise_on_exhaust:
        raise RetryExhausted(desc, max_attempts, value)
    return value
