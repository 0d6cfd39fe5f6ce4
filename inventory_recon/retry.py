import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from . import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(attempt: int, step: float = settings.RETRY_BACKOFF_SECONDS) -> float:
    """Attempt 1 waits `step` seconds, attempt 2 waits 2 * `step`, and so on."""
    return attempt * step


@dataclass
class RetryPolicy:
    """
    How many times to try a call, how long to wait in between,
    and which errors are worth another attempt.

    `max_attempts` counts the first try, so the default of
    1 + RETRY_ATTEMPTS means "retry twice".
    """

    max_attempts: int = 1 + settings.RETRY_ATTEMPTS
    backoff: Callable[[int], float] = linear_backoff
    is_retryable: Callable[[Exception], bool] = lambda exc: False
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def call(self, func: Callable[[], T], description: str = "request") -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.is_retryable(exc):
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    f"⏳ {description} failed on attempt {attempt}/{self.max_attempts} "
                    f"({exc}). Retrying in {delay:g}s..."
                )
                self.sleep(delay)
        # max_attempts < 1
        raise ValueError("RetryPolicy.max_attempts must be at least 1")
