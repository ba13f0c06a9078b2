"""Bounded retry policies built on tenacity."""
import time
from typing import Any, Callable, Tuple, Type

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from utils.errors import FrozenFailure, RateLimitFailure, TimeoutFailure
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

# Failures worth one more try at page level
TRANSIENT_PAGE_FAILURES = (TimeoutFailure, FrozenFailure, RateLimitFailure)


class RetryHandler:
    """Runs a callable, retrying a fixed set of exception types.

    The last exception is re-raised unchanged once attempts run out so
    callers can still classify it. ``rate_limit_delay`` sets a minimum
    wait before retrying after a RateLimitFailure, whatever the base
    backoff is.
    """

    def __init__(
        self,
        max_retries: int = config.RATE_LIMIT_RETRIES,
        base_delay: float = config.RATE_LIMIT_BACKOFF_SECONDS,
        retry_on: Tuple[Type[BaseException], ...] = (RateLimitFailure,),
        backoff: bool = True,
        rate_limit_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.retry_on = retry_on
        self.backoff = backoff
        self.rate_limit_delay = rate_limit_delay
        self.sleep = sleep

    def _log_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"{type(error).__name__}: {error}. Retry {retry_state.attempt_number}/{self.max_retries}"
        )

    def _wait_strategy(self) -> Callable:
        base_wait = (
            wait_exponential(multiplier=self.base_delay, min=self.base_delay, max=60)
            if self.backoff and self.base_delay > 0
            else wait_none()
        )
        if self.rate_limit_delay <= 0:
            return base_wait

        def wait(retry_state) -> float:
            delay = base_wait(retry_state)
            if isinstance(retry_state.outcome.exception(), RateLimitFailure):
                return max(delay, self.rate_limit_delay)
            return delay

        return wait

    def execute_with_retry(self, func: Callable, *args, **kwargs) -> Any:
        """Call ``func`` with up to ``max_retries`` retries."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait_strategy(),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(func, *args, **kwargs)


def page_retry_handler(
    retries: int = config.PAGE_RETRIES,
    base_delay: float = 0.0,
    rate_limit_delay: float = config.PAGE_RATE_LIMIT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryHandler:
    """Retry policy for a whole page run.

    Timeouts and frozen writes are retried at once; throttling waits
    ``rate_limit_delay`` seconds first.
    """
    return RetryHandler(
        max_retries=retries,
        base_delay=base_delay,
        retry_on=TRANSIENT_PAGE_FAILURES,
        backoff=base_delay > 0,
        rate_limit_delay=rate_limit_delay,
        sleep=sleep,
    )
