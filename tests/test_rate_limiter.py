"""Test the jittered pause and the retry policies."""
import random

import pytest
from execution.rate_limiter import JitterDelay
from execution.retry_handler import RetryHandler, page_retry_handler
from utils.errors import DraftFailure, FrozenFailure, RateLimitFailure, TimeoutFailure


def test_jitter_stays_within_bounds():
    """Test delays and the injected sleep."""
    slept = []
    jitter = JitterDelay(0.8, 1.5, sleep=slept.append, rng=random.Random(7))

    delays = [jitter.wait() for _ in range(20)]

    assert slept == delays
    assert all(0.8 <= d <= 1.5 for d in delays)


@pytest.mark.parametrize("low, high", [(-1, 1), (2, 1)])
def test_jitter_rejects_bad_bounds(low, high):
    """Test bound validation."""
    with pytest.raises(ValueError):
        JitterDelay(low, high)


class Flaky:
    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return value


def test_retry_handler_retries_rate_limits():
    """Test that throttling is retried up to the limit."""
    func = Flaky([RateLimitFailure("429"), RateLimitFailure("429")])

    assert RetryHandler(max_retries=3, base_delay=0).execute_with_retry(func, "ok") == "ok"
    assert func.calls == 3


def test_retry_handler_does_not_retry_other_errors():
    """Test that non-retryable failures propagate at once."""
    func = Flaky([DraftFailure("bad")])

    with pytest.raises(DraftFailure):
        RetryHandler(max_retries=3, base_delay=0).execute_with_retry(func, "ok")
    assert func.calls == 1


def test_page_retry_handler_allows_one_local_retry():
    """Test the page level policy for timeouts and frozen writes."""
    handler = page_retry_handler(retries=1)

    recovered = Flaky([TimeoutFailure("slow")])
    assert handler.execute_with_retry(recovered, "ok") == "ok"

    persistent = Flaky([FrozenFailure("gone"), FrozenFailure("gone again")])
    with pytest.raises(FrozenFailure) as exc_info:
        handler.execute_with_retry(persistent, "ok")
    assert str(exc_info.value) == "gone again"
    assert persistent.calls == 2


def test_page_retry_handler_backs_off_after_throttling():
    """Test that a throttled page waits before its retry while a timeout does not."""
    slept = []
    handler = page_retry_handler(retries=1, rate_limit_delay=2.5, sleep=slept.append)

    throttled = Flaky([RateLimitFailure("429")])
    assert handler.execute_with_retry(throttled, "ok") == "ok"
    assert throttled.calls == 2
    assert slept == [2.5]

    slept.clear()
    timed_out = Flaky([TimeoutFailure("slow")])
    assert handler.execute_with_retry(timed_out, "ok") == "ok"
    assert all(delay == 0 for delay in slept)


def test_page_retry_handler_waits_by_default_on_throttling():
    """Test the configured page level wait for rate limits is not zero."""
    slept = []
    handler = page_retry_handler(retries=1, sleep=slept.append)

    assert handler.execute_with_retry(Flaky([RateLimitFailure("429")]), "ok") == "ok"
    assert slept and slept[0] > 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
