import random
import time
from typing import Callable, Optional

import config
from utils.logger import setup_logger

logger = setup_logger(__name__)


class JitterDelay:
    """Random pause between consecutive pages to smooth the request rate."""

    def __init__(
        self,
        min_seconds: float = config.MIN_JITTER_SECONDS,
        max_seconds: float = config.MAX_JITTER_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError("Jitter bounds must satisfy 0 <= min <= max")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self.sleep = sleep
        self.rng = rng or random.Random()

    def next_delay(self) -> float:
        return self.rng.uniform(self.min_seconds, self.max_seconds)

    def wait(self) -> float:
        """Block for a random delay and return it."""
        delay = self.next_delay()
        logger.debug(f"Waiting {delay:.2f}s before the next page")
        self.sleep(delay)
        return delay
