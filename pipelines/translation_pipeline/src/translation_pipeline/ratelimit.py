from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class RequestRateLimiter:
    """
    Rolling request counter shared by every batch of a run: after `threshold` requests the next one
    waits `cooldown_s` first.
    """

    def __init__(self, threshold: int, cooldown_s: float, *, sleep: Callable[[float], None]) -> None:
        self.threshold = threshold
        self.cooldown_s = cooldown_s
        self.sleep = sleep
        self.count = 0

    def before_request(self) -> None:
        if self.threshold > 0 and self.count >= self.threshold:
            logger.info("Made %d requests; cooling down for %.0fs", self.count, self.cooldown_s)
            self.sleep(self.cooldown_s)
            self.count = 0
        self.count += 1
