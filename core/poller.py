"""
core/poller.py
Health poller — bounded, fixed-interval wait for a probe to turn true.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5  # seconds between probes


def wait_until(probe: Callable[[], bool], timeout: float,
               interval: float = POLL_INTERVAL,
               sleep: Callable[[float], None] = time.sleep,
               clock: Callable[[], float] = time.monotonic) -> bool:
    """Call *probe* until it returns True or *timeout* seconds elapse.

    The first call happens immediately. A probe that raises counts as False.
    Returns whether the probe succeeded.
    """
    deadline = clock() + timeout
    attempts = 0
    while True:
        attempts += 1
        try:
            if probe():
                logger.debug("probe succeeded after %d attempt(s)", attempts)
                return True
        except Exception as e:
            logger.debug("probe attempt %d raised: %s", attempts, e)

        remaining = deadline - clock()
        if remaining <= 0:
            logger.debug("probe gave up after %d attempt(s)", attempts)
            return False
        sleep(min(interval, remaining))
