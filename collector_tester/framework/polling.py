"""
Bounded polling for eventually-true conditions.

Used wherever a test would otherwise sleep for a fixed time and hope: waiting
for the collector to accept connections, for spans to reach the mock
endpoint, and so on.
"""

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Union

from .errors import WaitTimeoutError

logger = logging.getLogger(__name__)

Check = Callable[[], Union[bool, Awaitable[bool]]]

DEFAULT_INTERVAL_SECONDS = 0.05


class PollingWaiter:
    """
    Re-evaluates a check at a fixed interval until it passes or time runs out.

    The interval is constant; there is no backoff.
    """

    def __init__(self, interval_seconds: float = DEFAULT_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.interval_seconds = interval_seconds

    async def wait_until(
        self,
        check: Check,
        timeout_seconds: float,
        description: str = "condition",
    ) -> float:
        """
        Wait until ``check`` returns a truthy value.

        The check runs immediately, then once per interval. The last sleep is
        clipped to the deadline and the check gets one final evaluation there.
        Exceptions raised by the check propagate unchanged.

        Args:
            check: Zero-argument callable returning a bool or an awaitable bool
            timeout_seconds: How long to keep polling
            description: Human-readable label used in the timeout error

        Returns:
            Seconds elapsed until the check passed

        Raises:
            WaitTimeoutError: If the check never passed before the deadline
        """
        start = time.monotonic()
        deadline = start + timeout_seconds

        while True:
            result = check()
            if inspect.isawaitable(result):
                result = await result
            now = time.monotonic()
            if result:
                return now - start
            if now >= deadline:
                elapsed = now - start
                logger.debug("Gave up on %s after %.3fs", description, elapsed)
                raise WaitTimeoutError(description, timeout_seconds, elapsed)
            await asyncio.sleep(min(self.interval_seconds, deadline - now))
