"""
Polling helper for waiting on eventual server-side readiness.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


async def poll(callback: Callable[[], Awaitable[bool]], interval: float = 2.0, timeout: float = 15.0) -> bool:
    """
    Await ``callback()`` every ``interval`` seconds until it returns truthy.

    Stops once ``timeout`` seconds have elapsed. Timing out is not an error:
    the result is False and callers treat it as "still not ready".
    Exceptions raised by ``callback`` propagate.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0

    while True:
        attempts += 1
        if await callback():
            return True

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.debug(f"Polling stopped after {attempts} attempts without readiness")
            return False

        await asyncio.sleep(min(interval, remaining))
