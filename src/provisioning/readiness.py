"""
Repository Readiness.

After a repository is generated from a template, the host copies the template
files asynchronously and signals nothing when done. Readiness is detected by
polling for a file the template is known to contain; when no such file is
known, or polling times out, a fixed settle delay is used instead.
"""

import asyncio
import math
from typing import Awaitable, Callable, Optional

from config import logger, settings
from errors import ObjectStoreError
from store.base import ObjectStore

Sleep = Callable[[float], Awaitable[None]]


async def wait_until_ready(
    store: ObjectStore,
    path: Optional[str],
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    fallback_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """
    Wait until ``path`` exists in the repository.

    Args:
        store (ObjectStore): Freshly generated repository
        path (Optional[str]): File expected from the template
        timeout (Optional[float]): Polling budget in seconds
        interval (Optional[float]): Seconds between checks
        fallback_delay (Optional[float]): Fixed delay when readiness is unknown
        sleep (Sleep): Awaitable sleep, replaceable in tests

    Returns:
        bool: True if the file was seen, False if the fallback delay was used
    """
    timeout = settings.readiness_timeout if timeout is None else timeout
    interval = settings.readiness_interval if interval is None else interval
    fallback_delay = settings.settle_delay if fallback_delay is None else fallback_delay

    if not path:
        await sleep(fallback_delay)
        return False

    attempts = max(1, math.ceil(timeout / interval)) if interval > 0 else 1
    for attempt in range(1, attempts + 1):
        try:
            if await store.get_file(path) is not None:
                logger.info(
                    {
                        "message": "Repository ready",
                        "repository": store.full_name,
                        "readiness_file": path,
                        "attempts": attempt,
                    }
                )
                return True
        except ObjectStoreError as e:
            logger.debug(
                {
                    "message": "Readiness check failed",
                    "repository": store.full_name,
                    "error": str(e),
                }
            )
        if attempt < attempts:
            await sleep(interval)

    logger.warning(
        {
            "message": "Repository readiness not observed, using settle delay",
            "repository": store.full_name,
            "readiness_file": path,
            "settle_delay": fallback_delay,
        }
    )
    await sleep(fallback_delay)
    return False
