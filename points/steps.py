"""Best-effort step combinator.

Cosmetic UI steps (consent banner, agreement checkbox) must never break a
run: their absence is normal, and any other failure is only worth a log
line.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from core.errors import NotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def optional_step(
    name: str,
    factory: Callable[[], Awaitable[T]],
) -> Optional[T]:
    """Run ``factory()`` and swallow every failure.

    Args:
        name: Step name for the log.
        factory: Zero-argument coroutine function performing the step.

    Returns:
        The step's result, or ``None`` if it did not complete.
    """
    try:
        return await factory()
    except NotFound:
        logger.debug("Optional step '%s' skipped: element not present", name)
    except Exception as e:
        logger.warning("Optional step '%s' failed: %s", name, e)
    return None
