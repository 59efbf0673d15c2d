"""Bounded retry with exponential backoff for durable backend calls.

Only TransientBackendError is retried. Everything else, including conflicts
and fatal rejections, propagates on the first occurrence.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from staging.errors import TransientBackendError
from observability.metrics import backend_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    base_delay: float = 2.0,
    operation_name: str = "call",
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Run ``operation`` with up to ``max_attempts`` tries.

    The delay before attempt n+1 is ``base_delay * 2**(n-1)`` seconds
    (2s, 4s, ... with the defaults).

    Raises:
        TransientBackendError: The last transient failure once attempts are exhausted
    """
    sleep = sleep or time.sleep
    attempt = 1
    while True:
        try:
            return operation()
        except TransientBackendError as e:
            if attempt >= max_attempts:
                logger.error(
                    f"{operation_name} failed after {attempt} attempt(s): {e}",
                    extra={"attempt": attempt}
                )
                raise

            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"{operation_name} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.1f}s: {e}",
                extra={"attempt": attempt}
            )
            backend_retries_total.labels(operation=operation_name).inc()
            sleep(delay)
            attempt += 1
