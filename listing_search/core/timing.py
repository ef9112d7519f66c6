"""Soft latency budgets for relational calls.

Every storage round-trip in the search path runs inside ``query_budget(name)``. The block always
runs to completion; the guard only records how long it took and warns when the configured budget
was exceeded. Nothing is aborted or retried here.
"""

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from listing_search.core.config import get_settings

logger = logging.getLogger(__name__)


@contextmanager
def query_budget(operation: str, budget_ms: int | None = None) -> Iterator[None]:
    """Time the wrapped block and log it against the operation's budget."""
    if budget_ms is None:
        budget_ms = get_settings().query_budget_ms(operation)
    start = time.perf_counter()
    failed = False
    try:
        yield
    except Exception:
        failed = True
        raise
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "query_timing | op=%s elapsed_ms=%d budget_ms=%d failed=%s",
            operation,
            elapsed_ms,
            budget_ms,
            failed,
            extra={"operation": operation, "elapsed_ms": elapsed_ms, "budget_ms": budget_ms},
        )
        if elapsed_ms > budget_ms:
            logger.warning(
                "query_budget exceeded | op=%s elapsed_ms=%d budget_ms=%d",
                operation,
                elapsed_ms,
                budget_ms,
                extra={"operation": operation, "elapsed_ms": elapsed_ms, "budget_ms": budget_ms},
            )
