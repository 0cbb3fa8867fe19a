"""Order-preserving bounded parallel map over a thread pool.

Used by the normalizer to parse rows of large exports concurrently. Rows are
independent, so the output (and any per-row error records the mapper
returns) is identical to a sequential run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` workers.

    The result preserves input order. The first mapper exception propagates
    after pending work is cancelled.
    """

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = list(iterable)
    if concurrency == 1 or len(items) <= 1:
        return [mapper(item) for item in items]

    with ThreadPoolExecutor(
        max_workers=min(concurrency, len(items)), thread_name_prefix="spaarapp-pmap"
    ) as pool:
        futures = [pool.submit(mapper, item) for item in items]
        try:
            return [f.result() for f in futures]
        except BaseException:
            for f in futures:
                f.cancel()
            raise


__all__ = ["p_map"]
