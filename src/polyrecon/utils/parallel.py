"""Worker pool helpers for the embarrassingly parallel parts of each step."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def resolve_workers(max_workers: int | None) -> int:
    """Bound the pool by available hardware concurrency."""
    available = os.cpu_count() or 1
    if max_workers is None or max_workers <= 0:
        return available
    return min(max_workers, available)


def parallel_map(
    fn: Callable[[T], R],
    items: Iterable[T],
    max_workers: int | None = None,
) -> list[R]:
    """Apply ``fn`` to every item on a thread pool; results keep input order.

    Exceptions raised by ``fn`` propagate to the caller.
    """
    items = list(items)
    workers = resolve_workers(max_workers)
    if workers == 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(fn, items))
