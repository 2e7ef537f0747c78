from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def bounded_map(
    func: Callable[[T], R],
    items: Sequence[T] | Iterable[T],
    max_workers: int,
) -> List[R]:
    """
    Run func over items with at most max_workers calls in flight and return
    the results in input order.

    Returns only once every submitted call has finished (a barrier). If a
    call raises, the remaining calls still run to completion and the first
    error in input order is raised afterwards, so no work is dropped silently.
    """
    items = list(items)
    if not items:
        return []
    workers = max(1, min(int(max_workers), len(items)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures: Dict[int, Future[R]] = {i: executor.submit(func, item) for i, item in enumerate(items)}
        wait(futures.values())
    results: List[R] = []
    for i in range(len(items)):
        results.append(futures[i].result())
    return results
