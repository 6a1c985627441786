"""Thread-pool helpers for splitting array work into contiguous chunks."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


def resolve_workers(workers: Optional[int]) -> int:
    if workers is None:
        return os.cpu_count() or 1
    return workers


def chunk_bounds(length: int, n_chunks: int) -> List[slice]:
    """Split ``range(length)`` into at most ``n_chunks`` contiguous slices."""
    n_chunks = max(1, min(n_chunks, length))
    step, extra = divmod(length, n_chunks)
    bounds = []
    start = 0
    for i in range(n_chunks):
        stop = start + step + (1 if i < extra else 0)
        bounds.append(slice(start, stop))
        start = stop
    return bounds


def run_chunks(
    func: Callable[[slice], None],
    length: int,
    parallel: bool,
    workers: Optional[int],
) -> None:
    """Call ``func(chunk)`` for every chunk of ``range(length)``.

    Chunks are disjoint, so ``func`` may write its own slice of a shared
    output without locking. Exceptions raised by a worker propagate.
    """
    n_workers = resolve_workers(workers) if parallel else 1
    chunks = chunk_bounds(length, n_workers)
    if len(chunks) <= 1:
        for chunk in chunks:
            func(chunk)
        return

    logger.debug("running %d chunks over %d workers", len(chunks), n_workers)
    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(func, chunk) for chunk in chunks]
        for future in futures:
            future.result()
