"""Data-parallel helpers for per-cell stages."""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CHUNK_SIZE = 1024


def chunked(items: Sequence[T], chunk_size: int) -> List[Sequence[T]]:
    """Split a sequence into contiguous slices of at most ``chunk_size``."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [items[start:start + chunk_size] for start in range(0, len(items), chunk_size)]


def parallel_map(
    fn: Callable[[Sequence[T]], R],
    items: Sequence[T],
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> List[R]:
    """
    Apply ``fn`` to contiguous chunks of ``items`` across worker threads.

    ``fn`` receives a chunk (a slice of ``items``) and must not mutate shared
    state. Results come back in chunk order regardless of completion order,
    and exceptions raised by ``fn`` propagate to the caller.

    Args:
        fn: Function applied to each chunk
        items: Sequence (list, range or ndarray) to split
        workers: Thread count; ``None`` or <= 1 runs inline
        chunk_size: Maximum chunk length

    Returns:
        One result per chunk, in order
    """
    chunks = chunked(items, chunk_size)
    if not workers or workers <= 1 or len(chunks) <= 1:
        return [fn(chunk) for chunk in chunks]

    logger.debug("Dispatching chunks", chunks=len(chunks), workers=workers)
    with ThreadPoolExecutor(max_workers=min(workers, len(chunks))) as executor:
        return list(executor.map(fn, chunks))
