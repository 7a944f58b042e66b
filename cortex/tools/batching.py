import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

async def gather_in_batches(
    values: Sequence[T],
    batch_size: int,
    fn: Callable[[T], Awaitable[R]],
) -> List[R]:
    """
    Runs fn over values in fixed-size concurrent chunks, one chunk at a time.
    Results keep input order. An exception from fn propagates; callers that want
    per-value failures dropped should return None instead.
    """
    results: List[R] = []
    for start in range(0, len(values), batch_size):
        chunk = values[start:start + batch_size]
        results.extend(await asyncio.gather(*(fn(v) for v in chunk)))
    return results
