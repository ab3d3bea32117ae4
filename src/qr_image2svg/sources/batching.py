"""
Batched request/response helper.

Backends that answer many queries per invocation (e.g. one subprocess call
for a group of pixel coordinates) must keep every answer tied to the request
that produced it. query_in_batches() splits the requests into fixed-size
groups and checks that each group comes back with exactly one answer per
request, in order.
"""

from typing import Callable, List, Sequence, TypeVar
import logging

from ..errors import PixelQueryError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BATCH_SIZE = 50


def query_in_batches(
    requests: Sequence[T],
    query: Callable[[Sequence[T]], Sequence[R]],
    batch_size: int = DEFAULT_BATCH_SIZE
) -> List[R]:
    """
    Run query() over consecutive chunks of requests.

    Args:
        requests: Items to resolve, in the order results are wanted
        query: Callable resolving one chunk; must return one result per item
        batch_size: Maximum items handed to a single query() call

    Returns:
        List of results, results[i] belonging to requests[i]

    Raises:
        PixelQueryError: If a chunk returns a different number of results
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    results: List[R] = []
    for start in range(0, len(requests), batch_size):
        chunk = requests[start:start + batch_size]
        answers = list(query(chunk))
        if len(answers) != len(chunk):
            raise PixelQueryError(
                f"Batch at offset {start} returned {len(answers)} results "
                f"for {len(chunk)} requests"
            )
        results.extend(answers)

    logger.debug(
        "Resolved %d requests in %d batches",
        len(requests), (len(requests) + batch_size - 1) // batch_size
    )
    return results
