"""Static partitioning of documents into execution groups."""

from __future__ import annotations

import math
from collections.abc import Sequence

from browsertest.runner.models import ExecutionGroup, TestDocument


def partition(documents: Sequence[TestDocument], width: int) -> list[ExecutionGroup]:
    """Split documents into contiguous groups, one per execution context.

    Group count is ``min(width, len(documents))`` and each group holds
    ``ceil(len / groups)`` documents, so only trailing groups can be short.
    Trailing groups can come out empty (5 documents over 4 contexts gives
    sizes 2, 2, 1, 0); they are kept so the count stays ``min(width, len)``.
    There is no rebalancing between groups.

    Raises:
        ValueError: If width is less than 1.
    """
    if width < 1:
        raise ValueError(f"Concurrency width must be at least 1, got {width}")
    if not documents:
        return []

    count = min(width, len(documents))
    size = math.ceil(len(documents) / count)

    groups: list[ExecutionGroup] = []
    for index in range(count):
        chunk = tuple(documents[index * size : (index + 1) * size])
        groups.append(ExecutionGroup(index=index, documents=chunk))
    return groups
