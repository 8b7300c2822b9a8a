"""Counting helpers shared by the usage statistics."""

from collections import Counter
from collections.abc import Iterable


def most_frequent(values: Iterable[str]) -> str:
    """Most common value, or "" when there is none.

    Ties go to the value whose first appearance came latest.
    """
    counts = Counter(values)
    best: str | None = None
    for value, count in counts.items():
        if best is None or count >= counts[best]:
            best = value
    return best if best is not None else ""
