"""Review aggregation for batches.

The batch average is always recomputed from the full list of stored
ratings.  Identity reputation uses a running average instead
(``services/identities.py``).
"""

from collections.abc import Iterable


def average_rating(ratings: Iterable[int | float]) -> float:
    """Arithmetic mean of ``ratings``; 0.0 for an empty list."""
    values = list(ratings)
    if not values:
        return 0.0
    return sum(values) / len(values)
