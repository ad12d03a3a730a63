"""
In-memory filter, sort and pagination helpers.

Used by the vector store (which keeps its projections in memory) and by
the search coordinator when re-applying filters to a backend's page.
All helpers are idempotent and sorting is stable.
"""

from typing import Iterable, List, Optional, Sequence, TypeVar

from ..types import WEIGHT_BUCKETS, SortOrder

T = TypeVar('T')


def matches_weight_bucket(weight: Optional[float], bucket: Optional[str]) -> bool:
    """
    Check a molecular weight against a bucket.

    An empty bucket matches everything; an unknown weight matches no bucket.
    """
    if not bucket:
        return True
    if weight is None:
        return False

    lower, lower_inclusive, upper, upper_inclusive = WEIGHT_BUCKETS[bucket]
    if lower is not None and (weight < lower or (weight == lower and not lower_inclusive)):
        return False
    if upper is not None and (weight > upper or (weight == upper and not upper_inclusive)):
        return False
    return True


def matches_chemical_class(classes: Optional[Iterable[str]], label: Optional[str]) -> bool:
    """Case-insensitive membership test; a None label matches everything."""
    if not label:
        return True
    wanted = label.lower()
    return any(item.lower() == wanted for item in classes or ())


def matches_keyword(texts: Iterable[Optional[str]], keyword: Optional[str]) -> bool:
    """Case-insensitive substring match against any of ``texts``."""
    keyword = (keyword or '').strip().lower()
    if not keyword:
        return True
    return any(keyword in text.lower() for text in texts if text)


def sort_results(results: Sequence[T], sort: SortOrder) -> List[T]:
    """
    Stable ascending sort of search hits.

    ``name`` ignores case; ``molecular_weight`` puts unknown weights last.
    ``relevance`` keeps the incoming order.
    """
    if sort is SortOrder.NAME:
        return sorted(results, key=lambda r: (r.name or '').lower())
    if sort is SortOrder.MOLECULAR_WEIGHT:
        return sorted(
            results,
            key=lambda r: (r.molecular_weight is None, r.molecular_weight or 0.0),
        )
    return list(results)


def paginate(items: Sequence[T], page: int, limit: int) -> List[T]:
    """Slice out one 1-based page."""
    start = (page - 1) * limit
    return list(items[start:start + limit])
