"""
CRUD operations for the ChemSearch primary store.

Session-first helpers used by :class:`~chemsearch.database.store.SQLCompoundStore`:
- Compound insert and lookup
- Filtered, sorted, paginated search
- Vector-index bookkeeping (``is_processed``)
"""

from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Select

from ..types import WEIGHT_BUCKETS, Compound, SearchQuery, SortOrder
from .models import CompoundRecord


# ============================================================================
# COMPOUND CRUD OPERATIONS
# ============================================================================

def insert_compound(session: Session, compound: Compound) -> CompoundRecord:
    """
    Insert a new compound row.

    Args:
        session: Database session
        compound: Canonical compound (its ``id`` is ignored)

    Returns:
        Created CompoundRecord with its surrogate id assigned

    Raises:
        IntegrityError: If the cid already exists
    """
    record = CompoundRecord.from_compound(compound)
    session.add(record)
    session.flush()
    return record


def bulk_insert_compounds(
    session: Session,
    compounds: Sequence[Compound],
    chunk_size: int = 500,
) -> List[CompoundRecord]:
    """
    Insert compounds in chunks without per-row existence checks.

    The caller must already have removed cids that exist in the table or
    repeat within ``compounds``.

    Args:
        session: Database session
        compounds: Deduplicated compounds
        chunk_size: Rows flushed per round trip

    Returns:
        Inserted records, in input order

    Raises:
        IntegrityError: If any cid already exists
    """
    records = [CompoundRecord.from_compound(compound) for compound in compounds]

    for i in range(0, len(records), chunk_size):
        session.add_all(records[i:i + chunk_size])
        session.flush()

    return records


def get_compound_by_cid(session: Session, cid: int) -> Optional[CompoundRecord]:
    """
    Retrieve a compound by PubChem CID.

    Returns:
        CompoundRecord or None if not found
    """
    return session.execute(
        select(CompoundRecord).where(CompoundRecord.cid == cid)
    ).scalar_one_or_none()


def get_compound_by_id(session: Session, compound_id: int) -> Optional[CompoundRecord]:
    """Retrieve a compound by surrogate id, or None."""
    return session.get(CompoundRecord, compound_id)


def get_existing_cids(session: Session, cids: Iterable[int]) -> Set[int]:
    """Return the subset of ``cids`` already present in the table."""
    cids = list(cids)
    if not cids:
        return set()
    return set(
        session.execute(
            select(CompoundRecord.cid).where(CompoundRecord.cid.in_(cids))
        ).scalars()
    )


def list_compounds(session: Session, limit: int = 100, offset: int = 0) -> List[CompoundRecord]:
    """List compounds in primary-key order."""
    stmt = select(CompoundRecord).order_by(CompoundRecord.id).offset(offset).limit(limit)
    return list(session.execute(stmt).scalars())


def count_compounds(session: Session) -> int:
    """Total number of compound rows."""
    return session.execute(select(func.count(CompoundRecord.id))).scalar_one()


# ============================================================================
# SEARCH
# ============================================================================

def weight_bucket_clause(bucket: str) -> ColumnElement[bool]:
    """
    SQL predicate for a molecular-weight bucket.

    Compounds with unknown weight never match.
    """
    lower, lower_inclusive, upper, upper_inclusive = WEIGHT_BUCKETS[bucket]
    column = CompoundRecord.molecular_weight

    clauses = [column.is_not(None)]
    if lower is not None:
        clauses.append(column >= lower if lower_inclusive else column > lower)
    if upper is not None:
        clauses.append(column <= upper if upper_inclusive else column < upper)
    return and_(*clauses)


def chemical_class_clause(label: str) -> ColumnElement[bool]:
    """SQL predicate: ``label`` is a member of the compound's class array (case-insensitive)."""
    members = func.json_each(CompoundRecord.chemical_class).table_valued("value")
    return exists(
        select(1).select_from(members).where(func.lower(members.c.value) == label.lower())
    )


def keyword_clause(text: str) -> ColumnElement[bool]:
    """Case-insensitive substring match OR'd across name, description and formula."""
    return or_(
        CompoundRecord.name.icontains(text, autoescape=True),
        CompoundRecord.description.icontains(text, autoescape=True),
        CompoundRecord.formula.icontains(text, autoescape=True),
    )


def build_search_statement(query: SearchQuery) -> Select:
    """Filtered (unsorted, unpaginated) select for a search query."""
    stmt = select(CompoundRecord)

    text = (query.query or "").strip()
    if text:
        stmt = stmt.where(keyword_clause(text))
    if query.weight_bucket:
        stmt = stmt.where(weight_bucket_clause(query.weight_bucket))
    if query.class_filter:
        stmt = stmt.where(chemical_class_clause(query.class_filter))

    return stmt


def apply_sort(stmt: Select, sort: SortOrder) -> Select:
    """
    Order ascending by the requested key.

    Nulls sort last and the primary key breaks ties, so ``relevance``
    is plain insertion order.
    """
    if sort is SortOrder.MOLECULAR_WEIGHT:
        column = CompoundRecord.molecular_weight
        return stmt.order_by(column.is_(None), column, CompoundRecord.id)
    if sort is SortOrder.NAME:
        return stmt.order_by(func.lower(CompoundRecord.name), CompoundRecord.id)
    return stmt.order_by(CompoundRecord.id)


def search_compounds(session: Session, query: SearchQuery) -> Tuple[List[CompoundRecord], int]:
    """
    Run a keyword/filter search.

    Args:
        session: Database session
        query: Validated search query

    Returns:
        Tuple of (records on the requested page, total filtered count)
    """
    filtered = build_search_statement(query)

    total = session.execute(
        select(func.count()).select_from(filtered.subquery())
    ).scalar_one()

    page_stmt = apply_sort(filtered, query.sort).offset(query.offset).limit(query.limit)
    records = list(session.execute(page_stmt).scalars())

    return records, total


# ============================================================================
# VECTOR INDEX BOOKKEEPING
# ============================================================================

def mark_compounds_processed(session: Session, cids: Iterable[int]) -> int:
    """
    Flag compounds as written to the vector index.

    Returns:
        Number of rows updated
    """
    cids = list(cids)
    if not cids:
        return 0
    result = session.execute(
        update(CompoundRecord)
        .where(CompoundRecord.cid.in_(cids))
        .values(is_processed=True)
    )
    return result.rowcount


def list_unprocessed(session: Session, limit: Optional[int] = None) -> List[CompoundRecord]:
    """Rows not yet written to the vector index, in primary-key order."""
    stmt = (
        select(CompoundRecord)
        .where(CompoundRecord.is_processed.is_(False))
        .order_by(CompoundRecord.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(session.execute(stmt).scalars())
