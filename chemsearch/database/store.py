"""
Primary store adapter.

Defines the narrow interface the rest of ChemSearch uses for the system
of record, plus the SQLAlchemy/SQLite implementation. Lookups return
None when a compound is absent; connectivity and provisioning failures
are raised as :class:`PrimaryStoreUnavailableError`.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Generator, Iterable, List, Optional, Sequence

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PrimaryStoreUnavailableError
from ..types import (
    Compound,
    CompoundSearchResult,
    SearchQuery,
    SearchResponse,
    SearchType,
    total_pages,
)
from . import crud
from .connection import DatabaseManager

logger = logging.getLogger(__name__)


class PrimaryStore(ABC):
    """Durable keyed storage with filterable, sortable, paginated listing."""

    @abstractmethod
    def initialize(self) -> None:
        """Provision tables if they do not exist."""

    @abstractmethod
    def get_by_cid(self, cid: int) -> Optional[Compound]:
        pass

    @abstractmethod
    def get_by_id(self, compound_id: int) -> Optional[Compound]:
        pass

    @abstractmethod
    def create(self, compound: Compound) -> Compound:
        """Insert, or return the existing row unchanged if the cid is present."""

    @abstractmethod
    def batch_create(self, compounds: Sequence[Compound]) -> List[Compound]:
        """
        Insert many compounds in one transaction.

        Callers are expected to have deduplicated ``compounds`` against the
        store and within the batch; no per-row existence check is made.
        """

    @abstractmethod
    def list(self, limit: int = 100, offset: int = 0) -> List[Compound]:
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def search(self, query: SearchQuery) -> SearchResponse:
        pass

    @abstractmethod
    def mark_processed(self, cids: Iterable[int]) -> int:
        pass

    @abstractmethod
    def list_unprocessed(self, limit: Optional[int] = None) -> List[Compound]:
        pass


class SQLCompoundStore(PrimaryStore):
    """
    SQLite-backed primary store.

    Every call runs in its own transactional session scope, so the store
    can be shared between threads.
    """

    def __init__(self, db: DatabaseManager):
        """
        Args:
            db: Database manager owning the engine and session factory
        """
        self.db = db

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        """Session scope that maps driver failures to PrimaryStoreUnavailableError."""
        try:
            with self.db.session_scope() as session:
                yield session
        except IntegrityError:
            raise
        except (DBAPIError, SQLAlchemyError) as e:
            logger.error(f"Primary store operation failed: {e}")
            raise PrimaryStoreUnavailableError(str(e)) from e

    def initialize(self) -> None:
        try:
            existed = self.db.has_schema()
            self.db.create_all_tables()
        except SQLAlchemyError as e:
            raise PrimaryStoreUnavailableError(f"could not create tables: {e}") from e
        if existed:
            logger.info(f"Primary store ready at {self.db.database_url}")
        else:
            logger.info(f"Created compounds table at {self.db.database_url}")

    def get_by_cid(self, cid: int) -> Optional[Compound]:
        with self._session() as session:
            record = crud.get_compound_by_cid(session, cid)
            return record.to_compound() if record else None

    def get_by_id(self, compound_id: int) -> Optional[Compound]:
        with self._session() as session:
            record = crud.get_compound_by_id(session, compound_id)
            return record.to_compound() if record else None

    def create(self, compound: Compound) -> Compound:
        try:
            with self._session() as session:
                existing = crud.get_compound_by_cid(session, compound.cid)
                if existing is not None:
                    logger.debug(f"Compound cid={compound.cid} already stored, keeping existing row")
                    return existing.to_compound()
                return crud.insert_compound(session, compound).to_compound()
        except IntegrityError:
            # Lost a race with a concurrent writer for the same cid
            existing = self.get_by_cid(compound.cid)
            if existing is None:
                raise
            return existing

    def batch_create(self, compounds: Sequence[Compound]) -> List[Compound]:
        if not compounds:
            return []

        try:
            with self._session() as session:
                records = crud.bulk_insert_compounds(session, compounds)
                created = [record.to_compound() for record in records]
            logger.debug(f"Batch inserted {len(created)} compounds")
            return created
        except IntegrityError as e:
            # A cid slipped past the caller's dedup; the batch was rolled back
            logger.warning(
                f"Batch insert of {len(compounds)} compounds hit a duplicate cid, "
                f"retrying row by row: {e.orig}"
            )

        created = []
        seen = set()
        for compound in compounds:
            if compound.cid in seen:
                continue
            seen.add(compound.cid)
            created.append(self.create(compound))
        return created

    def list(self, limit: int = 100, offset: int = 0) -> List[Compound]:
        with self._session() as session:
            return [record.to_compound() for record in crud.list_compounds(session, limit, offset)]

    def count(self) -> int:
        with self._session() as session:
            return crud.count_compounds(session)

    def search(self, query: SearchQuery) -> SearchResponse:
        with self._session() as session:
            records, total = crud.search_compounds(session, query)
            results = [
                CompoundSearchResult.from_compound(record.to_compound()) for record in records
            ]

        return SearchResponse(
            results=results,
            total_results=total,
            page=query.page,
            total_pages=total_pages(total, query.limit),
            query=query.query,
            search_type=SearchType.KEYWORD,
        )

    def mark_processed(self, cids: Iterable[int]) -> int:
        with self._session() as session:
            return crud.mark_compounds_processed(session, cids)

    def list_unprocessed(self, limit: Optional[int] = None) -> List[Compound]:
        with self._session() as session:
            return [record.to_compound() for record in crud.list_unprocessed(session, limit)]
