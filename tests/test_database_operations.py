"""
Tests for the primary store.

Tests:
- Compound insertion and retrieval (CRUD level)
- Idempotent create and batch insert
- Keyword, weight-bucket and chemical-class search
- Sorting and pagination
- Vector bookkeeping (is_processed)
- Outage reporting
"""

import pytest
from sqlalchemy.exc import IntegrityError

from chemsearch.database import DatabaseManager, SQLCompoundStore, crud
from chemsearch.database.connection import sqlite_url
from chemsearch.database.models import CompoundRecord
from chemsearch.errors import PrimaryStoreUnavailableError
from chemsearch.normalization import normalize_compound
from chemsearch.types import Compound, SearchQuery, SearchType, SortOrder
from tests.fixtures.test_data import ASPIRIN_PC_COMPOUNDS, WEIGHT_BOUNDARY_CASES


def keyword_query(text: str = "", **kwargs) -> SearchQuery:
    kwargs.setdefault("limit", 100)
    return SearchQuery(query=text, search_type=SearchType.KEYWORD, **kwargs)


def cids_of(response):
    return [result.cid for result in response.results]


# ============================================================================
# COMPOUND CRUD TESTS
# ============================================================================

class TestCompoundCRUD:
    """Tests for session-level compound operations."""

    def test_insert_compound_assigns_id(self, test_db_session):
        """Test insertion assigns a surrogate id."""
        record = crud.insert_compound(test_db_session, Compound(cid=2244, name="Aspirin"))
        test_db_session.commit()

        assert record.id is not None
        assert record.cid == 2244
        assert record.is_processed is False

    def test_json_columns_round_trip(self, test_db_session):
        """Test list and mapping fields survive storage."""
        compound = normalize_compound(ASPIRIN_PC_COMPOUNDS)
        crud.insert_compound(test_db_session, compound)
        test_db_session.commit()

        stored = crud.get_compound_by_cid(test_db_session, 2244).to_compound()

        assert stored.synonyms == compound.synonyms
        assert stored.chemical_class == compound.chemical_class
        assert stored.properties == compound.properties
        assert stored.molecular_weight == pytest.approx(180.16)

    def test_duplicate_cid_rejected(self, test_db_session):
        """Test the cid unique constraint."""
        crud.insert_compound(test_db_session, Compound(cid=2244, name="Aspirin"))
        test_db_session.commit()

        with pytest.raises(IntegrityError):
            crud.insert_compound(test_db_session, Compound(cid=2244, name="Other"))

    def test_non_positive_cid_rejected(self, test_db_session):
        """Test the cid check constraint."""
        with pytest.raises(IntegrityError):
            crud.insert_compound(test_db_session, Compound(cid=0, name="Nothing"))

    def test_get_missing_returns_none(self, test_db_session):
        assert crud.get_compound_by_cid(test_db_session, 999) is None
        assert crud.get_compound_by_id(test_db_session, 999) is None

    def test_get_existing_cids(self, test_db_session):
        """Test existence lookups for a batch of cids."""
        crud.bulk_insert_compounds(
            test_db_session,
            [Compound(cid=1, name="A"), Compound(cid=2, name="B")],
        )
        test_db_session.commit()

        assert crud.get_existing_cids(test_db_session, [1, 2, 3]) == {1, 2}
        assert crud.get_existing_cids(test_db_session, []) == set()

    def test_bulk_insert_in_chunks(self, test_db_session):
        """Test chunked bulk insert keeps input order."""
        compounds = [Compound(cid=i, name=f"Compound {i}") for i in range(1, 12)]
        records = crud.bulk_insert_compounds(test_db_session, compounds, chunk_size=5)
        test_db_session.commit()

        assert [record.cid for record in records] == list(range(1, 12))
        assert crud.count_compounds(test_db_session) == 11

    def test_list_compounds_paged(self, test_db_session):
        crud.bulk_insert_compounds(
            test_db_session, [Compound(cid=i, name=f"C{i}") for i in range(1, 6)]
        )
        test_db_session.commit()

        page = crud.list_compounds(test_db_session, limit=2, offset=2)
        assert [record.cid for record in page] == [3, 4]

    def test_record_repr(self):
        record = CompoundRecord(cid=2244, name="Aspirin")
        assert "2244" in repr(record)


# ============================================================================
# PRIMARY STORE TESTS
# ============================================================================

class TestPrimaryStoreWrites:
    """Tests for SQLCompoundStore create and batch_create."""

    def test_create_returns_stored_compound(self, primary_store):
        created = primary_store.create(Compound(cid=2244, name="Aspirin"))

        assert created.id is not None
        assert primary_store.get_by_id(created.id).cid == 2244

    def test_create_is_idempotent(self, primary_store):
        """Test a second create for the same cid leaves the first row untouched."""
        first = primary_store.create(Compound(cid=2244, name="Aspirin"))
        second = primary_store.create(Compound(cid=2244, name="Renamed"))

        assert second.id == first.id
        assert second.name == "Aspirin"
        assert primary_store.count() == 1

    def test_batch_create(self, primary_store, sample_compounds):
        created = primary_store.batch_create(sample_compounds)

        assert len(created) == len(sample_compounds)
        assert all(compound.id is not None for compound in created)
        assert primary_store.count() == len(sample_compounds)

    def test_batch_create_empty(self, primary_store):
        assert primary_store.batch_create([]) == []

    def test_batch_create_with_existing_cid_falls_back(self, primary_store):
        """Test a batch containing a stored cid still inserts the new rows once."""
        primary_store.create(Compound(cid=2244, name="Aspirin"))

        created = primary_store.batch_create([
            Compound(cid=2244, name="Aspirin again"),
            Compound(cid=702, name="Ethanol"),
            Compound(cid=702, name="Ethanol again"),
        ])

        assert sorted(c.cid for c in created) == [702, 2244]
        assert primary_store.count() == 2
        assert primary_store.get_by_cid(2244).name == "Aspirin"
        assert primary_store.get_by_cid(702).name == "Ethanol"

    def test_lookups_return_none_when_absent(self, primary_store):
        assert primary_store.get_by_cid(2244) is None
        assert primary_store.get_by_id(1) is None

    def test_list_in_insertion_order(self, loaded_primary, sample_compounds):
        listed = loaded_primary.list(limit=3)
        assert [c.cid for c in listed] == [c.cid for c in sample_compounds[:3]]


# ============================================================================
# KEYWORD SEARCH TESTS
# ============================================================================

class TestKeywordSearch:
    """Tests for SQLCompoundStore.search."""

    def test_matches_name_case_insensitively(self, loaded_primary):
        response = loaded_primary.search(keyword_query("ASPIRIN"))

        assert cids_of(response) == [2244]
        assert response.search_type is SearchType.KEYWORD
        assert response.results[0].similarity is None

    def test_matches_description(self, loaded_primary):
        response = loaded_primary.search(keyword_query("sugar"))
        assert sorted(cids_of(response)) == [5793, 5988]

    def test_matches_formula(self, loaded_primary):
        response = loaded_primary.search(keyword_query("c9h8o4"))
        assert cids_of(response) == [2244]

    def test_wildcards_are_literal(self, loaded_primary):
        """Test LIKE metacharacters in the keyword match literally."""
        assert loaded_primary.search(keyword_query("%")).total_results == 0
        assert loaded_primary.search(keyword_query("_")).total_results == 0

    def test_no_match_is_empty_not_error(self, loaded_primary):
        response = loaded_primary.search(keyword_query("xenon"))

        assert response.results == []
        assert response.total_results == 0
        assert response.total_pages == 0

    def test_results_carry_image_url(self, loaded_primary):
        response = loaded_primary.search(keyword_query("caffeine"))
        assert response.results[0].image_url.endswith("cid=2519&width=300&height=300")


class TestSearchFilters:
    """Tests for weight-bucket and chemical-class filtering in SQL."""

    @pytest.mark.parametrize("weight,bucket", WEIGHT_BOUNDARY_CASES)
    def test_weight_bucket_boundaries(self, primary_store, weight, bucket):
        """Test each boundary weight lands in exactly one bucket."""
        primary_store.create(Compound(cid=1, name="Boundary Weight", molecular_weight=weight))

        for candidate in ("lt_100", "100-200", "200-500", "gt_500"):
            response = primary_store.search(keyword_query(molecular_weight=candidate))
            expected = [1] if candidate == bucket else []
            assert cids_of(response) == expected, f"{weight} in {candidate}"

    def test_unknown_weight_matches_no_bucket(self, loaded_primary):
        for bucket in ("lt_100", "100-200", "200-500", "gt_500"):
            response = loaded_primary.search(keyword_query(molecular_weight=bucket))
            assert 424242 not in cids_of(response)

    def test_weight_bucket_on_sample_set(self, loaded_primary):
        response = loaded_primary.search(keyword_query(molecular_weight="lt_100"))
        assert sorted(cids_of(response)) == [702, 1118, 5234]

    def test_class_filter_case_insensitive(self, loaded_primary):
        response = loaded_primary.search(keyword_query(chemical_class="inorganic COMPOUNDS"))
        assert sorted(cids_of(response)) == [1118, 5234]

    def test_class_filter_membership(self, loaded_primary):
        response = loaded_primary.search(keyword_query(chemical_class="Sulfur-containing compounds"))
        assert cids_of(response) == [5862]

    def test_class_filter_counts(self, loaded_primary):
        response = loaded_primary.search(
            keyword_query(chemical_class="Oxygen-containing compounds")
        )
        assert response.total_results == 9

    @pytest.mark.parametrize("label", ["", "all", "ALL"])
    def test_class_filter_disabled(self, loaded_primary, label):
        """Test empty and "all" labels apply no class filter."""
        unfiltered = loaded_primary.search(keyword_query("a"))
        filtered = loaded_primary.search(keyword_query("a", chemical_class=label))
        assert cids_of(filtered) == cids_of(unfiltered)

    def test_combined_filters(self, loaded_primary):
        response = loaded_primary.search(keyword_query(
            "analgesic",
            molecular_weight="100-200",
            chemical_class="Nitrogen-containing compounds",
        ))
        assert cids_of(response) == [1983]


# ============================================================================
# SORT AND PAGINATION TESTS
# ============================================================================

class TestSortAndPagination:
    """Tests for ordering and page slicing."""

    def test_relevance_is_insertion_order(self, loaded_primary):
        response = loaded_primary.search(keyword_query("analgesic"))
        assert cids_of(response) == [2244, 1983]

    def test_name_sort_ignores_case(self, loaded_primary):
        response = loaded_primary.search(keyword_query("analgesic", sort=SortOrder.NAME))
        assert [r.name for r in response.results] == ["acetaminophen", "Aspirin"]

    def test_weight_sort_is_stable(self, loaded_primary):
        """Test equal weights keep insertion order (Aspirin before D-Glucose)."""
        response = loaded_primary.search(
            keyword_query(molecular_weight="100-200", sort=SortOrder.MOLECULAR_WEIGHT)
        )
        assert cids_of(response) == [5862, 1983, 2244, 5793, 2519]

    def test_weight_sort_puts_unknown_last(self, primary_store):
        primary_store.batch_create([
            Compound(cid=1, name="Alpha x"),
            Compound(cid=2, name="Beta x", molecular_weight=300.0),
            Compound(cid=3, name="Gamma x", molecular_weight=50.0),
        ])

        response = primary_store.search(keyword_query("x", sort=SortOrder.MOLECULAR_WEIGHT))
        assert cids_of(response) == [3, 2, 1]

    def test_pagination(self, primary_store):
        """Test 25 matches at 10 per page give pages of 10, 10 and 5."""
        primary_store.batch_create(
            [Compound(cid=i, name=f"Test compound {i}") for i in range(1, 26)]
        )

        pages = [
            primary_store.search(keyword_query("test", page=page, limit=10))
            for page in (1, 2, 3, 4)
        ]

        assert [len(p.results) for p in pages] == [10, 10, 5, 0]
        assert all(p.total_results == 25 for p in pages)
        assert all(p.total_pages == 3 for p in pages)
        assert cids_of(pages[2]) == list(range(21, 26))
        assert pages[2].page == 3


# ============================================================================
# PROCESSING STATUS TESTS
# ============================================================================

class TestProcessingStatus:
    """Tests for is_processed bookkeeping."""

    def test_mark_and_list_unprocessed(self, primary_store):
        primary_store.batch_create([Compound(cid=i, name=f"C{i}") for i in (1, 2, 3)])

        assert primary_store.mark_processed([1, 2]) == 2
        assert [c.cid for c in primary_store.list_unprocessed()] == [3]
        assert primary_store.get_by_cid(1).is_processed is True

    def test_mark_nothing(self, primary_store):
        assert primary_store.mark_processed([]) == 0

    def test_list_unprocessed_limit(self, primary_store):
        primary_store.batch_create([Compound(cid=i, name=f"C{i}") for i in (1, 2, 3)])
        assert [c.cid for c in primary_store.list_unprocessed(limit=2)] == [1, 2]


# ============================================================================
# OUTAGE TESTS
# ============================================================================

class TestPrimaryStoreOutage:
    """Missing tables or a dead database raise instead of looking empty."""

    def test_missing_tables_raise(self, db_manager, primary_store):
        db_manager.drop_all_tables()

        with pytest.raises(PrimaryStoreUnavailableError):
            primary_store.count()
        with pytest.raises(PrimaryStoreUnavailableError):
            primary_store.search(keyword_query("aspirin"))
        with pytest.raises(PrimaryStoreUnavailableError):
            primary_store.get_by_cid(2244)

    def test_initialize_reprovisions(self, db_manager, primary_store):
        db_manager.drop_all_tables()
        primary_store.initialize()

        assert primary_store.count() == 0

    def test_error_names_backend(self, db_manager, primary_store):
        db_manager.drop_all_tables()

        with pytest.raises(PrimaryStoreUnavailableError) as exc_info:
            primary_store.list()

        assert exc_info.value.backend == "primary"


# ============================================================================
# CONNECTION TESTS
# ============================================================================

class TestDatabaseManager:
    """Tests for engine setup on file and in-memory databases."""

    def test_sqlite_url(self):
        assert sqlite_url(":memory:") == "sqlite://"
        assert sqlite_url("data/chemsearch.db") == "sqlite:///data/chemsearch.db"

    def test_file_database_shared_between_managers(self, temp_dir, sample_compounds):
        path = temp_dir / "nested" / "chemsearch.db"
        first = DatabaseManager(str(path))
        store = SQLCompoundStore(first)

        assert first.has_schema() is False
        store.initialize()
        store.create(sample_compounds[0])
        first.close()

        second = DatabaseManager(str(path))
        try:
            assert second.has_schema() is True
            assert SQLCompoundStore(second).get_by_cid(sample_compounds[0].cid) is not None
        finally:
            second.close()

    def test_file_database_uses_wal(self, temp_dir):
        db = DatabaseManager(str(temp_dir / "wal.db"))
        try:
            with db.engine.connect() as conn:
                mode = conn.exec_driver_sql("PRAGMA journal_mode").scalar()
            assert mode.lower() == "wal"
        finally:
            db.close()

    def test_memory_sessions_share_tables(self, db_manager, sample_compounds):
        with db_manager.session_scope() as session:
            crud.insert_compound(session, sample_compounds[0])

        with db_manager.session_scope() as session:
            assert crud.get_compound_by_cid(session, sample_compounds[0].cid) is not None
