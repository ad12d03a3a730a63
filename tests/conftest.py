"""
Pytest configuration and shared fixtures for ChemSearch tests.

Provides:
- In-memory primary store, empty and preloaded with sample compounds
- FAISS vector stores backed by placeholder and keyword-bag embedders
- Compound files on disk for ingestion tests
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from chemsearch.database import SQLCompoundStore, create_test_db
from chemsearch.normalization import normalize_compound
from chemsearch.search import DeterministicEmbedder, FaissVectorStore
from chemsearch.types import Compound
from tests.fixtures.helpers import (
    TEST_DIMENSION,
    KeywordEmbedder,
    make_vector_store,
    write_compound_files,
)
from tests.fixtures.test_data import SAMPLE_COMPOUNDS


# ============================================================================
# PRIMARY STORE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def db_manager():
    """Fresh in-memory SQLite database for each test."""
    db = create_test_db()
    yield db
    db.close()


@pytest.fixture(scope="function")
def test_db_session(db_manager):
    """Plain session for the CRUD-level tests; rolled back afterwards."""
    session = db_manager.get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def primary_store(db_manager) -> SQLCompoundStore:
    """Empty primary store."""
    return SQLCompoundStore(db_manager)


@pytest.fixture(scope="function")
def sample_compounds() -> List[Compound]:
    """Sample records normalized to canonical compounds."""
    return [normalize_compound(record) for record in SAMPLE_COMPOUNDS]


@pytest.fixture(scope="function")
def loaded_primary(primary_store, sample_compounds) -> SQLCompoundStore:
    """Primary store holding every sample compound, inserted in fixture order."""
    for compound in sample_compounds:
        primary_store.create(compound)
    return primary_store


# ============================================================================
# VECTOR STORE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def fallback_embedder() -> DeterministicEmbedder:
    """Non-semantic, CID-seeded embedder."""
    return DeterministicEmbedder(dimension=TEST_DIMENSION)


@pytest.fixture(scope="function")
def keyword_embedder() -> KeywordEmbedder:
    """Semantic embedder with exact word overlap scoring."""
    return KeywordEmbedder()


@pytest.fixture(scope="function")
def vector_store(temp_dir, fallback_embedder) -> FaissVectorStore:
    """Empty vector store with placeholder vectors."""
    store = make_vector_store(temp_dir, fallback_embedder)
    store.initialize()
    return store


@pytest.fixture(scope="function")
def semantic_store(temp_dir, keyword_embedder) -> FaissVectorStore:
    """Empty vector store that ranks by word overlap."""
    store = make_vector_store(temp_dir, keyword_embedder)
    store.initialize()
    return store


@pytest.fixture(scope="function")
def loaded_semantic_store(semantic_store, sample_compounds) -> FaissVectorStore:
    for compound in sample_compounds:
        semantic_store.upsert_compound(compound)
    return semantic_store


# ============================================================================
# TEMPORARY DIRECTORY FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(scope="function")
def compound_dir(temp_dir) -> Path:
    """Directory holding one JSON file per sample compound."""
    return write_compound_files(temp_dir / "compounds", SAMPLE_COMPOUNDS)
