"""
ChemSearch: compound normalization plus keyword and semantic search.

Quick start:
    from chemsearch import build_service, ConfigManager

    service = build_service(ConfigManager())
    service.initialize()
    response = service.search_compounds({"query": "aspirin", "searchType": "keyword"})
"""

from .errors import (
    ChemSearchError,
    CompoundFormatError,
    PrimaryStoreUnavailableError,
    SearchQueryValidationError,
    StoreUnavailableError,
    VectorStoreUnavailableError,
)
from .types import (
    Compound,
    CompoundSearchResult,
    SearchQuery,
    SearchResponse,
    SearchType,
    SortOrder,
)
from .normalization import normalize_compound
from .utils.config_manager import ConfigManager
from .service import CompoundService, build_service, get_service

__all__ = [
    "ChemSearchError",
    "CompoundFormatError",
    "PrimaryStoreUnavailableError",
    "SearchQueryValidationError",
    "StoreUnavailableError",
    "VectorStoreUnavailableError",
    "Compound",
    "CompoundSearchResult",
    "SearchQuery",
    "SearchResponse",
    "SearchType",
    "SortOrder",
    "normalize_compound",
    "ConfigManager",
    "CompoundService",
    "build_service",
    "get_service",
]

__version__ = "1.0.0"
