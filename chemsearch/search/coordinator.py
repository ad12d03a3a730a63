"""
Search coordinator.

Single entry point for searches. Semantic requests go to the vector
store; if it is unavailable the request is downgraded to a keyword
search against the primary store. Primary-store outages are not
recoverable and propagate to the caller.

Whatever backend answered, filters are re-applied to the returned page,
the requested sort is enforced and pagination metadata is recomputed so
the response is consistent with the results it carries.
"""

import logging
from typing import Optional

from ..database.store import PrimaryStore
from ..errors import SearchQueryValidationError, VectorStoreUnavailableError
from ..types import SearchQuery, SearchResponse, SearchType, SortOrder, total_pages
from .filters import matches_chemical_class, matches_weight_bucket, sort_results
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


class SearchCoordinator:
    """Routes search requests between the primary and vector stores."""

    def __init__(self, primary: PrimaryStore, vector: Optional[VectorStore] = None):
        """
        Args:
            primary: System-of-record store (keyword search)
            vector: Vector store for semantic search; None means keyword only
        """
        self.primary = primary
        self.vector = vector

    def search(self, query: SearchQuery) -> SearchResponse:
        """
        Answer a search request.

        Args:
            query: Search request

        Returns:
            SearchResponse whose ``search_type`` is the mode that actually
            answered and ``degraded`` is set when semantic fell back to keyword

        Raises:
            SearchQueryValidationError: If the request is invalid
            PrimaryStoreUnavailableError: If keyword search cannot be served
        """
        errors = query.validate()
        if errors:
            raise SearchQueryValidationError(errors)

        response = None
        degraded = False

        if query.search_type is SearchType.SEMANTIC:
            if self.vector is None:
                logger.warning("No vector store configured; downgrading semantic search to keyword")
                degraded = True
            else:
                try:
                    response = self.vector.semantic_search(query)
                except VectorStoreUnavailableError as e:
                    logger.warning(f"Downgrading semantic search to keyword: {e}")
                    degraded = True

        if response is None:
            response = self.primary.search(query)

        return self._shape(query, response, degraded)

    def _shape(self, query: SearchQuery, response: SearchResponse, degraded: bool) -> SearchResponse:
        results = [
            result for result in response.results
            if matches_weight_bucket(result.molecular_weight, query.weight_bucket)
            and matches_chemical_class(result.chemical_class, query.class_filter)
        ]
        dropped = len(response.results) - len(results)
        if dropped:
            logger.debug(f"Post-filter removed {dropped} results the backend returned")

        if query.sort is not SortOrder.RELEVANCE:
            results = sort_results(results, query.sort)

        total = max(response.total_results - dropped, len(results))

        return SearchResponse(
            results=results,
            total_results=total,
            page=query.page,
            total_pages=total_pages(total, query.limit),
            query=query.query,
            search_type=response.search_type,
            degraded=degraded,
        )
