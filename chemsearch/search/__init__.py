"""
Search package for ChemSearch.

Provides the FAISS vector store, embedding providers, in-memory filter
helpers and the coordinator that routes between keyword and semantic
search.
"""

import logging
from typing import Optional

from .coordinator import SearchCoordinator
from .embeddings import (
    DeterministicEmbedder,
    EmbeddingProvider,
    SentenceTransformerEmbedder,
    compound_text,
)
from .vector_store import FaissVectorStore, VectorStore, similarity_percent
from ..types import EmbeddingConfig

_logger = logging.getLogger(__name__)


def build_embedder(
    config: Optional[EmbeddingConfig] = None,
    use_model: bool = True,
) -> EmbeddingProvider:
    """
    Choose the embedding provider.

    Args:
        config: Embedding configuration (uses defaults if None)
        use_model: If False, use CID-seeded placeholder vectors of the
            same dimension instead of loading a model

    Returns:
        EmbeddingProvider instance
    """
    config = config or EmbeddingConfig()
    if use_model:
        _logger.info("Semantic embeddings enabled (%s)", config.model_name)
        return SentenceTransformerEmbedder(config)

    _logger.info("Semantic embeddings disabled; using placeholder vectors (dim=%d)", config.embedding_dim)
    return DeterministicEmbedder(config.embedding_dim)


__all__ = [
    "SearchCoordinator",
    "EmbeddingProvider",
    "SentenceTransformerEmbedder",
    "DeterministicEmbedder",
    "compound_text",
    "VectorStore",
    "FaissVectorStore",
    "similarity_percent",
    "build_embedder",
]
