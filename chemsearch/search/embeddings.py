"""
Embedding providers for compound vectors.

``SentenceTransformerEmbedder`` is the production provider. The
``DeterministicEmbedder`` stands in when no model is configured: its
vectors are seeded from the CID (or a hash of the text) and carry no
meaning, so it reports ``is_semantic = False`` and the vector store
answers with structured filtering instead of ranking.
Both produce L2-normalized float32 vectors of the configured dimension.
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from ..errors import VectorStoreUnavailableError
from ..types import Compound, EmbeddingConfig

logger = logging.getLogger(__name__)

MAX_SYNONYMS_IN_TEXT = 10


def compound_text(compound: Compound) -> str:
    """Text representation of a compound used for embedding."""
    parts = [compound.name]
    if compound.iupac_name and compound.iupac_name != compound.name:
        parts.append(compound.iupac_name)
    if compound.synonyms:
        parts.extend(s for s in compound.synonyms[:MAX_SYNONYMS_IN_TEXT] if s != compound.name)
    if compound.formula:
        parts.append(compound.formula)
    if compound.chemical_class:
        parts.append(", ".join(compound.chemical_class))
    if compound.description:
        parts.append(compound.description)
    return ". ".join(parts)


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    vector = np.asarray(vector, dtype='float32')
    norm = np.linalg.norm(vector)
    if norm > 0:
        vector = vector / norm
    return vector.astype('float32')


class EmbeddingProvider(ABC):
    """Turns query text and compounds into fixed-size vectors."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    @abstractmethod
    def is_semantic(self) -> bool:
        """False when vectors carry no meaning and must not be ranked on."""

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        pass

    def embed_compound(self, compound: Compound) -> np.ndarray:
        return self.embed(compound_text(compound))


class SentenceTransformerEmbedder(EmbeddingProvider):
    """
    sentence-transformers provider.

    The model is loaded on first use; concurrent first calls load it once.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self.model: Optional[SentenceTransformer] = None
        self._model_lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self.config.embedding_dim

    @property
    def is_semantic(self) -> bool:
        return True

    def _load_model(self) -> SentenceTransformer:
        """
        Load sentence transformer model.

        Raises:
            VectorStoreUnavailableError: If the model's vector size differs
                from the configured embedding_dim
        """
        if self.model is not None:
            return self.model

        with self._model_lock:
            if self.model is None:
                logger.info(f"Loading sentence transformer model: {self.config.model_name}")
                model = SentenceTransformer(self.config.model_name)
                model_dim = model.get_sentence_embedding_dimension()
                if model_dim != self.config.embedding_dim:
                    raise VectorStoreUnavailableError(
                        f"Model {self.config.model_name} produces {model_dim}-dim vectors, "
                        f"configured embedding_dim is {self.config.embedding_dim}"
                    )
                self.model = model
                logger.info(f"Model loaded successfully (dim={model_dim})")
        return self.model

    def embed(self, text: str) -> np.ndarray:
        """
        Encode text to an embedding vector.

        Returns:
            Normalized embedding vector (L2 norm = 1)
        """
        embedding = self._load_model().encode([text], convert_to_numpy=True)[0]
        if self.config.normalize_l2:
            return l2_normalize(embedding)
        return embedding.astype('float32')


class DeterministicEmbedder(EmbeddingProvider):
    """Placeholder provider: pseudo-random unit vectors seeded by CID."""

    def __init__(self, dimension: int = 384):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_semantic(self) -> bool:
        return False

    def _vector(self, seed: int) -> np.ndarray:
        rng = np.random.default_rng(seed)
        return l2_normalize(rng.standard_normal(self._dimension))

    def embed(self, text: str) -> np.ndarray:
        digest = hashlib.sha256(text.encode('utf-8')).digest()
        return self._vector(int.from_bytes(digest[:8], 'big'))

    def embed_compound(self, compound: Compound) -> np.ndarray:
        return self._vector(compound.cid)
