"""
Vector search adapter backed by FAISS.

Keeps a denormalized, flattened projection of each compound alongside an
``IndexIDMap(IndexFlatIP)`` keyed by CID. Vectors are L2-normalized, so
inner product is cosine similarity; it is reported to callers as an
integer percentage ``round(100 * (1 + cos) / 2)``.

Failure discipline: any problem loading or using the index raises
:class:`VectorStoreUnavailableError`. An outage never looks like an
empty result.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import faiss
import numpy as np

from ..errors import VectorStoreUnavailableError
from ..types import (
    Compound,
    CompoundSearchResult,
    EmbeddingConfig,
    SearchQuery,
    SearchResponse,
    SearchType,
    SortOrder,
    default_image_url,
    total_pages,
)
from .embeddings import EmbeddingProvider
from .filters import (
    matches_chemical_class,
    matches_keyword,
    matches_weight_bucket,
    paginate,
    sort_results,
)

logger = logging.getLogger(__name__)

VECTOR_SOURCE_MODEL = "model"
VECTOR_SOURCE_FALLBACK = "fallback"


class VectorStore(ABC):
    """Similarity search plus structured filtering over compound projections."""

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def upsert_compound(self, compound: Compound) -> None:
        pass

    @abstractmethod
    def semantic_search(self, query: SearchQuery) -> SearchResponse:
        pass

    @abstractmethod
    def get_by_cid(self, cid: int) -> Optional[Compound]:
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def save(self) -> None:
        pass


def similarity_percent(cosine: float) -> int:
    """Map cosine similarity [-1, 1] onto an integer 0-100 score."""
    return int(round(max(0.0, min(1.0, (1.0 + float(cosine)) / 2.0)) * 100))


def project_compound(compound: Compound, vector_source: str) -> Dict[str, Any]:
    """Flattened, self-contained copy of a compound for the vector store."""
    return {
        "cid": compound.cid,
        "name": compound.name,
        "iupacName": compound.iupac_name,
        "formula": compound.formula,
        "molecularWeight": compound.molecular_weight,
        "inchi": compound.inchi,
        "inchiKey": compound.inchi_key,
        "smiles": compound.smiles,
        "description": compound.description,
        "imageUrl": compound.image_url or default_image_url(compound.cid),
        "synonyms": list(compound.synonyms or []),
        "chemicalClass": list(compound.chemical_class or []),
        "vectorSource": vector_source,
    }


class FaissVectorStore(VectorStore):
    """
    FAISS-backed vector store.

    The index and metadata are loaded lazily on first use; concurrent
    first callers load them once. Mutations hold the index lock.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        config: Optional[EmbeddingConfig] = None,
        base_path: str = ".",
        min_similarity: int = 0,
    ):
        """
        Initialize the vector store.

        Args:
            embedder: Provider used for compound and query vectors
            config: Index/metadata locations (uses defaults if None)
            base_path: Base directory for resolving relative paths
            min_similarity: Drop ranked hits scoring below this (0-100)
        """
        self.embedder = embedder
        self.config = config or EmbeddingConfig()
        self.index_path = os.path.join(base_path, self.config.index_path)
        self.metadata_path = os.path.join(base_path, self.config.metadata_path)
        self.min_similarity = min_similarity

        self.index: Optional[faiss.Index] = None
        self.metadata: Dict[int, Dict[str, Any]] = {}  # cid -> projection, insertion ordered

        self._index_lock = threading.Lock()
        self._load_error: Optional[str] = None
        self._fallback_warned = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load (or create) the index, retrying after an earlier failure."""
        with self._index_lock:
            self._load_error = None
        self._ensure_loaded()

    def _ensure_loaded(self) -> None:
        if self.index is not None:
            return

        with self._index_lock:
            if self.index is None and self._load_error is None:
                try:
                    self._load_index()
                except (RuntimeError, OSError, ValueError) as e:
                    self._load_error = str(e)
                    logger.error(f"Failed to load FAISS index: {e}")

            if self._load_error is not None:
                raise VectorStoreUnavailableError(self._load_error)

    def _load_index(self) -> None:
        """Load FAISS index and metadata from disk."""
        dimension = self.embedder.dimension

        if not os.path.exists(self.index_path):
            logger.warning(f"FAISS index not found at {self.index_path}. Creating empty index.")
            self.metadata = {}
            self.index = faiss.IndexIDMap(faiss.IndexFlatIP(dimension))
            return

        logger.info(f"Loading FAISS index from {self.index_path}")
        index = faiss.read_index(self.index_path)
        if index.d != dimension:
            raise ValueError(
                f"Index at {self.index_path} has dimension {index.d}, "
                f"embedding provider produces {dimension}"
            )

        metadata: Dict[int, Dict[str, Any]] = {}
        if os.path.exists(self.metadata_path):
            with open(self.metadata_path, 'r', encoding='utf-8') as f:
                for item in json.load(f):
                    metadata[int(item['cid'])] = item
        else:
            logger.warning(f"Metadata file not found at {self.metadata_path}")

        if len(metadata) != index.ntotal:
            logger.warning(
                f"FAISS index holds {index.ntotal} vectors but metadata has "
                f"{len(metadata)} entries; vectors without metadata are ignored"
            )

        self.metadata = metadata
        self.index = index
        logger.info(f"FAISS index loaded: {index.ntotal} vectors")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_compound(self, compound: Compound) -> None:
        """
        Write (or overwrite) a compound's projection and vector.

        Raises:
            VectorStoreUnavailableError: If the index or embedder is unusable
            ValueError: If the embedder's vector size differs from the index
        """
        self._ensure_loaded()

        vector = self._embed(lambda: self.embedder.embed_compound(compound))
        if vector.shape[-1] != self.index.d:
            raise ValueError(
                f"Vector for cid={compound.cid} has dimension {vector.shape[-1]}, "
                f"index expects {self.index.d}"
            )

        if self.embedder.is_semantic:
            source = VECTOR_SOURCE_MODEL
        else:
            source = VECTOR_SOURCE_FALLBACK
            if not self._fallback_warned:
                logger.warning(
                    "No semantic embedding provider configured; storing CID-seeded "
                    "fallback vectors. Semantic search will use structured filtering only."
                )
                self._fallback_warned = True

        ids = np.array([compound.cid], dtype='int64')
        with self._index_lock:
            # The index can hold ids the metadata lost, e.g. a deleted metadata file
            self.index.remove_ids(ids)
            self.index.add_with_ids(vector.reshape(1, -1), ids)
            self.metadata[compound.cid] = project_compound(compound, source)

    def save(self) -> None:
        """Save FAISS index and metadata to disk."""
        self._ensure_loaded()

        for path in (self.index_path, self.metadata_path):
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        with self._index_lock:
            try:
                faiss.write_index(self.index, self.index_path)
                with open(self.metadata_path, 'w', encoding='utf-8') as f:
                    json.dump(list(self.metadata.values()), f, indent=2)
            except (RuntimeError, OSError) as e:
                raise VectorStoreUnavailableError(f"could not save index: {e}") from e
        logger.info(f"Saved FAISS index ({len(self.metadata)} compounds) to {self.index_path}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def semantic_search(self, query: SearchQuery) -> SearchResponse:
        """
        Nearest-neighbour search over the filtered candidate set.

        Without a semantic embedder, or without query text, this falls
        back to structured filtering in insertion order and reports no
        similarity.
        """
        self._ensure_loaded()

        with self._index_lock:
            projections = list(self.metadata.values())

        candidates = [
            p for p in projections
            if matches_weight_bucket(p.get("molecularWeight"), query.weight_bucket)
            and matches_chemical_class(p.get("chemicalClass"), query.class_filter)
        ]

        text = (query.query or "").strip()
        if text and self.embedder.is_semantic:
            results = self._rank(text, candidates)
        else:
            if text:
                logger.warning(
                    f"Embedding provider is not semantic; answering '{text}' "
                    f"with structured filtering"
                )
            results = [
                _to_result(p) for p in candidates
                if matches_keyword(_projection_texts(p), text)
            ]

        if query.sort is not SortOrder.RELEVANCE:
            results = sort_results(results, query.sort)

        total = len(results)
        return SearchResponse(
            results=paginate(results, query.page, query.limit),
            total_results=total,
            page=query.page,
            total_pages=total_pages(total, query.limit),
            query=query.query,
            search_type=SearchType.SEMANTIC,
        )

    def _rank(self, text: str, candidates: List[Dict[str, Any]]) -> List[CompoundSearchResult]:
        if not candidates:
            return []

        vector = self._embed(lambda: self.embedder.embed(text))
        allowed = {p["cid"]: p for p in candidates}

        with self._index_lock:
            if self.index.ntotal == 0:
                return []
            scores, ids = self.index.search(vector.reshape(1, -1), self.index.ntotal)

        results = []
        for score, cid in zip(scores[0], ids[0]):
            if cid < 0:
                continue
            projection = allowed.get(int(cid))
            if projection is None:
                continue
            similarity = similarity_percent(score)
            if similarity < self.min_similarity:
                continue
            results.append(_to_result(projection, similarity))
        return results

    def _embed(self, produce) -> np.ndarray:
        try:
            return np.asarray(produce(), dtype='float32')
        except (OSError, RuntimeError) as e:
            raise VectorStoreUnavailableError(f"embedding provider failed: {e}") from e

    def get_by_cid(self, cid: int) -> Optional[Compound]:
        self._ensure_loaded()
        with self._index_lock:
            projection = self.metadata.get(cid)
        return _to_compound(projection) if projection else None

    def count(self) -> int:
        self._ensure_loaded()
        return len(self.metadata)


def _projection_texts(projection: Dict[str, Any]) -> List[Optional[str]]:
    return [
        projection.get("name"),
        projection.get("iupacName"),
        projection.get("formula"),
        projection.get("description"),
        *(projection.get("synonyms") or []),
    ]


def _to_result(projection: Dict[str, Any], similarity: Optional[int] = None) -> CompoundSearchResult:
    return CompoundSearchResult(
        cid=projection["cid"],
        name=projection["name"],
        iupac_name=projection.get("iupacName"),
        formula=projection.get("formula"),
        molecular_weight=projection.get("molecularWeight"),
        chemical_class=projection.get("chemicalClass") or None,
        description=projection.get("description"),
        image_url=projection.get("imageUrl"),
        similarity=similarity,
    )


def _to_compound(projection: Dict[str, Any]) -> Compound:
    return Compound(
        cid=projection["cid"],
        name=projection["name"],
        iupac_name=projection.get("iupacName"),
        formula=projection.get("formula"),
        molecular_weight=projection.get("molecularWeight"),
        inchi=projection.get("inchi"),
        inchi_key=projection.get("inchiKey"),
        smiles=projection.get("smiles"),
        description=projection.get("description"),
        image_url=projection.get("imageUrl"),
        synonyms=projection.get("synonyms") or None,
        chemical_class=projection.get("chemicalClass") or None,
        is_processed=True,
    )
