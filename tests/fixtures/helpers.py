"""
Test helpers shared by conftest and test modules.

Provides:
- A deterministic, word-overlap embedder that reports itself as semantic
- Vector store construction under a temporary directory
- Writing compound records to disk as individual JSON files
"""

import json
import re
from pathlib import Path
from typing import Dict, List

import numpy as np

from chemsearch.search import FaissVectorStore
from chemsearch.search.embeddings import EmbeddingProvider, l2_normalize
from chemsearch.types import EmbeddingConfig


TEST_DIMENSION = 32
KEYWORD_DIMENSION = 512


class KeywordEmbedder(EmbeddingProvider):
    """
    Semantic stand-in for tests: one dimension per distinct word.

    Texts sharing words get a positive cosine, texts sharing none get
    exactly zero, so rankings are predictable without loading a model.
    """

    def __init__(self, dimension: int = KEYWORD_DIMENSION):
        self._dimension = dimension
        self._vocabulary: Dict[str, int] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_semantic(self) -> bool:
        return True

    def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self._dimension, dtype='float32')
        for token in re.findall(r'[a-z0-9]+', text.lower()):
            if token not in self._vocabulary:
                if len(self._vocabulary) >= self._dimension:
                    continue
                self._vocabulary[token] = len(self._vocabulary)
            vector[self._vocabulary[token]] += 1.0
        return l2_normalize(vector)


def make_vector_store(base_path: Path, embedder: EmbeddingProvider, **kwargs) -> FaissVectorStore:
    """FAISS store whose index and metadata live under ``base_path``."""
    config = EmbeddingConfig(
        embedding_dim=embedder.dimension,
        index_path="vectors/compounds.faiss",
        metadata_path="vectors/compounds_metadata.json",
    )
    return FaissVectorStore(embedder, config=config, base_path=str(base_path), **kwargs)


def write_compound_files(directory: Path, records: List[dict]) -> Path:
    """Write one ``pubchem_compound_<cid>.json`` file per record."""
    directory.mkdir(parents=True, exist_ok=True)
    for position, record in enumerate(records):
        cid = record.get("cid", f"x{position}") if isinstance(record, dict) else f"x{position}"
        with open(directory / f"pubchem_compound_{cid}.json", "w", encoding="utf-8") as f:
            json.dump(record, f)
    return directory
