"""
Compound service: the entry point for route and CLI layers.

Wires the primary store, vector store, search coordinator and bulk
loader together. Backend initialization is idempotent and tolerant:
a backend that fails to come up is logged and the service starts in
degraded mode; the first real operation against it then raises.
"""

import logging
import threading
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from .database import DatabaseManager, PrimaryStore, SQLCompoundStore
from .errors import PrimaryStoreUnavailableError, VectorStoreUnavailableError
from .ingestion.bulk_loader import BulkLoader, LoadStats
from .search import FaissVectorStore, SearchCoordinator, VectorStore, build_embedder
from .types import Compound, SearchQuery, SearchResponse
from .utils.config_manager import ConfigManager

logger = logging.getLogger(__name__)


class CompoundService:
    """Route-facing operations over both stores."""

    def __init__(
        self,
        primary: PrimaryStore,
        vector: VectorStore,
        data_dir: Optional[Union[str, Path]] = None,
        batch_size: int = 200,
        max_workers: int = 4,
        seed_limit: int = 20,
        default_limit: int = 10,
    ):
        """
        Args:
            primary: System-of-record store
            vector: Vector store for semantic search
            data_dir: Default directory for load_from_directory and seeding
            batch_size: Bulk loader window size
            max_workers: Bulk loader vector write threads
            seed_limit: Records loaded by initialize() into an empty store
            default_limit: Page size when a request does not give one
        """
        self.primary = primary
        self.vector = vector
        self.coordinator = SearchCoordinator(primary, vector)
        self.data_dir = Path(data_dir) if data_dir else None
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.seed_limit = seed_limit
        self.default_limit = default_limit

        self.stop_event = threading.Event()
        self._init_lock = threading.Lock()
        self._initialized = False

    def initialize(self, seed: bool = True) -> None:
        """
        Provision both backends and seed an empty store.

        Safe to call repeatedly and from several threads; only the first
        call does any work.

        Args:
            seed: Load up to seed_limit records when the primary store is empty
        """
        with self._init_lock:
            if self._initialized:
                return

            primary_ready = True
            try:
                self.primary.initialize()
            except PrimaryStoreUnavailableError as e:
                primary_ready = False
                logger.error(f"Primary store failed to initialize, continuing degraded: {e}")

            try:
                self.vector.initialize()
            except VectorStoreUnavailableError as e:
                logger.error(f"Vector store failed to initialize, semantic search disabled: {e}")

            if primary_ready and seed:
                self._seed_if_empty()

            self._initialized = True

    def _seed_if_empty(self) -> None:
        if not self.seed_limit or self.data_dir is None or not self.data_dir.exists():
            return
        try:
            if self.primary.count() > 0:
                return
            logger.info(f"Primary store is empty; seeding up to {self.seed_limit} compounds")
            stats = self._loader().load(self.data_dir, limit=self.seed_limit)
            logger.info(f"Seeded {stats.ingested} compounds from {self.data_dir}")
        except PrimaryStoreUnavailableError as e:
            logger.error(f"Seeding failed: {e}")

    def _loader(self) -> BulkLoader:
        return BulkLoader(
            self.primary,
            self.vector,
            batch_size=self.batch_size,
            max_workers=self.max_workers,
            stop_event=self.stop_event,
        )

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_compound(self, cid: int) -> Optional[Compound]:
        return self.primary.get_by_cid(cid)

    def get_compound_by_id(self, compound_id: int) -> Optional[Compound]:
        return self.primary.get_by_id(compound_id)

    def list_compounds(self, limit: int = 100, offset: int = 0) -> List[Compound]:
        return self.primary.list(limit=limit, offset=offset)

    def search_compounds(self, query: Union[SearchQuery, Mapping[str, Any]]) -> SearchResponse:
        """
        Search by keyword or semantic similarity.

        Args:
            query: SearchQuery, or raw request parameters

        Raises:
            SearchQueryValidationError: If the request is invalid
            PrimaryStoreUnavailableError: If keyword search cannot be served
        """
        if not isinstance(query, SearchQuery):
            params = dict(query)
            if params.get("limit") in (None, ""):
                params["limit"] = self.default_limit
            query = SearchQuery.from_params(params)
        return self.coordinator.search(query)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def load_from_directory(
        self,
        path: Optional[Union[str, Path]] = None,
        limit: Optional[int] = None,
    ) -> int:
        """
        Ingest compound files.

        Returns:
            Number of compounds written to both stores
        """
        return self.load(path, limit).ingested

    def load(self, path: Optional[Union[str, Path]] = None, limit: Optional[int] = None) -> LoadStats:
        """Like load_from_directory, returning the full LoadStats."""
        path = path or self.data_dir
        if path is None:
            raise ValueError("No path given and no data_dir configured")
        return self._loader().load(path, limit=limit)

    def reconcile(self, limit: Optional[int] = None) -> int:
        """Retry vector writes for rows left unprocessed by earlier loads."""
        return self._loader().reconcile(limit)


def build_service(config: Optional[ConfigManager] = None) -> CompoundService:
    """
    Construct a CompoundService from configuration.

    Nothing is loaded or provisioned until ``initialize()`` is called.
    """
    config = config or ConfigManager()

    database = config.section('database')
    vector_cfg = config.section('vector_store')
    ingestion = config.section('ingestion')

    db = DatabaseManager(
        db_path=database['path'],
        echo=database['echo'],
        timeout=database['timeout'],
    )
    primary = SQLCompoundStore(db)

    embedding_config = config.embedding_config()
    embedder = build_embedder(embedding_config, use_model=vector_cfg['use_embedding_model'])
    vector = FaissVectorStore(
        embedder,
        config=embedding_config,
        base_path=vector_cfg['base_path'],
        min_similarity=vector_cfg['min_similarity'],
    )

    return CompoundService(
        primary,
        vector,
        data_dir=ingestion['data_dir'],
        batch_size=ingestion['batch_size'],
        max_workers=ingestion['max_workers'],
        seed_limit=ingestion['seed_limit'],
        default_limit=config.get('search', 'default_limit'),
    )


_service: Optional[CompoundService] = None
_service_lock = threading.Lock()


def get_service(config_path: Optional[Path] = None) -> CompoundService:
    """
    Get the process-wide service, building and initializing it on first use.

    Args:
        config_path: YAML config used only when the service is first built
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                service = build_service(ConfigManager(config_path))
                service.initialize()
                _service = service
    return _service
