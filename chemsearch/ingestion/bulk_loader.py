"""
Bulk loading of compound JSON files into both stores.

Records are processed in windows of ``batch_size``. Each window is
normalized in order on the calling thread, deduplicated, checked against
the primary store and written primary-first with one batch insert. The
vector writes for the stored rows then fan out over a bounded thread
pool, since embedding is the slow step. Windows run one after another,
and a stop signal is honoured between them.

Writing the primary row before the vector is a convention: the vector
projection is self-contained. A failed vector write leaves the row with
``is_processed = False`` for :meth:`BulkLoader.reconcile` to pick up.
"""

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..database.store import PrimaryStore
from ..errors import CompoundFormatError, VectorStoreUnavailableError
from ..normalization import normalize_compound
from ..search.vector_store import VectorStore
from ..types import Compound

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200
DEFAULT_MAX_WORKERS = 4


def read_json(path: Union[str, Path]) -> Any:
    """
    Read and parse a JSON file.

    Raises:
        OSError: If the file cannot be read
        json.JSONDecodeError: If the content is not valid JSON
    """
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def candidate_files(path: Union[str, Path]) -> List[Path]:
    """A single file, or a directory's ``*.json`` files sorted by name."""
    path = Path(path)
    if path.is_dir():
        return sorted(p for p in path.glob('*.json') if p.is_file())
    if path.is_file():
        return [path]
    raise FileNotFoundError(f"No such file or directory: {path}")


@dataclass
class LoadStats:
    """Counters for one bulk load."""
    ingested: int = 0
    skipped_existing: int = 0
    skipped_duplicate: int = 0
    failed: int = 0
    partial: int = 0
    unreadable_files: int = 0
    batches: int = 0
    stopped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BulkLoader:
    """Walks compound files and ingests them into the primary and vector stores."""

    def __init__(
        self,
        primary: PrimaryStore,
        vector: VectorStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the loader.

        Args:
            primary: System-of-record store
            vector: Vector store receiving projections
            batch_size: Records per window (flushed with one batch insert)
            max_workers: Vector write threads per window
            stop_event: Checked between windows; set it to stop early
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.primary = primary
        self.vector = vector
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.stop_event = stop_event or threading.Event()

    def load(self, path: Union[str, Path], limit: Optional[int] = None) -> LoadStats:
        """
        Ingest every compound record under ``path``.

        Args:
            path: JSON file or directory of JSON files
            limit: Stop after this many records are fully ingested

        Returns:
            LoadStats; ``ingested`` counts records written to both stores

        Raises:
            FileNotFoundError: If ``path`` does not exist
            PrimaryStoreUnavailableError: If the primary store fails mid-load
        """
        stats = LoadStats()
        files = candidate_files(path)
        logger.info(f"Loading compounds from {len(files)} file(s) under {path}")

        window: List[Tuple[str, Any]] = []
        for item in self._iter_records(files, stats):
            window.append(item)
            if len(window) < self.batch_size:
                continue

            self._process_window(window, stats, limit)
            window = []
            if self._should_stop(stats, limit):
                break
        else:
            if window and not self._limit_reached(stats, limit):
                self._process_window(window, stats, limit)

        if stats.batches:
            self._save_vectors()

        logger.info(
            f"Load complete: {stats.ingested} ingested, {stats.skipped_existing} already stored, "
            f"{stats.skipped_duplicate} duplicates, {stats.failed} failed, "
            f"{stats.partial} missing vectors"
        )
        return stats

    def reconcile(self, limit: Optional[int] = None) -> int:
        """
        Re-write vectors for rows the vector store never received.

        Returns:
            Number of compounds now marked processed
        """
        pending = self.primary.list_unprocessed(limit)
        if not pending:
            return 0

        logger.info(f"Reconciling {len(pending)} compounds missing from the vector store")
        written = self._write_vectors(pending)
        self.primary.mark_processed(compound.cid for compound in written)
        self._save_vectors()
        return len(written)

    # ------------------------------------------------------------------

    def _iter_records(self, files: List[Path], stats: LoadStats) -> Iterator[Tuple[str, Any]]:
        """Yield (source label, raw record); arrays yield one item per element."""
        for file_path in files:
            try:
                data = read_json(file_path)
            except (OSError, ValueError) as e:
                stats.unreadable_files += 1
                logger.error(f"Skipping unreadable file {file_path}: {e}")
                continue

            if isinstance(data, list):
                for position, item in enumerate(data):
                    yield f"{file_path.name}[{position}]", item
            else:
                yield file_path.name, data

    def _normalize_window(self, window: List[Tuple[str, Any]], stats: LoadStats) -> List[Compound]:
        compounds = []
        for label, raw in window:
            try:
                compounds.append(normalize_compound(raw))
            except CompoundFormatError as e:
                stats.failed += 1
                logger.warning(f"Skipping {label}: {e}")
        return compounds

    def _process_window(
        self,
        window: List[Tuple[str, Any]],
        stats: LoadStats,
        limit: Optional[int],
    ) -> None:
        stats.batches += 1
        compounds = self._normalize_window(window, stats)

        fresh: List[Compound] = []
        seen = set()
        for compound in compounds:
            if compound.cid in seen:
                stats.skipped_duplicate += 1
                logger.debug(f"Duplicate cid={compound.cid} within batch, skipping")
                continue
            seen.add(compound.cid)

            if self.primary.get_by_cid(compound.cid) is not None:
                stats.skipped_existing += 1
                logger.debug(f"Compound cid={compound.cid} already stored, skipping")
                continue
            fresh.append(compound)

        if limit is not None:
            fresh = fresh[:max(limit - stats.ingested, 0)]
        if not fresh:
            return

        created = self.primary.batch_create(fresh)
        written = self._write_vectors(created)
        self.primary.mark_processed(compound.cid for compound in written)

        stats.ingested += len(written)
        stats.partial += len(created) - len(written)
        logger.info(
            f"Batch {stats.batches}: stored {len(created)} compounds, "
            f"{len(written)} indexed (total ingested {stats.ingested})"
        )

    def _write_vectors(self, compounds: List[Compound]) -> List[Compound]:
        """
        Upsert compounds into the vector store concurrently.

        Returns:
            The compounds whose vector write succeeded, in input order
        """
        succeeded: Dict[int, Compound] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_position = {
                executor.submit(self.vector.upsert_compound, compound): position
                for position, compound in enumerate(compounds)
            }
            for future in as_completed(future_to_position):
                position = future_to_position[future]
                compound = compounds[position]
                try:
                    future.result()
                except (VectorStoreUnavailableError, ValueError) as e:
                    logger.warning(f"Vector write failed for cid={compound.cid}: {e}")
                    continue
                succeeded[position] = compound

        return [succeeded[position] for position in sorted(succeeded)]

    def _save_vectors(self) -> None:
        try:
            self.vector.save()
        except VectorStoreUnavailableError as e:
            logger.error(f"Could not persist vector index: {e}")

    def _limit_reached(self, stats: LoadStats, limit: Optional[int]) -> bool:
        return limit is not None and stats.ingested >= limit

    def _should_stop(self, stats: LoadStats, limit: Optional[int]) -> bool:
        if self._limit_reached(stats, limit):
            return True
        if self.stop_event.is_set():
            stats.stopped = True
            logger.info(f"Stop requested; halting after batch {stats.batches}")
            return True
        return False
