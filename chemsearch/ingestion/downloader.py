"""
Batch download of PubChem compound records to disk.

CIDs are fetched in sequential batches; inside a batch requests fan out
over a small thread pool (the client's rate limiter still applies).
Each record lands in ``pubchem_compound_<cid>.json`` and files already on
disk are not fetched again. A :class:`DownloadProgress` record is
rewritten after every batch.
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from loguru import logger

from .progress import DownloadProgress, DownloadStatus
from .pubchem_client import APIError, PubChemClient


def compound_filename(cid: int) -> str:
    return f"pubchem_compound_{cid}.json"


class CompoundDownloader:
    """Downloads compound records for a range of CIDs with persisted progress."""

    def __init__(
        self,
        client: PubChemClient,
        output_dir: Union[str, Path],
        progress_path: Union[str, Path],
        batch_size: int = 10,
        max_workers: int = 3,
        stop_event: Optional[threading.Event] = None,
        on_batch: Optional[Callable[[DownloadProgress, int], None]] = None,
    ):
        """
        Args:
            client: PubChem client
            output_dir: Directory receiving one JSON file per compound
            progress_path: Where the progress record is written
            batch_size: CIDs per batch
            max_workers: Concurrent requests within a batch
            stop_event: Checked between batches
            on_batch: Called with the progress and the batch size after each batch
        """
        self.client = client
        self.output_dir = Path(output_dir)
        self.progress_path = Path(progress_path)
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.stop_event = stop_event or threading.Event()
        self.on_batch = on_batch

    def run(self, cids: Iterable[int]) -> DownloadProgress:
        """
        Download every CID not already on disk.

        Returns:
            Final DownloadProgress (also persisted to ``progress_path``)
        """
        cids = list(cids)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        progress = DownloadProgress(total_count=len(cids))
        progress.save(self.progress_path)
        progress.set_status(DownloadStatus.RUNNING)

        try:
            for start in range(0, len(cids), self.batch_size):
                if self.stop_event.is_set():
                    logger.info("Stop requested; ending download early")
                    progress.set_status(DownloadStatus.STOPPED)
                    break

                batch = cids[start:start + self.batch_size]
                downloaded, failed = self._download_batch(batch)
                progress.record_batch(batch[0], batch[-1], downloaded, failed)
                progress.save(self.progress_path)
                logger.info(
                    f"Batch {batch[0]}-{batch[-1]}: {downloaded} downloaded, {failed} failed "
                    f"({progress.downloaded_count}/{progress.total_count})"
                )
                if self.on_batch:
                    self.on_batch(progress, len(batch))
            else:
                progress.set_status(DownloadStatus.COMPLETED)
        except Exception:
            progress.set_status(DownloadStatus.FAILED)
            progress.save(self.progress_path)
            raise

        progress.save(self.progress_path)
        return progress

    def _download_batch(self, batch: List[int]) -> Tuple[int, int]:
        downloaded = failed = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_cid = {executor.submit(self._download_one, cid): cid for cid in batch}
            for future in as_completed(future_to_cid):
                cid = future_to_cid[future]
                try:
                    if future.result():
                        downloaded += 1
                    else:
                        failed += 1
                except (APIError, OSError) as e:
                    logger.warning(f"Failed to download cid={cid}: {e}")
                    failed += 1

        return downloaded, failed

    def _download_one(self, cid: int) -> bool:
        """Fetch and save one compound; False if PubChem has no record."""
        target = self.output_dir / compound_filename(cid)
        if target.exists():
            logger.debug(f"cid={cid} already downloaded")
            return True

        data = self.client.fetch_compound(cid)
        if data is None:
            logger.debug(f"cid={cid} not found on PubChem")
            return False

        # Only complete files ever appear under the final name
        tmp_path = target.with_suffix(target.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            tmp_path.replace(target)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        return True
