"""
Persisted progress record for long-running compound downloads.

The downloader rewrites the record after every batch so a separate
process (or a status endpoint) can poll it.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

MAX_BATCH_HISTORY = 50


class DownloadStatus(Enum):
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DownloadProgress:
    """Status, counters, timestamps and the most recent batch summaries."""
    total_count: int
    status: DownloadStatus = DownloadStatus.STARTING
    downloaded_count: int = 0
    failed_count: int = 0
    started_at: str = field(default_factory=_now)
    last_update: str = field(default_factory=_now)
    batches: List[Dict[str, Any]] = field(default_factory=list)

    def record_batch(self, start_cid: int, end_cid: int, downloaded: int, failed: int) -> None:
        """Fold one finished batch into the counters and history."""
        self.downloaded_count += downloaded
        self.failed_count += failed
        self.last_update = _now()
        self.batches.append({
            "startCid": start_cid,
            "endCid": end_cid,
            "downloaded": downloaded,
            "failed": failed,
            "timestamp": self.last_update,
        })
        # Keep only the most recent history
        del self.batches[:-MAX_BATCH_HISTORY]

    def set_status(self, status: DownloadStatus) -> None:
        self.status = status
        self.last_update = _now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "downloadedCount": self.downloaded_count,
            "failedCount": self.failed_count,
            "totalCount": self.total_count,
            "startedAt": self.started_at,
            "lastUpdate": self.last_update,
            "batches": list(self.batches),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadProgress":
        return cls(
            total_count=int(data.get("totalCount", 0)),
            status=DownloadStatus(data.get("status", DownloadStatus.STARTING.value)),
            downloaded_count=int(data.get("downloadedCount", 0)),
            failed_count=int(data.get("failedCount", 0)),
            started_at=data.get("startedAt") or _now(),
            last_update=data.get("lastUpdate") or _now(),
            batches=list(data.get("batches") or [])[-MAX_BATCH_HISTORY:],
        )

    def save(self, path: Union[str, Path]) -> None:
        """Write the record atomically (temp file then rename)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        tmp_path.replace(path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> Optional["DownloadProgress"]:
        """
        Read a saved record.

        Returns:
            DownloadProgress, or None if no download has been started
        """
        path = Path(path)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
