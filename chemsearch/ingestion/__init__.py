"""
Ingestion package for ChemSearch.

- Bulk loading of compound JSON into the primary and vector stores
- PubChem client and batch downloader with persisted progress
"""

from .bulk_loader import BulkLoader, LoadStats, candidate_files, read_json
from .downloader import CompoundDownloader, compound_filename
from .progress import DownloadProgress, DownloadStatus
from .pubchem_client import APIError, PubChemClient, RetryableAPIError

__all__ = [
    "BulkLoader",
    "LoadStats",
    "candidate_files",
    "read_json",
    "CompoundDownloader",
    "compound_filename",
    "DownloadProgress",
    "DownloadStatus",
    "APIError",
    "PubChemClient",
    "RetryableAPIError",
]
