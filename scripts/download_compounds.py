"""
Download PubChem compound records to disk.

Writes one ``pubchem_compound_<cid>.json`` per compound into the output
directory and keeps a pollable progress file up to date.

Usage:
    python scripts/download_compounds.py --start 1 --count 1000
    python scripts/download_compounds.py --start 2244 --count 1 --output data/compounds
    python scripts/download_compounds.py --status              # Show saved progress
    python scripts/download_compounds.py --start 1 --count 50 --clear-cache
"""
import argparse
import json
import signal
import sys
from pathlib import Path

from loguru import logger
from tqdm import tqdm

from chemsearch import ConfigManager
from chemsearch.ingestion import CompoundDownloader, DownloadProgress, PubChemClient


def main() -> int:
    parser = argparse.ArgumentParser(description="Download PubChem compounds")
    parser.add_argument('--config', type=Path, default=Path('config/chemsearch.yaml'))
    parser.add_argument('--start', type=int, default=1, help='First CID')
    parser.add_argument('--count', type=int, default=100, help='Number of consecutive CIDs')
    parser.add_argument('--output', type=Path, help='Output directory (default: ingestion.data_dir)')
    parser.add_argument('--status', action='store_true', help='Print saved progress and exit')
    parser.add_argument('--clear-cache', action='store_true', help='Drop cached PubChem responses first')
    args = parser.parse_args()

    config = ConfigManager(args.config)
    pubchem = config.section('pubchem')
    progress_path = Path(pubchem['progress_path'])

    if args.status:
        progress = DownloadProgress.load(progress_path)
        if progress is None:
            print("No download has been started")
        else:
            print(json.dumps(progress.to_dict(), indent=2))
        return 0

    if args.start < 1 or args.count < 1:
        parser.error("--start and --count must be positive")

    output_dir = args.output or Path(config.get('ingestion', 'data_dir'))

    with PubChemClient(
        base_url=pubchem['base_url'],
        cache_dir=Path(pubchem['cache_dir']),
        timeout=pubchem['timeout'],
        max_retries=pubchem['max_retries'],
        base_delay=pubchem['base_delay'],
        max_delay=pubchem['max_delay'],
    ) as client, tqdm(total=args.count, desc="Downloading", unit="compound") as pbar:
        if args.clear_cache:
            client.clear_cache()
        downloader = CompoundDownloader(
            client,
            output_dir=output_dir,
            progress_path=progress_path,
            batch_size=pubchem['download_batch_size'],
            max_workers=pubchem['download_workers'],
            on_batch=lambda progress, size: pbar.update(size),
        )
        signal.signal(signal.SIGINT, lambda *_: downloader.stop_event.set())

        logger.info(f"Downloading CIDs {args.start}-{args.start + args.count - 1} to {output_dir}")
        progress = downloader.run(range(args.start, args.start + args.count))

    logger.info(
        f"Download {progress.status.value}: {progress.downloaded_count} downloaded, "
        f"{progress.failed_count} failed of {progress.total_count}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
