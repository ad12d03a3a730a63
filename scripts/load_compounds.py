"""
Load compound JSON files into the primary store and vector index.

Accepts a single file or a directory of ``*.json`` files in any supported
shape (PC_Compounds, PUG View Record, or flat records).

Usage:
    python scripts/load_compounds.py                           # Configured data_dir
    python scripts/load_compounds.py data/compounds --limit 500
    python scripts/load_compounds.py --reconcile               # Retry missing vectors
    python scripts/load_compounds.py --no-model                # Placeholder vectors
"""
import argparse
import logging
import sys
from pathlib import Path

from chemsearch import ConfigManager, build_service
from chemsearch.errors import PrimaryStoreUnavailableError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Load compound JSON files")
    parser.add_argument('path', nargs='?', help='File or directory (default: ingestion.data_dir)')
    parser.add_argument('--config', type=Path, default=Path('config/chemsearch.yaml'),
                        help='YAML configuration file')
    parser.add_argument('--limit', type=int, help='Stop after this many compounds are ingested')
    parser.add_argument('--batch-size', type=int, help='Override ingestion.batch_size')
    parser.add_argument('--no-model', action='store_true',
                        help='Use placeholder vectors instead of loading the embedding model')
    parser.add_argument('--reconcile', action='store_true',
                        help='Only re-index compounds missing from the vector store')
    args = parser.parse_args()

    config = ConfigManager(args.config)
    if args.batch_size:
        config.config['ingestion']['batch_size'] = args.batch_size
    if args.no_model:
        config.config['vector_store']['use_embedding_model'] = False

    errors = config.validate_config()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        return 2

    service = build_service(config)
    # An unusable vector index is logged and its writes left for --reconcile
    service.initialize(seed=False)

    try:
        if args.reconcile:
            count = service.reconcile(args.limit)
            logger.info(f"Re-indexed {count} compounds")
            return 0

        stats = service.load(args.path, limit=args.limit)
    except PrimaryStoreUnavailableError as e:
        logger.error(f"Load aborted: {e}")
        return 1

    logger.info("=" * 60)
    logger.info("LOAD SUMMARY")
    logger.info("=" * 60)
    for key, value in stats.to_dict().items():
        logger.info(f"  {key:<20} {value}")
    logger.info(f"  {'total in store':<20} {service.primary.count()}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
