"""
Search compounds from the command line.

Usage:
    python scripts/search_compounds.py aspirin
    python scripts/search_compounds.py "pain relief" --type semantic --weight 100-200
    python scripts/search_compounds.py --type keyword --class "Organic compounds" --sort name
    python scripts/search_compounds.py aspirin --json
"""
import argparse
import json
import logging
import sys
from pathlib import Path

from chemsearch import ConfigManager, SearchQueryValidationError, build_service
from chemsearch.errors import PrimaryStoreUnavailableError

logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Search compounds")
    parser.add_argument('query', nargs='?', default='', help='Search text')
    parser.add_argument('--config', type=Path, default=Path('config/chemsearch.yaml'))
    parser.add_argument('--type', dest='search_type', choices=['semantic', 'keyword'], default='semantic')
    parser.add_argument('--weight', default='', help='lt_100, 100-200, 200-500 or gt_500')
    parser.add_argument('--class', dest='chemical_class', default='', help='Chemical class label')
    parser.add_argument('--sort', default='relevance', choices=['relevance', 'molecular_weight', 'name'])
    parser.add_argument('--page', default='1')
    parser.add_argument('--limit', default='10')
    parser.add_argument('--json', action='store_true', help='Print the raw response as JSON')
    args = parser.parse_args()

    service = build_service(ConfigManager(args.config))
    service.initialize()

    try:
        response = service.search_compounds({
            'query': args.query,
            'searchType': args.search_type,
            'molecularWeight': args.weight,
            'chemicalClass': args.chemical_class,
            'sort': args.sort,
            'page': args.page,
            'limit': args.limit,
        })
    except SearchQueryValidationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except PrimaryStoreUnavailableError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(response.to_dict(), indent=2))
        return 0

    mode = response.search_type.value + (" (degraded)" if response.degraded else "")
    print(f"{response.total_results} results, page {response.page}/{response.total_pages} [{mode}]")
    for result in response.results:
        weight = f"{result.molecular_weight:.2f}" if result.molecular_weight is not None else "?"
        score = f" {result.similarity:>3}%" if result.similarity is not None else ""
        print(f"  {result.cid:>10}  {result.name[:50]:<50} {result.formula or '':<14} {weight:>9}{score}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
