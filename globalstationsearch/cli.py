#!/usr/bin/env python3
"""
Global Station Search command line

Usage:
    globalstationsearch markets.csv
    globalstationsearch --status
    globalstationsearch --search "BBC One" --country GBR
"""

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .api_client import GuideDataClient
from .consolidation import CacheConsolidator
from .errors import NoMarketsConfigured, NoStationsAvailable, StationCacheError
from .ledger import ProcessingLedger
from .manifest import CoverageManifest
from .models import Market
from .pipeline import IncrementalCachingPipeline
from .search import SearchConfig, SearchMode, StationSearch, format_rows
from .settings_manager import get_settings_manager
from .stores import CachePaths

logger = logging.getLogger(__name__)


def load_markets_csv(csv_path: Path) -> List[Market]:
    """Read country,postal_code rows, skipping a header row"""
    markets = []
    with open(csv_path, 'r', newline='', encoding='utf-8') as f:
        for row in csv.reader(f):
            if len(row) < 2 or not row[0].strip():
                continue
            if row[0].strip().lower().startswith('country'):
                continue
            markets.append(Market(row[0], row[1]))
    logger.info(f"Loaded {len(markets)} markets from {csv_path}")
    return markets


def parse_market(value: str) -> Optional[Market]:
    """COUNTRY,POSTAL_CODE from the command line"""
    parts = [part.strip() for part in value.split(',', 1)]
    if len(parts) != 2 or not all(parts):
        return None
    return Market(parts[0], parts[1])


def markets_from_settings(settings_manager) -> List[Market]:
    """Markets stored in settings as {country, postal_code} objects or [country, postal_code] pairs"""
    markets = []
    for entry in settings_manager.get_setting('markets', []) or []:
        if isinstance(entry, dict):
            postal = entry.get('postal_code') or entry.get('zip') or ''
            markets.append(Market(entry.get('country') or '', str(postal)))
        elif isinstance(entry, (list, tuple)) and len(entry) >= 2:
            markets.append(Market(entry[0], str(entry[1])))
    return markets


def print_status(consolidator: CacheConsolidator, ledger: ProcessingLedger, manifest: CoverageManifest):
    status = consolidator.status()
    print(f"Base stations:      {status['base_stations']}")
    print(f"User stations:      {status['user_stations']}")
    if status['combined_stations'] is not None:
        print(f"Combined stations:  {status['combined_stations']}")
    print(f"Effective store:    {status['effective_store'] or 'none'}")
    print(f"Markets cached:     {len(ledger.market_entries())}")
    print(f"Lineups cached:     {len(ledger.lineup_entries())}")
    print(f"Base markets:       {manifest.market_count()}")
    countries = sorted(manifest.covered_countries())
    if countries:
        print(f"Base countries:     {', '.join(countries)}")


def run_search(consolidator: CacheConsolidator, settings_manager, args):
    search = StationSearch(consolidator, SearchConfig.from_settings(settings_manager))
    if args.count:
        mode = SearchMode.COUNT
    elif args.full:
        mode = SearchMode.FULL
    else:
        mode = SearchMode.TSV

    result = search.search(args.search, page=args.page, mode=mode,
                           override_country=args.country,
                           override_resolution=args.resolution)
    if mode is SearchMode.COUNT:
        print(result)
        return
    for line in format_rows(result):
        print(line)


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    parser = argparse.ArgumentParser(
        description='Global Station Search cache builder and station search',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Cache stations for every market in a CSV
  globalstationsearch markets.csv

  # Reprocess markets already in the ledger or base database
  globalstationsearch markets.csv --force

  # Cache without the call sign enhancement phase
  globalstationsearch markets.csv --skip-enhancement

  # Use the markets stored in settings
  globalstationsearch

  # Re-cache one market
  globalstationsearch --refresh-market USA,10001

  # Start over: back up and empty the user database
  globalstationsearch --clear-user

  # Search, 10 results per page
  globalstationsearch --search CNN --page 2 --full

Markets CSV rows are country,postal_code (for example USA,10001).
        """
    )

    parser.add_argument(
        'markets_csv',
        nargs='?',
        help='Path to CSV file containing markets (country,postal_code)'
    )
    parser.add_argument(
        '--force',
        action='store_true',
        help='Reprocess markets and lineups already cached or in the base database'
    )
    parser.add_argument(
        '--skip-enhancement',
        action='store_true',
        help='Skip the station enhancement phase'
    )
    parser.add_argument(
        '--status',
        action='store_true',
        help='Show station database and cache status'
    )
    parser.add_argument(
        '--rebuild',
        action='store_true',
        help='Force a rebuild of the combined station database'
    )
    parser.add_argument(
        '--clear-user',
        action='store_true',
        help='Back up and empty the user station database and reset the processing ledger'
    )
    parser.add_argument(
        '--reset-ledger',
        action='store_true',
        help='Forget processed markets and lineups so the next run processes everything'
    )
    parser.add_argument(
        '--refresh-market',
        metavar='COUNTRY,POSTAL_CODE',
        help='Re-cache a single market even if already cached or in the base database'
    )
    parser.add_argument('--search', metavar='TERM', help='Search stations by name or call sign')
    parser.add_argument('--page', type=int, default=1, help='Results page (default: 1)')
    parser.add_argument('--count', action='store_true', help='Print only the number of matches')
    parser.add_argument('--full', action='store_true', help='Include video quality in results')
    parser.add_argument('--country', help='Only match stations from this country')
    parser.add_argument('--resolution', help='Only match stations with this video quality')

    args = parser.parse_args(argv)

    settings_manager = get_settings_manager()
    paths = CachePaths.from_data_dir(settings_manager.get_data_dir())
    consolidator = CacheConsolidator.from_paths(paths, settings_manager)

    try:
        if args.status:
            print_status(consolidator, ProcessingLedger.from_paths(paths),
                         CoverageManifest(paths.base_manifest, paths.base_stations))
            return 0

        if args.rebuild:
            path = consolidator.rebuild()
            logger.info(f"Station searches now use {path}")
            return 0

        if args.reset_ledger:
            ProcessingLedger.from_paths(paths).reset()
            logger.info("Next caching run will process all markets")
            return 0

        if args.search is not None:
            if args.page < 1:
                logger.error("--page must be 1 or greater")
                return 1
            run_search(consolidator, settings_manager, args)
            return 0

        client = GuideDataClient.from_settings(settings_manager, enrichment=not args.skip_enhancement)
        pipeline = IncrementalCachingPipeline(paths, client, settings_manager, consolidator=consolidator)

        if args.clear_user:
            removed = pipeline.clear_user_store()
            print(f"Removed {removed} stations from the user database")
            return 0

        if args.refresh_market:
            market = parse_market(args.refresh_market)
            if market is None:
                logger.error(f"Invalid market '{args.refresh_market}', expected COUNTRY,POSTAL_CODE")
                return 1
            summary = pipeline.refresh_market(market, skip_enhancement=args.skip_enhancement)
            return 1 if summary.markets_failed else 0

        if args.markets_csv:
            markets_csv_path = Path(args.markets_csv)
            if not markets_csv_path.exists():
                logger.error(f"CSV file not found: {markets_csv_path}")
                return 1
            markets = load_markets_csv(markets_csv_path)
        else:
            markets = markets_from_settings(settings_manager)

        summary = pipeline.run(markets, force_refresh=args.force,
                               skip_enhancement=args.skip_enhancement)
        # Every market failing usually means a bad URL or bad CSV
        return 1 if summary.markets_failed == summary.markets_total else 0

    except (NoMarketsConfigured, NoStationsAvailable) as e:
        logger.error(str(e))
        print(e.hint, file=sys.stderr)
        return 1
    except StationCacheError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted - progress is saved, run again to resume")
        return 130


if __name__ == "__main__":
    sys.exit(main())
