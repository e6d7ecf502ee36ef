"""
Incremental caching pipeline - grows the user station database market by market

Phases:
    1. Market resolution   skip markets in the ledger or the base manifest,
                           otherwise discover the market's lineups
    2. Lineup dedup        a lineup is shared by many nearby markets
    3. Station fetch       one request per new lineup
    4. Country tagging     stations take their lineup's market country
    5. Station dedup       one record per stationId, longest name wins
    6. Enrichment          optional call sign lookup for unnamed stations
    7. User store merge    incoming records replace existing ones
    8. Finalize            invalidate the combined view, clear the work area

Every market and lineup is recorded in the processing ledger as soon as it is
done. Raw market responses and lineup station lists are kept in a work area
until the user store merge succeeds, so a run interrupted between units picks
up where it stopped on the next run.
"""

import json
import logging
import shutil
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote, unquote

from .api_client import GuideDataClient
from .consolidation import CacheConsolidator
from .errors import NoMarketsConfigured
from .ledger import ProcessingLedger
from .manifest import CoverageManifest
from .models import (
    UNKNOWN_COUNTRY, CachingSummary, Lineup, Market, StationRecord, api_station_fields,
    merge_countries,
)
from .settings_manager import SettingsManager
from .stores import CachePaths, atomic_write_json

logger = logging.getLogger(__name__)


# ============================================
# HELPERS
# ============================================

def normalize_markets(markets: Iterable) -> List[Market]:
    """Normalize (country, postal_code) pairs and drop repeats, keeping first-seen order"""
    result = []
    seen = set()
    for item in markets:
        market = item if isinstance(item, Market) else Market(*item)
        if not market.country or not market.postal_code:
            logger.warning(f"Ignoring incomplete market: {item!r}")
            continue
        if market.key in seen:
            continue
        seen.add(market.key)
        result.append(market)
    return result


def country_from_lineup_id(lineup_id: str) -> str:
    """Best-effort country from a lineup ID such as USA-OTA10001 or GBR-1000193-DEFAULT"""
    prefix = (lineup_id or '').split('-', 1)[0].strip().upper()
    if len(prefix) == 3 and prefix.isalpha():
        return prefix
    return UNKNOWN_COUNTRY


def deduplicate_stations(records: Iterable[StationRecord]) -> List[StationRecord]:
    """
    One record per stationId, preferring the longest non-empty name (first seen
    on ties). The kept record is available in every country that carried the
    station. Sorted by name.
    """
    best: Dict[str, StationRecord] = {}
    countries: Dict[str, List[str]] = {}
    for record in records:
        current = best.get(record.station_id)
        if current is None or len(record.name or '') > len(current.name or ''):
            best[record.station_id] = record
        countries[record.station_id] = merge_countries(
            countries.get(record.station_id), record.countries)
    return sorted((replace(r, available_in=countries[r.station_id]) for r in best.values()),
                  key=lambda r: r.sort_name)


def merge_into_user_records(existing: Iterable[StationRecord],
                            incoming: Iterable[StationRecord]) -> List[StationRecord]:
    """
    Union by stationId where an incoming record replaces the existing one.
    Countries the existing record was available in are kept.
    """
    by_id: Dict[str, StationRecord] = {}
    for record in list(existing) + list(incoming):
        previous = by_id.pop(record.station_id, None)
        if previous is not None:
            record = replace(record, available_in=merge_countries(previous.countries, record.countries))
        by_id[record.station_id] = record
    return sorted(by_id.values(), key=lambda r: r.sort_name)


# ============================================
# WORK AREA
# ============================================

class WorkArea:
    """Raw market responses and fetched lineup stations not yet merged into the user store"""

    def __init__(self, work_dir: Path):
        self.raw_dir = Path(work_dir) / "raw"
        self.stations_dir = Path(work_dir) / "stations"

    def save_market_response(self, market: Market, lineups: List[dict]):
        path = self.raw_dir / f"last_raw_{quote(market.country, safe='')}_{quote(market.postal_code, safe='')}.json"
        atomic_write_json(path, {'country': market.country, 'zip': market.postal_code, 'lineups': lineups})

    def load_market_responses(self) -> List[Tuple[Market, List[dict]]]:
        responses = []
        for path in sorted(self.raw_dir.glob("last_raw_*.json")):
            data = self._read(path)
            if data and data.get('country') and data.get('zip'):
                responses.append((Market(data['country'], data['zip']), data.get('lineups') or []))
        return responses

    def save_lineup_stations(self, lineup_id: str, market: Market, stations: List[dict]):
        path = self.stations_dir / f"{quote(lineup_id, safe='')}.json"
        atomic_write_json(path, {
            'lineup_id': lineup_id,
            'country': market.country,
            'zip': market.postal_code,
            'stations': stations,
        })

    def load_lineup_stations(self) -> Dict[str, Tuple[str, List[dict]]]:
        """lineup_id -> (country, raw station objects)"""
        spooled = {}
        for path in sorted(self.stations_dir.glob("*.json")):
            data = self._read(path)
            if not data:
                continue
            lineup_id = data.get('lineup_id') or unquote(path.stem)
            spooled[lineup_id] = (data.get('country') or UNKNOWN_COUNTRY, data.get('stations') or [])
        return spooled

    def clear(self):
        for directory in (self.raw_dir, self.stations_dir):
            if directory.is_dir():
                for path in directory.glob("*.json"):
                    path.unlink()

    @staticmethod
    def _read(path: Path) -> Optional[dict]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable work file {path}: {e}")
            return None
        return data if isinstance(data, dict) else None


# ============================================
# PIPELINE
# ============================================

class IncrementalCachingPipeline:
    """Builds the user station database from configured markets"""

    def __init__(self, paths: CachePaths, client: GuideDataClient, settings_manager: SettingsManager,
                 ledger: Optional[ProcessingLedger] = None,
                 manifest: Optional[CoverageManifest] = None,
                 consolidator: Optional[CacheConsolidator] = None):
        self.paths = paths
        self.client = client
        self.ledger = ledger or ProcessingLedger.from_paths(paths)
        self.manifest = manifest or CoverageManifest(paths.base_manifest, paths.base_stations)
        self.consolidator = consolidator or CacheConsolidator.from_paths(paths, settings_manager)
        self.user_store = self.consolidator.user_store
        self.work = WorkArea(paths.work_dir)

    def run(self, configured_markets: Iterable, force_refresh: bool = False,
            skip_enhancement: bool = False) -> CachingSummary:
        """
        Run all caching phases over the configured markets.

        Args:
            configured_markets: Market objects or (country, postal_code) pairs
            force_refresh: reprocess markets and lineups already in the ledger or manifest
            skip_enhancement: skip the call sign enrichment phase

        Raises:
            NoMarketsConfigured: no usable markets were given
            LedgerWriteError: the ledger could not be written; the run stops
        """
        start_time = time.time()
        markets = normalize_markets(configured_markets)
        if not markets:
            raise NoMarketsConfigured()

        summary = CachingSummary(markets_total=len(markets))
        summary.user_stations_before = self.user_store.count()

        logger.info("=" * 60)
        logger.info("User Database Expansion")
        logger.info(f"Markets: {len(markets)}")
        logger.info(f"Force refresh: {force_refresh}")
        logger.info("=" * 60)

        # Phase 1: market resolution
        responses: Dict[Market, List[dict]] = {}
        for index, market in enumerate(markets, 1):
            logger.info(f"[{index}/{len(markets)}] Market {market}")
            lineups = self._resolve_market(market, force_refresh, summary)
            if lineups:
                responses[market] = lineups

        # Responses left behind by an interrupted run
        for market, lineups in self.work.load_market_responses():
            responses.setdefault(market, lineups)

        # Phase 2: lineup dedup
        lineup_ids = []
        seen = set()
        for lineups in responses.values():
            for item in lineups:
                lineup = Lineup.from_api(item)
                if not lineup:
                    continue
                summary.lineups_found += 1
                if lineup.lineup_id not in seen:
                    seen.add(lineup.lineup_id)
                    lineup_ids.append(lineup.lineup_id)
        summary.lineups_unique = len(lineup_ids)
        if lineup_ids:
            logger.info(f"Found {summary.lineups_found} lineups, {len(lineup_ids)} unique")

        # Phase 3: station fetch
        for lineup_id in lineup_ids:
            self._fetch_lineup(lineup_id, responses, force_refresh, summary)

        # Phase 4: tagging and flattening, in lineup discovery order
        spooled = self.work.load_lineup_stations()
        order = [lid for lid in lineup_ids if lid in spooled]
        order += [lid for lid in spooled if lid not in seen]
        stations = []
        for lineup_id in order:
            country, channels = spooled[lineup_id]
            for channel in channels:
                record = StationRecord.from_api(channel, country=country, source='user')
                if record:
                    stations.append(record)
        summary.stations_raw = len(stations)

        # Phase 5: station dedup
        stations = deduplicate_stations(stations)
        summary.stations_deduplicated = len(stations)
        if summary.stations_raw:
            logger.info(f"Deduplicated {summary.stations_raw} stations to {len(stations)} unique")

        # Phase 6: enrichment
        if stations and not skip_enhancement:
            stations = self._enrich(stations, summary)
        elif skip_enhancement:
            logger.info("Skipping enhancement phase as requested")

        # Phase 7: merge into user store
        if stations:
            merged = merge_into_user_records(self.user_store.load(), stations)
            self.user_store.save(merged)
            summary.user_stations_after = len(merged)
        else:
            summary.user_stations_after = summary.user_stations_before
            logger.info("No new stations to add to user database")

        # Phase 8: finalize
        if stations:
            self.consolidator.invalidate()
        self.work.clear()

        summary.elapsed_seconds = round(time.time() - start_time, 2)
        self._log_summary(summary)
        return summary

    def _resolve_market(self, market: Market, force_refresh: bool,
                        summary: CachingSummary) -> Optional[List[dict]]:
        if not force_refresh:
            if self.ledger.is_market_processed(market.country, market.postal_code):
                logger.info(f"Already cached: {market}")
                summary.markets_already_processed += 1
                return None
            if self.manifest.is_market_covered(market.country, market.postal_code):
                logger.info(f"Skipping (in base database): {market}")
                self.ledger.record_market(market.country, market.postal_code, 0)
                summary.markets_skipped_manifest += 1
                return None

        lineups = self.client.fetch_lineups(market)
        if not lineups:
            logger.warning(f"No lineups found for {market} (check if postcode is valid)")
            self.ledger.record_market(market.country, market.postal_code, 0)
            summary.markets_failed += 1
            summary.failed_markets.append(str(market))
            return None

        self.work.save_market_response(market, lineups)
        self.ledger.record_market(market.country, market.postal_code, len(lineups))
        summary.markets_processed += 1
        return lineups

    def _origin_market(self, lineup_id: str, responses: Dict[Market, List[dict]]) -> Market:
        """Market whose lineup response listed this lineup"""
        for market, lineups in responses.items():
            for item in lineups:
                lineup = Lineup.from_api(item)
                if lineup and lineup.lineup_id == lineup_id:
                    return market

        market = self.ledger.market_for_lineup(lineup_id)
        if market:
            return market

        country = country_from_lineup_id(lineup_id)
        logger.debug(f"No market found for lineup {lineup_id}, guessed country {country}")
        return Market(country, '')

    def _fetch_lineup(self, lineup_id: str, responses: Dict[Market, List[dict]],
                      force_refresh: bool, summary: CachingSummary):
        market = self._origin_market(lineup_id, responses)

        if not force_refresh:
            if self.ledger.is_lineup_processed(lineup_id):
                logger.debug(f"Database skip: {lineup_id} (already processed)")
                summary.lineups_skipped += 1
                return
            if self.manifest.is_lineup_covered(lineup_id):
                logger.debug(f"Base skip: {lineup_id} (in base database)")
                self.ledger.record_lineup(lineup_id, market.country, market.postal_code, 0)
                summary.lineups_skipped_manifest += 1
                return

        stations = self.client.fetch_stations(lineup_id)
        if stations is None:
            self.ledger.record_lineup(lineup_id, market.country, market.postal_code, 0)
            summary.lineups_failed += 1
            return

        self.work.save_lineup_stations(lineup_id, market, stations)
        self.ledger.record_lineup(lineup_id, market.country, market.postal_code, len(stations))
        summary.lineups_processed += 1
        logger.info(f"Processed: {lineup_id} ({len(stations)} stations, {market.country})")

    def _enrich(self, stations: List[StationRecord], summary: CachingSummary) -> List[StationRecord]:
        """Fill in missing names via call sign lookup"""
        if not self.client.enrichment_enabled:
            logger.debug("No enrichment endpoint configured")
            return stations

        candidates = [i for i, s in enumerate(stations) if s.call_sign and not s.name]
        if not candidates:
            return stations
        logger.info(f"Enhancing {len(candidates)} stations without names...")

        enriched = list(stations)
        for i in candidates:
            station = enriched[i]
            details = self.client.fetch_station_details(station.station_id, station.call_sign)
            if not details:
                continue
            updated = replace(station, **api_station_fields(details))
            enriched[i] = updated
            if updated.name:
                summary.stations_enriched += 1

        return sorted(enriched, key=lambda r: r.sort_name)

    # ============================================
    # CACHE MANAGEMENT
    # ============================================

    def clear_user_store(self) -> int:
        """
        Back up and empty the user store, then reset the processing ledger so the
        next run processes every market again. Returns the number of stations removed.
        """
        removed = self.user_store.count()
        if removed == 0:
            logger.info("User store is already empty")
            return 0

        backup = self.paths.backup_dir / f"all_stations_user_{time.strftime('%Y%m%d_%H%M%S')}.json"
        backup.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(self.user_store.path), str(backup))
        logger.info(f"User store backed up to {backup}")

        self.user_store.save([])
        self.ledger.reset()
        self.work.clear()
        self.consolidator.invalidate()
        logger.info(f"Cleared {removed} stations from the user store")
        return removed

    def refresh_market(self, market, skip_enhancement: bool = False) -> CachingSummary:
        """Forget one market and cache it again, bypassing the ledger and base manifest"""
        market = market if isinstance(market, Market) else Market(*market)
        self.ledger.forget_market(market.country, market.postal_code)
        return self.run([market], force_refresh=True, skip_enhancement=skip_enhancement)

    def _log_summary(self, summary: CachingSummary):
        logger.info("=" * 60)
        logger.info("Caching Summary")
        logger.info(f"Markets processed: {summary.markets_processed}")
        logger.info(f"Markets already cached: {summary.markets_already_processed}")
        logger.info(f"Markets skipped (base database): {summary.markets_skipped_manifest}")
        logger.info(f"Markets failed: {summary.markets_failed}")
        logger.info(f"Lineups processed: {summary.lineups_processed} of {summary.lineups_unique} unique")
        logger.info(f"Lineups skipped: {summary.lineups_skipped} cached, "
                    f"{summary.lineups_skipped_manifest} base, {summary.lineups_failed} failed")
        logger.info(f"Stations: {summary.stations_raw} raw, {summary.stations_deduplicated} unique, "
                    f"{summary.stations_enriched} enhanced")
        logger.info(f"User database: {summary.user_stations_before} -> {summary.user_stations_after}")
        logger.info(f"Elapsed: {summary.elapsed_seconds:.1f}s")
        if summary.failed_markets:
            logger.info("Failed markets may have invalid postcodes: " + ", ".join(summary.failed_markets))
