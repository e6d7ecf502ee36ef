"""
Combined station cache - merges the base and user stores

Searches read whichever store resolve_effective_store() returns. When both
stores have stations, user records replace base records with the same
stationId and the merged result is written to the combined view. A
freshness token in the settings file lets later calls reuse that file
without merging again.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from .errors import NoStationsAvailable
from .models import StationRecord
from .settings_manager import SettingsManager
from .stores import CachePaths, StationStore

logger = logging.getLogger(__name__)


def merge_base_and_user(base: List[StationRecord], user: List[StationRecord]) -> List[StationRecord]:
    """User records override base records with the same stationId; sorted by name"""
    user_ids = {record.station_id for record in user}
    merged = [record for record in base if record.station_id not in user_ids]

    # Last write wins if a store itself holds duplicates
    by_id: Dict[str, StationRecord] = {}
    for record in merged + list(user):
        by_id.pop(record.station_id, None)
        by_id[record.station_id] = record

    return sorted(by_id.values(), key=lambda r: r.sort_name)


class CacheConsolidator:
    """Resolves the store that answers queries and keeps the combined view current"""

    def __init__(self, base_store: StationStore, user_store: StationStore,
                 combined_store: StationStore, settings_manager: SettingsManager):
        self.base_store = base_store
        self.user_store = user_store
        self.combined_store = combined_store
        self.settings_manager = settings_manager

    @classmethod
    def from_paths(cls, paths: CachePaths, settings_manager: SettingsManager) -> "CacheConsolidator":
        return cls(
            StationStore(paths.base_stations, 'base'),
            StationStore(paths.user_stations, 'user'),
            StationStore(paths.combined_stations, 'combined'),
            settings_manager,
        )

    def is_fresh(self) -> bool:
        """True if the combined view on disk reflects the current base and user stores"""
        if not self.combined_store.exists():
            return False

        base_time = self.base_store.mtime()
        user_time = self.user_store.mtime()
        combined_time = self.combined_store.mtime()

        # Method 1: file timestamps
        if combined_time > base_time and combined_time > user_time:
            return True

        # Method 2: saved state, survives clock/mtime granularity issues
        saved_combined, saved_base, saved_user = self.settings_manager.load_combined_cache_state()
        return saved_combined != 0 and saved_base == base_time and saved_user == user_time

    def resolve_effective_store(self) -> Path:
        """
        Path of the store that should answer queries.

        Raises:
            NoStationsAvailable: neither store has any stations
        """
        if self.user_store.is_empty():
            if self.base_store.is_empty():
                raise NoStationsAvailable()
            return self.base_store.path

        if self.base_store.is_empty():
            return self.user_store.path

        if self.is_fresh():
            logger.debug("Combined station cache is fresh")
            return self.combined_store.path

        self._build_combined()
        return self.combined_store.path

    def _build_combined(self) -> int:
        base = self.base_store.load()
        user = self.user_store.load()
        logger.info(f"Building combined station database: {len(base)} base + {len(user)} user stations")

        combined = merge_base_and_user(base, user)
        self.combined_store.save(combined)
        self.settings_manager.save_combined_cache_state(
            time.time_ns(), self.base_store.mtime(), self.user_store.mtime())

        logger.info(f"Combined station database ready: {len(combined)} stations")
        return len(combined)

    def invalidate(self):
        """Drop the combined view so the next resolve rebuilds it"""
        self.combined_store.delete()
        self.settings_manager.clear_combined_cache_state()
        logger.info("Combined station cache invalidated, will rebuild on next search")

    def rebuild(self) -> Path:
        """Force a rebuild of the combined view"""
        self.invalidate()
        return self.resolve_effective_store()

    def load_effective(self) -> List[StationRecord]:
        return StationStore(self.resolve_effective_store(), 'effective').load()

    def status(self) -> Dict[str, Optional[object]]:
        base_count = self.base_store.count()
        user_count = self.user_store.count()
        status = {
            'base_stations': base_count,
            'user_stations': user_count,
            'combined_stations': self.combined_store.count() if self.combined_store.exists() else None,
            'combined_fresh': self.is_fresh() if base_count and user_count else None,
            'effective_store': None,
        }
        try:
            effective = self.resolve_effective_store()
        except NoStationsAvailable:
            return status
        status['effective_store'] = {
            self.base_store.path: 'base',
            self.user_store.path: 'user',
            self.combined_store.path: 'combined',
        }.get(effective)
        if status['effective_store'] == 'combined':
            status['combined_stations'] = self.combined_store.count()
            status['combined_fresh'] = True
        return status
