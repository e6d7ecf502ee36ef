"""
Base database coverage manifest reader

The manifest is distributed next to the base station database and lists the
markets (and optionally lineups) that went into building it. It is never
written here.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Set, Tuple

from .models import Market
from .stores import file_mtime

logger = logging.getLogger(__name__)


class CoverageManifest:
    """Read-only view of all_stations_base_manifest.json"""

    def __init__(self, manifest_path: Path, base_stations_path: Optional[Path] = None):
        self.manifest_path = Path(manifest_path)
        self.base_stations_path = Path(base_stations_path) if base_stations_path else None
        self._markets: Optional[Set[Tuple[str, str]]] = None
        self._lineups: Set[str] = set()
        self._countries: Set[str] = set()

    def _load(self):
        if self._markets is not None:
            return

        self._markets = set()
        if not self.manifest_path.is_file():
            logger.info(f"No base manifest at {self.manifest_path}, no markets will be skipped")
            return

        try:
            with open(self.manifest_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable base manifest {self.manifest_path}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Base manifest {self.manifest_path} is not a JSON object")
            return

        for entry in data.get('markets') or []:
            if not isinstance(entry, dict):
                continue
            postal = entry.get('zip') or entry.get('postal_code') or entry.get('postalCode')
            if entry.get('country') and postal:
                self._markets.add(Market(entry['country'], str(postal)).key)

        for entry in data.get('lineups') or []:
            lineup_id = entry.get('lineup_id') if isinstance(entry, dict) else entry
            if lineup_id:
                self._lineups.add(str(lineup_id))

        stats = data.get('stats') or {}
        countries = stats.get('countries_covered') if isinstance(stats, dict) else None
        if countries:
            self._countries = {str(c).upper() for c in countries if c}
        else:
            self._countries = {country for country, _ in self._markets}

        logger.info(f"Base manifest loaded: {len(self._markets)} markets, "
                    f"{len(self._lineups)} lineups, {len(self._countries)} countries")
        if self.is_stale():
            logger.warning("Base manifest is older than the base station database - "
                           "covered markets may be reprocessed")

    def is_stale(self) -> bool:
        """True if the manifest predates the base station database"""
        if not self.base_stations_path or not self.manifest_path.is_file():
            return False
        base_time = file_mtime(self.base_stations_path)
        return base_time > 0 and file_mtime(self.manifest_path) < base_time

    def is_market_covered(self, country: str, postal_code: str) -> bool:
        self._load()
        return Market(country, postal_code).key in self._markets

    def is_lineup_covered(self, lineup_id: str) -> bool:
        self._load()
        return lineup_id in self._lineups

    def covered_countries(self) -> Set[str]:
        self._load()
        return set(self._countries)

    def market_count(self) -> int:
        self._load()
        return len(self._markets)
