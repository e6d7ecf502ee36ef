"""
Station search over the effective station store

Terms match name or call sign case-insensitively by substring, or exactly.
Resolution and country filters come from the configured SearchConfig unless
the caller passes a per-call override (e.g. values parsed from a channel name).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Set, Union

from .consolidation import CacheConsolidator
from .models import StationRecord, VideoQuality

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_PER_PAGE = 10


class SearchMode(Enum):
    COUNT = "count"
    TSV = "tsv"
    FULL = "full"


@dataclass
class SearchConfig:
    """User filter settings applied to every search"""
    filter_by_resolution: bool = False
    enabled_resolutions: Set[str] = field(default_factory=lambda: {'SDTV', 'HDTV', 'UHDTV'})
    filter_by_country: bool = False
    enabled_countries: Set[str] = field(default_factory=set)
    page_size: int = DEFAULT_RESULTS_PER_PAGE

    @classmethod
    def from_settings(cls, settings_manager) -> "SearchConfig":
        search = settings_manager.get_setting('search', {}) or {}
        return cls(
            filter_by_resolution=bool(search.get('filter_by_resolution', False)),
            enabled_resolutions=_as_set(search.get('enabled_resolutions', ['SDTV', 'HDTV', 'UHDTV'])),
            filter_by_country=bool(search.get('filter_by_country', False)),
            enabled_countries=_as_set(search.get('enabled_countries', [])),
            page_size=int(search.get('results_per_page') or DEFAULT_RESULTS_PER_PAGE),
        )


def _as_set(value) -> Set[str]:
    """Accept a list or the comma separated form used in older config files"""
    if isinstance(value, str):
        value = value.split(',')
    return {str(v).strip().upper() for v in value or [] if str(v).strip()}


def _quality_label(record: StationRecord) -> str:
    return record.video_quality.value if record.video_quality else "Unknown"


class StationSearch:
    """Filtered, paginated queries against the consolidated station database"""

    def __init__(self, consolidator: CacheConsolidator, config: Optional[SearchConfig] = None):
        self.consolidator = consolidator
        self.config = config or SearchConfig()

    def _matches(self, record: StationRecord, term: str, term_lower: str,
                 country: Optional[str], resolution: Optional[str]) -> bool:
        name = record.name or ''
        call_sign = record.call_sign or ''
        if not (term_lower in name.lower() or term_lower in call_sign.lower()
                or name == term or call_sign == term):
            return False

        quality = record.video_quality.value if record.video_quality else ''
        if resolution:
            if quality != resolution:
                return False
        elif self.config.filter_by_resolution and quality not in self.config.enabled_resolutions:
            return False

        # Multi-country stations match any country they are available in
        if country:
            if country not in record.countries:
                return False
        elif (self.config.filter_by_country and self.config.enabled_countries
              and not record.countries & self.config.enabled_countries):
            return False

        return True

    def matching(self, term: str, override_country: Optional[str] = None,
                 override_resolution: Optional[str] = None) -> List[StationRecord]:
        """All records matching the term and filters, in store order"""
        term = (term or '').strip()
        country = override_country.strip().upper() if override_country else None
        resolution = None
        if override_resolution:
            parsed = VideoQuality.parse(override_resolution)
            resolution = parsed.value if parsed else override_resolution.strip().upper()

        stations = self.consolidator.load_effective()
        return [s for s in stations
                if self._matches(s, term, term.lower(), country, resolution)]

    def search(self, term: str, page: int = 1, mode: Union[str, SearchMode] = SearchMode.TSV,
               override_country: Optional[str] = None,
               override_resolution: Optional[str] = None) -> Union[int, List[tuple]]:
        """
        Search the station database.

        Args:
            term: text matched against station name and call sign
            page: 1-based page number, ignored in count mode
            mode: 'count' for the number of matches, 'tsv' for
                (stationId, name, callSign, country) rows, 'full' for
                (name, callSign, videoQuality, stationId, country) rows
            override_country: use this country instead of the configured filter
            override_resolution: use this resolution instead of the configured filter

        Raises:
            NoStationsAvailable: there is no station database to search
        """
        mode = SearchMode(mode)
        if page < 1:
            raise ValueError(f"page must be 1 or greater, got {page}")

        logger.debug(f"Station search: term='{term}', page={page}, mode={mode.value}, "
                     f"country={override_country}, resolution={override_resolution}")
        results = self.matching(term, override_country, override_resolution)

        if mode is SearchMode.COUNT:
            return len(results)

        start = (page - 1) * self.config.page_size
        page_results = results[start:start + self.config.page_size]

        if mode is SearchMode.TSV:
            return [(s.station_id, s.name or '', s.call_sign or '', s.country) for s in page_results]
        return [(s.name or '', s.call_sign or '', _quality_label(s), s.station_id, s.country)
                for s in page_results]

    def find_station(self, station_id: str) -> Optional[StationRecord]:
        """Exact stationId lookup, used when applying station metadata to a channel"""
        for station in self.consolidator.load_effective():
            if station.station_id == station_id:
                return station
        return None

    def available_countries(self) -> List[str]:
        countries = set()
        for station in self.consolidator.load_effective():
            countries.update(c for c in station.countries if c)
        return sorted(countries)

    def available_resolutions(self) -> List[str]:
        found = {s.video_quality for s in self.consolidator.load_effective() if s.video_quality}
        return [q.value for q in VideoQuality if q in found]


def format_rows(rows: Sequence[tuple]) -> List[str]:
    """Tab separated lines for terminal tables"""
    return ["\t".join(str(value) for value in row) for row in rows]
