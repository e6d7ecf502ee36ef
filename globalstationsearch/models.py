"""
Data classes shared by the station stores, ledger, pipeline and search
"""

from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

UNKNOWN_COUNTRY = "UNK"


class VideoQuality(Enum):
    """Station video resolution"""
    SDTV = "SDTV"
    HDTV = "HDTV"
    UHDTV = "UHDTV"

    @classmethod
    def parse(cls, value: Any) -> Optional["VideoQuality"]:
        """Parse an API or stored value, treating UHDTV, 4k and UHDTV/4K as equivalent"""
        if isinstance(value, dict):
            value = value.get('videoType')
        if isinstance(value, VideoQuality):
            return value
        if not value or not isinstance(value, str):
            return None
        value = value.strip().upper()
        if value in ('UHDTV', '4K', 'UHDTV/4K'):
            return cls.UHDTV
        try:
            return cls(value)
        except ValueError:
            return None


# Record field name -> JSON key
_JSON_KEYS = {
    'station_id': 'stationId',
    'name': 'name',
    'call_sign': 'callSign',
    'country': 'country',
    'video_quality': 'videoQuality',
    'network': 'network',
    'language': 'language',
    'logo_uri': 'logoURI',
    'description': 'description',
    'source': 'source',
}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class Market:
    """Market information"""
    country: str
    postal_code: str

    def __post_init__(self):
        self.country = str(self.country or '').strip().upper()
        self.postal_code = ''.join(str(self.postal_code or '').split()).upper()

    @property
    def key(self) -> tuple:
        return (self.country, self.postal_code)

    def __hash__(self):
        return hash(self.key)

    def __str__(self):
        return f"{self.country}/{self.postal_code}"


@dataclass
class Lineup:
    """Lineup information"""
    lineup_id: str
    name: Optional[str] = None
    location: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Optional["Lineup"]:
        lineup_id = _clean(data.get('lineupId')) if isinstance(data, dict) else None
        if not lineup_id:
            return None
        return cls(
            lineup_id=lineup_id,
            name=_clean(data.get('name')),
            location=_clean(data.get('location')),
            type=_clean(data.get('type')),
        )


@dataclass
class StationRecord:
    """Station information"""
    station_id: str
    name: Optional[str] = None
    call_sign: Optional[str] = None
    country: str = UNKNOWN_COUNTRY
    video_quality: Optional[VideoQuality] = None
    network: Optional[str] = None
    language: Optional[str] = None
    logo_uri: Optional[str] = None
    description: Optional[str] = None
    source: str = 'base'
    # Every country whose lineups carry this station
    available_in: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StationRecord":
        """Build a record from its on-disk JSON object"""
        available_in = data.get('availableIn') or []
        if not isinstance(available_in, list):
            available_in = [available_in]
        available_in = [c for c in (_clean(c) for c in available_in) if c]
        country = _clean(data.get('country'))
        if not country:
            country = available_in[0] if available_in else None
        return cls(
            station_id=str(data['stationId']),
            name=_clean(data.get('name')),
            call_sign=_clean(data.get('callSign')),
            country=(country or UNKNOWN_COUNTRY).upper(),
            video_quality=VideoQuality.parse(data.get('videoQuality')),
            network=_clean(data.get('network')),
            language=_clean(data.get('language')),
            logo_uri=_clean(data.get('logoURI')),
            description=_clean(data.get('description')),
            source=_clean(data.get('source')) or 'base',
            available_in=merge_countries(available_in),
        )

    @classmethod
    def from_api(cls, channel: Dict[str, Any], country: Optional[str] = None,
                 source: str = 'api') -> Optional["StationRecord"]:
        """Build a record from a guide-data station object, None if it has no stationId"""
        station_id = _clean(channel.get('stationId'))
        if not station_id:
            return None
        country = (country or UNKNOWN_COUNTRY).upper()
        return cls(station_id=station_id, country=country, source=source,
                   available_in=merge_countries([country]), **api_station_fields(channel))

    def to_dict(self) -> Dict[str, Any]:
        """On-disk JSON object, absent optional fields omitted"""
        result = {}
        for name, key in _JSON_KEYS.items():
            value = getattr(self, name)
            if isinstance(value, VideoQuality):
                value = value.value
            if value is not None:
                result[key] = value
        if self.available_in:
            result['availableIn'] = merge_countries(self.available_in)
            if len(result['availableIn']) > 1:
                result['multiCountry'] = True
        return result

    @property
    def countries(self) -> Set[str]:
        """Primary country plus every country the station is available in"""
        return {self.country, *self.available_in}

    @property
    def sort_name(self) -> str:
        return self.name or ''


def merge_countries(*groups: Iterable[str]) -> List[str]:
    """Sorted union of country codes, unknown country dropped"""
    countries = set()
    for group in groups:
        countries.update(str(c).strip().upper() for c in group or [] if c)
    countries.discard('')
    countries.discard(UNKNOWN_COUNTRY)
    return sorted(countries)


def api_station_fields(channel: Dict[str, Any]) -> Dict[str, Any]:
    """
    Descriptive fields present in a guide-data station object.

    Only fields the API actually returned are included, so the result can be
    merged over an existing record without erasing anything.
    """
    pref_image = channel.get('preferredImage') or {}
    langs = channel.get('bcastLangs') or []
    candidates = {
        'name': _clean(channel.get('name')),
        'call_sign': _clean(channel.get('callSign')),
        'video_quality': VideoQuality.parse(channel.get('videoQuality')),
        'network': _clean(channel.get('affiliateCallSign') or channel.get('network')),
        'language': _clean(langs[0]) if isinstance(langs, list) and langs else None,
        'logo_uri': _clean(pref_image.get('uri')) if isinstance(pref_image, dict) else None,
        'description': _clean(channel.get('description')),
    }
    return {key: value for key, value in candidates.items() if value is not None}


@dataclass
class CachingSummary:
    """Counters for one caching pipeline run"""
    markets_total: int = 0
    markets_processed: int = 0
    markets_skipped_manifest: int = 0
    markets_already_processed: int = 0
    markets_failed: int = 0
    lineups_found: int = 0
    lineups_unique: int = 0
    lineups_processed: int = 0
    lineups_skipped: int = 0
    lineups_skipped_manifest: int = 0
    lineups_failed: int = 0
    stations_raw: int = 0
    stations_deduplicated: int = 0
    stations_enriched: int = 0
    user_stations_before: int = 0
    user_stations_after: int = 0
    elapsed_seconds: float = 0.0
    failed_markets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def counters(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != 'failed_markets'}
