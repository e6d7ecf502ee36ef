"""
Channels DVR guide-data client

Every call is a single blocking request. Failures (HTTP errors, timeouts,
connection errors, non-JSON bodies) are logged and returned as None so the
caching pipeline can treat the unit as having no results.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .models import Market

logger = logging.getLogger(__name__)

# (connect, read) timeouts in seconds
LINEUP_TIMEOUT = (5, 30)
STATION_TIMEOUT = (5, 30)
ENRICHMENT_TIMEOUT = (5, 10)


class GuideDataClient:
    """Fetches lineups and stations from a Channels DVR server or api.getchannels.com"""

    def __init__(self, base_url: str, enrichment_url: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.enrichment_url = enrichment_url.rstrip('/') if enrichment_url else None
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings_manager, enrichment: bool = True) -> "GuideDataClient":
        url = settings_manager.get_setting('channels_dvr.url')
        enrichment_url = settings_manager.get_setting('channels_dvr.enrichment_url') if enrichment else None
        return cls(url, enrichment_url or None)

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.enrichment_url)

    def _get_json(self, url: str, timeout) -> Optional[Any]:
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.RequestException as e:
            logger.warning(f"Request failed for {url}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"HTTP {response.status_code} from {url}")
            return None

        try:
            return response.json()
        except ValueError:
            logger.warning(f"Invalid JSON response from {url}")
            return None

    def fetch_lineups(self, market: Market) -> Optional[List[Dict[str, Any]]]:
        """Lineups available in a market, None on failure or malformed response"""
        url = f"{self.base_url}/tms/lineups/{quote(market.country)}/{quote(market.postal_code)}"
        data = self._get_json(url, LINEUP_TIMEOUT)
        if not isinstance(data, list):
            if data is not None:
                logger.warning(f"Unexpected lineups response for {market}")
            return None
        return [item for item in data if isinstance(item, dict)]

    def fetch_stations(self, lineup_id: str) -> Optional[List[Dict[str, Any]]]:
        """Stations carried by a lineup, None on failure or malformed response"""
        url = f"{self.base_url}/dvr/guide/stations/{quote(lineup_id)}"
        data = self._get_json(url, STATION_TIMEOUT)
        if not isinstance(data, list):
            if data is not None:
                logger.warning(f"Unexpected stations response for lineup {lineup_id}")
            return None
        return [item for item in data if isinstance(item, dict)]

    def fetch_station_details(self, station_id: str, call_sign: Optional[str] = None) -> Optional[Dict]:
        """Fetch enhanced station details using call sign lookup"""
        if not call_sign or not self.enrichment_url:
            return None

        url = f"{self.enrichment_url}/tms/stations/{quote(call_sign)}"
        data = self._get_json(url, ENRICHMENT_TIMEOUT)
        if isinstance(data, list):
            # Search for exact station ID match
            for station in data:
                if isinstance(station, dict) and str(station.get('stationId')) == station_id:
                    return station
            logger.debug(f"No matching station_id in {len(data)} results for {call_sign}")
        return None
