"""Tests for the guide-data client with a mocked requests session."""

from unittest.mock import MagicMock

import requests

from globalstationsearch.api_client import ENRICHMENT_TIMEOUT, LINEUP_TIMEOUT, GuideDataClient
from globalstationsearch.models import Market


def make_response(status_code=200, payload=None, invalid_json=False):
    response = MagicMock()
    response.status_code = status_code
    if invalid_json:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


def make_client(response=None, error=None, enrichment_url=None):
    session = MagicMock()
    if error:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return GuideDataClient("https://api.getchannels.com/", enrichment_url, session=session), session


class TestFetchLineups:
    """fetch_lineups."""

    def test_success(self):
        client, session = make_client(make_response(payload=[{"lineupId": "USA-OTA10001"}, "junk"]))

        lineups = client.fetch_lineups(Market("USA", "10001"))

        assert lineups == [{"lineupId": "USA-OTA10001"}]
        session.get.assert_called_once_with(
            "https://api.getchannels.com/tms/lineups/USA/10001", timeout=LINEUP_TIMEOUT)

    def test_http_error(self):
        client, _ = make_client(make_response(status_code=404))
        assert client.fetch_lineups(Market("USA", "00000")) is None

    def test_connection_error(self):
        client, _ = make_client(error=requests.ConnectionError("refused"))
        assert client.fetch_lineups(Market("USA", "10001")) is None

    def test_timeout(self):
        client, _ = make_client(error=requests.Timeout("slow"))
        assert client.fetch_lineups(Market("USA", "10001")) is None

    def test_invalid_json(self):
        client, _ = make_client(make_response(invalid_json=True))
        assert client.fetch_lineups(Market("USA", "10001")) is None

    def test_not_a_list(self):
        client, _ = make_client(make_response(payload={"error": "bad postal code"}))
        assert client.fetch_lineups(Market("USA", "10001")) is None


class TestFetchStations:
    def test_quotes_lineup_id(self):
        client, session = make_client(make_response(payload=[{"stationId": "1"}]))

        assert client.fetch_stations("GBR-1000193 DEFAULT") == [{"stationId": "1"}]
        url = session.get.call_args[0][0]
        assert url == "https://api.getchannels.com/dvr/guide/stations/GBR-1000193%20DEFAULT"


class TestFetchStationDetails:
    """Call sign enrichment lookups."""

    def test_disabled_without_enrichment_url(self):
        client, session = make_client(make_response(payload=[]))
        assert not client.enrichment_enabled
        assert client.fetch_station_details("1", "WXYZ") is None
        session.get.assert_not_called()

    def test_matches_station_id(self):
        payload = [{"stationId": "2", "name": "Other"}, {"stationId": "1", "name": "WXYZ Detroit"}]
        client, session = make_client(make_response(payload=payload), enrichment_url="http://dvr:8089")

        details = client.fetch_station_details("1", "WXYZ")

        assert details["name"] == "WXYZ Detroit"
        session.get.assert_called_once_with("http://dvr:8089/tms/stations/WXYZ", timeout=ENRICHMENT_TIMEOUT)

    def test_no_match(self):
        client, _ = make_client(make_response(payload=[{"stationId": "2"}]), enrichment_url="http://dvr:8089")
        assert client.fetch_station_details("1", "WXYZ") is None


class TestFromSettings:
    def test_uses_configured_urls(self, settings):
        settings.update_settings({"channels_dvr": {"url": "http://dvr:8089", "enrichment_url": "http://dvr:8089"}})

        client = GuideDataClient.from_settings(settings)
        assert client.base_url == "http://dvr:8089"
        assert client.enrichment_enabled

        assert not GuideDataClient.from_settings(settings, enrichment=False).enrichment_enabled

    def test_default_url(self, settings):
        client = GuideDataClient.from_settings(settings)
        assert client.base_url == "https://api.getchannels.com"
        assert not client.enrichment_enabled
