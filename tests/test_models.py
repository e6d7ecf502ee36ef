"""Tests for the shared data classes."""

from globalstationsearch.models import (
    CachingSummary, Lineup, Market, StationRecord, VideoQuality, api_station_fields, merge_countries,
)


class TestVideoQuality:
    """VideoQuality.parse."""

    def test_plain_values(self):
        assert VideoQuality.parse("HDTV") is VideoQuality.HDTV
        assert VideoQuality.parse("sdtv") is VideoQuality.SDTV

    def test_4k_aliases(self):
        assert VideoQuality.parse("4K") is VideoQuality.UHDTV
        assert VideoQuality.parse("UHDTV/4K") is VideoQuality.UHDTV
        assert VideoQuality.parse("4k") is VideoQuality.UHDTV

    def test_api_object(self):
        assert VideoQuality.parse({"videoType": "HDTV"}) is VideoQuality.HDTV

    def test_unknown(self):
        assert VideoQuality.parse("8K") is None
        assert VideoQuality.parse(None) is None
        assert VideoQuality.parse("") is None


class TestMarket:
    """Market normalization."""

    def test_normalizes_country_and_postal_code(self):
        market = Market(" usa ", "sw1a 1aa")
        assert market.country == "USA"
        assert market.postal_code == "SW1A1AA"
        assert str(market) == "USA/SW1A1AA"

    def test_equal_markets_hash_together(self):
        assert len({Market("usa", "10001"), Market("USA", " 10001")}) == 1

    def test_numeric_postal_code(self):
        market = Market("USA", 10001)
        assert market.postal_code == "10001"
        assert market == Market("USA", "10001")

    def test_missing_values(self):
        market = Market(None, None)
        assert market.country == ""
        assert market.postal_code == ""


class TestLineup:
    def test_from_api(self):
        lineup = Lineup.from_api({"lineupId": "USA-OTA10001", "name": "Antenna", "type": "OTA"})
        assert lineup.lineup_id == "USA-OTA10001"
        assert lineup.type == "OTA"

    def test_missing_id(self):
        assert Lineup.from_api({"name": "No id"}) is None
        assert Lineup.from_api("USA-OTA10001") is None


class TestStationRecord:
    """StationRecord conversions."""

    def test_from_dict_reads_camel_case(self):
        record = StationRecord.from_dict({
            "stationId": 12345,
            "name": "Alpha",
            "callSign": "ALPH",
            "country": "usa",
            "videoQuality": "HDTV",
            "logoURI": "https://example.com/alpha.png",
        })
        assert record.station_id == "12345"
        assert record.country == "USA"
        assert record.video_quality is VideoQuality.HDTV
        assert record.logo_uri == "https://example.com/alpha.png"
        assert record.source == "base"

    def test_from_dict_country_fallbacks(self):
        assert StationRecord.from_dict({"stationId": "1", "availableIn": ["CAN"]}).country == "CAN"
        assert StationRecord.from_dict({"stationId": "1"}).country == "UNK"

    def test_to_dict_omits_missing_fields(self):
        data = StationRecord(station_id="1", name="Alpha", video_quality=VideoQuality.UHDTV).to_dict()
        assert data == {
            "stationId": "1",
            "name": "Alpha",
            "country": "UNK",
            "videoQuality": "UHDTV",
            "source": "base",
        }

    def test_from_api(self):
        channel = {
            "stationId": "20360",
            "name": "WNBC",
            "callSign": "WNBCDT",
            "affiliateCallSign": "NBC",
            "bcastLangs": ["en"],
            "preferredImage": {"uri": "https://example.com/wnbc.png"},
            "videoQuality": {"videoType": "HDTV"},
        }
        record = StationRecord.from_api(channel, country="usa", source="user")
        assert record.country == "USA"
        assert record.network == "NBC"
        assert record.language == "en"
        assert record.logo_uri == "https://example.com/wnbc.png"
        assert record.video_quality is VideoQuality.HDTV
        assert record.source == "user"

    def test_from_api_without_station_id(self):
        assert StationRecord.from_api({"name": "Nameless"}) is None


class TestMultiCountry:
    """Stations carried by lineups in more than one country."""

    def test_to_dict_marks_multi_country(self):
        data = StationRecord("9", "CBC", country="USA", available_in=["usa", "CAN"]).to_dict()
        assert data["country"] == "USA"
        assert data["availableIn"] == ["CAN", "USA"]
        assert data["multiCountry"] is True

    def test_single_country_is_not_multi(self):
        data = StationRecord.from_api({"stationId": "9", "name": "CBC"}, country="can").to_dict()
        assert data["availableIn"] == ["CAN"]
        assert "multiCountry" not in data

    def test_from_dict_reads_available_in(self):
        record = StationRecord.from_dict({"stationId": "9", "country": "USA", "availableIn": ["can", "USA"]})
        assert record.available_in == ["CAN", "USA"]
        assert record.countries == {"CAN", "USA"}

    def test_merge_countries(self):
        assert merge_countries(["usa", "UNK"], None, ["CAN", ""], {"USA"}) == ["CAN", "USA"]


class TestApiStationFields:
    def test_only_present_fields(self):
        assert api_station_fields({"name": "Alpha", "callSign": ""}) == {"name": "Alpha"}


class TestCachingSummary:
    def test_counters_exclude_failed_markets(self):
        summary = CachingSummary(markets_total=2, failed_markets=["USA/00000"])
        counters = summary.counters()
        assert counters["markets_total"] == 2
        assert "failed_markets" not in counters
        assert summary.to_dict()["failed_markets"] == ["USA/00000"]
