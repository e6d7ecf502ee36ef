"""Tests for the Flask API using the test client."""

import pytest

from conftest import read_json, write_json
from globalstationsearch import app as app_module
from globalstationsearch.ledger import ProcessingLedger

BASE = [
    {"stationId": "1", "name": "Alpha", "callSign": "ALPH", "country": "USA", "videoQuality": "HDTV",
     "logoURI": "https://example.com/alpha.png"},
    {"stationId": "2", "name": "Alpha East", "callSign": "ALPE", "country": "CAN", "videoQuality": "SDTV"},
    {"stationId": "3", "name": "Bravo", "callSign": "BRVO", "country": "GBR"},
]


@pytest.fixture
def client(settings, monkeypatch):
    monkeypatch.setattr(app_module, "settings_manager", settings)
    app_module.app.config["TESTING"] = True
    return app_module.app.test_client()


@pytest.fixture
def with_base(paths):
    write_json(paths.base_stations, BASE)


class TestHealth:
    """GET /api/health."""

    def test_no_database(self, client):
        response = client.get("/api/health")
        assert response.status_code == 503
        data = response.get_json()
        assert data["status"] == "no_database"
        assert data["hint"]

    def test_healthy(self, client, with_base):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["stations_count"] == 3


class TestSearchStations:
    """GET /api/search/stations."""

    def test_requires_query(self, client, with_base):
        assert client.get("/api/search/stations").status_code == 400

    def test_invalid_page(self, client, with_base):
        assert client.get("/api/search/stations?q=alpha&page=0").status_code == 400
        assert client.get("/api/search/stations?q=alpha&page=x").status_code == 400

    def test_full_results(self, client, with_base):
        data = client.get("/api/search/stations?q=alpha").get_json()
        assert data["count"] == 2
        assert {r["station_id"] for r in data["results"]} == {"1", "2"}
        assert data["results"][0]["video_quality"] in ("HDTV", "SDTV")

    def test_count_mode_with_country(self, client, with_base):
        data = client.get("/api/search/stations?q=alpha&mode=count&country=can").get_json()
        assert data["count"] == 1

    def test_tsv_mode(self, client, with_base):
        data = client.get("/api/search/stations?q=bravo&mode=tsv").get_json()
        assert data["results"] == [{"station_id": "3", "name": "Bravo", "call_sign": "BRVO", "country": "GBR"}]

    def test_no_database(self, client):
        assert client.get("/api/search/stations?q=alpha").status_code == 503


class TestStationDetails:
    def test_found(self, client, with_base):
        data = client.get("/api/station/1").get_json()
        assert data["name"] == "Alpha"
        assert data["has_logo"] is True

    def test_not_found(self, client, with_base):
        assert client.get("/api/station/999").status_code == 404


class TestStatsAndRebuild:
    def test_stats(self, client, with_base):
        data = client.get("/api/stats").get_json()
        assert data["base_stations"] == 3
        assert data["effective_store"] == "base"
        assert data["countries"] == ["CAN", "GBR", "USA"]

    def test_stats_without_database(self, client):
        data = client.get("/api/stats").get_json()
        assert data["effective_store"] is None
        assert data["countries"] == []

    def test_rebuild(self, client, with_base, paths):
        write_json(paths.user_stations, [{"stationId": "4", "name": "Delta", "country": "USA", "source": "user"}])

        response = client.post("/api/cache/rebuild")
        assert response.status_code == 200
        assert response.get_json()["effective_store"] == "all_stations_combined.json"
        assert len(read_json(paths.combined_stations)) == 4


class TestCacheManagement:
    """POST /api/cache/clear-user and /api/cache/reset-ledger."""

    def test_clear_user_switches_to_base(self, client, with_base, paths):
        write_json(paths.user_stations, [{"stationId": "4", "name": "Delta", "country": "USA", "source": "user"}])
        client.post("/api/cache/rebuild")

        response = client.post("/api/cache/clear-user")
        assert response.status_code == 200
        assert response.get_json()["removed"] == 1
        assert read_json(paths.user_stations) == []
        assert not paths.combined_stations.exists()
        assert client.get("/api/stats").get_json()["effective_store"] == "base"

    def test_reset_ledger(self, client, paths):
        ProcessingLedger.from_paths(paths).record_market("USA", "10001", 1)

        response = client.post("/api/cache/reset-ledger")
        assert response.status_code == 200
        assert not ProcessingLedger.from_paths(paths).is_market_processed("USA", "10001")


class TestSettings:
    def test_get_hides_cache_token(self, client, settings):
        settings.save_combined_cache_state(3, 1, 2)
        data = client.get("/api/settings").get_json()
        assert "combined_cache" not in data
        assert data["search"]["results_per_page"] == 10

    def test_patch(self, client, settings):
        response = client.patch("/api/settings", json={"search": {"filter_by_country": True}})
        assert response.status_code == 200
        assert settings.get_setting("search.filter_by_country") is True

    def test_patch_requires_body(self, client):
        assert client.patch("/api/settings", json={}).status_code == 400
