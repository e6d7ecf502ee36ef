"""Shared fixtures for the station cache tests."""

import json
from pathlib import Path

import pytest

from globalstationsearch.settings_manager import SettingsManager
from globalstationsearch.stores import CachePaths


def write_json(path: Path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def read_jsonl(path: Path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CHANNELS_URL", "ENRICHMENT_URL", "DATA_DIR", "SETTINGS_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def paths(data_dir):
    return CachePaths.from_data_dir(data_dir)


@pytest.fixture
def settings(tmp_path, data_dir):
    manager = SettingsManager(str(tmp_path / "config" / "settings.json"))
    manager.update_settings({"database": {"data_dir": str(data_dir)}})
    return manager


class FakeGuideClient:
    """In-memory stand-in for GuideDataClient that records every call."""

    def __init__(self, lineups=None, stations=None, details=None, enrichment=False):
        self.lineups = lineups or {}
        self.stations = stations or {}
        self.details = details or {}
        self.enrichment_enabled = enrichment
        self.calls = []

    def fetch_lineups(self, market):
        self.calls.append(("lineups", market.country, market.postal_code))
        return self.lineups.get((market.country, market.postal_code))

    def fetch_stations(self, lineup_id):
        self.calls.append(("stations", lineup_id))
        return self.stations.get(lineup_id)

    def fetch_station_details(self, station_id, call_sign=None):
        self.calls.append(("details", station_id, call_sign))
        return self.details.get(station_id)


@pytest.fixture
def fake_client_factory():
    return FakeGuideClient
