"""Tests for the processing ledger."""

from unittest.mock import patch

import pytest

from conftest import read_json, read_jsonl
from globalstationsearch.errors import LedgerWriteError
from globalstationsearch.ledger import ProcessingLedger
from globalstationsearch.models import Market


@pytest.fixture
def ledger(paths):
    return ProcessingLedger.from_paths(paths)


class TestRecordMarket:
    """record_market upserts."""

    def test_record_and_query(self, ledger, paths):
        ledger.record_market("usa", "10001", 3)

        assert ledger.is_market_processed("USA", "10001")
        entries = read_jsonl(paths.cached_markets)
        assert len(entries) == 1
        assert entries[0]["country"] == "USA"
        assert entries[0]["zip"] == "10001"
        assert entries[0]["lineups_found"] == 3
        assert entries[0]["timestamp"]

    def test_upsert_keeps_one_entry(self, ledger, paths):
        ledger.record_market("USA", "10001", 3)
        ledger.record_market("USA", "10001", 5)

        entries = read_jsonl(paths.cached_markets)
        assert len(entries) == 1
        assert entries[0]["lineups_found"] == 5

    def test_unprocessed_markets(self, ledger):
        ledger.record_market("USA", "10001", 1)
        remaining = ledger.unprocessed_markets([Market("USA", "10001"), Market("USA", "90210")])
        assert remaining == [Market("USA", "90210")]


class TestRecordLineup:
    def test_record_lineup_and_mapping(self, ledger, paths):
        ledger.record_lineup("USA-OTA10001", "USA", "10001", 42)

        assert ledger.is_lineup_processed("USA-OTA10001")
        assert ledger.market_for_lineup("USA-OTA10001") == Market("USA", "10001")
        entries = read_jsonl(paths.cached_lineups)
        assert entries[0]["lineup_id"] == "USA-OTA10001"
        assert entries[0]["stations_found"] == 42
        assert read_json(paths.lineup_to_market) == {
            "USA-OTA10001": {"country": "USA", "zip": "10001"}
        }

    def test_unknown_lineup(self, ledger):
        assert ledger.market_for_lineup("GBR-1000193-DEFAULT") is None


class TestLoading:
    """Reloading the ledger from disk."""

    def test_survives_reload(self, ledger, paths):
        ledger.record_market("USA", "10001", 2)
        ledger.record_lineup("USA-OTA10001", "USA", "10001", 10)

        reloaded = ProcessingLedger.from_paths(paths)
        assert reloaded.is_market_processed("USA", "10001")
        assert reloaded.is_lineup_processed("USA-OTA10001")
        assert reloaded.market_for_lineup("USA-OTA10001") == Market("USA", "10001")

    def test_duplicate_and_bad_lines(self, paths):
        paths.cached_markets.parent.mkdir(parents=True, exist_ok=True)
        paths.cached_markets.write_text(
            '{"country": "USA", "zip": "10001", "lineups_found": 1}\n'
            'not json\n'
            '{"country": "USA", "zip": "10001", "lineups_found": 4}\n'
        )
        ledger = ProcessingLedger.from_paths(paths)

        entries = ledger.market_entries()
        assert len(entries) == 1
        assert entries[0]["lineups_found"] == 4

    def test_forget_market(self, ledger, paths):
        ledger.record_market("USA", "10001", 2)
        ledger.record_market("USA", "10002", 1)

        assert ledger.forget_market("usa", "10001")
        assert not ledger.is_market_processed("USA", "10001")
        assert [e["zip"] for e in read_jsonl(paths.cached_markets)] == ["10002"]
        assert not ProcessingLedger.from_paths(paths).is_market_processed("USA", "10001")

    def test_forget_unknown_market(self, ledger):
        assert not ledger.forget_market("USA", "90210")

    def test_reset(self, ledger, paths):
        ledger.record_market("USA", "10001", 2)
        ledger.reset()
        assert not ledger.is_market_processed("USA", "10001")
        assert read_jsonl(paths.cached_markets) == []


class TestWriteFailure:
    def test_raises_ledger_write_error(self, ledger):
        with patch("globalstationsearch.ledger.atomic_write_text", side_effect=OSError("disk full")):
            with pytest.raises(LedgerWriteError):
                ledger.record_market("USA", "10001", 1)
