"""
Processing ledger - tracks which markets and lineups have been cached

Three files make up the ledger:
    cached_markets.jsonl   one {country, zip, timestamp, lineups_found} per market
    cached_lineups.jsonl   one {lineup_id, timestamp, stations_found} per lineup
    lineup_to_market.json  {lineup_id: {country, zip}}

Entries are upserts keyed by market or lineup ID. The maps live in memory
and the affected file is rewritten (temp file + rename) after every record,
so an interrupted run keeps everything recorded before the interruption.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import LedgerWriteError
from .models import Market
from .stores import atomic_write_text, atomic_write_json

logger = logging.getLogger(__name__)


class ProcessingLedger:
    """Market/lineup processing registry - enables resumable caching"""

    def __init__(self, markets_path: Path, lineups_path: Path, mapping_path: Path):
        self.markets_path = Path(markets_path)
        self.lineups_path = Path(lineups_path)
        self.mapping_path = Path(mapping_path)

        self._markets: Dict[Tuple[str, str], dict] = self._load_jsonl(
            self.markets_path, lambda e: Market(e['country'], str(e['zip'])).key)
        self._lineups: Dict[str, dict] = self._load_jsonl(
            self.lineups_path, lambda e: str(e['lineup_id']))
        self._lineup_markets: Dict[str, dict] = self._load_mapping()

    @classmethod
    def from_paths(cls, paths) -> "ProcessingLedger":
        return cls(paths.cached_markets, paths.cached_lineups, paths.lineup_to_market)

    # ============================================
    # LOADING
    # ============================================

    def _load_jsonl(self, path: Path, key_func) -> Dict:
        """Load a JSONL log, later lines replace earlier ones with the same key"""
        entries = {}
        if not path.is_file():
            return entries

        bad_lines = 0
        with open(path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                    key = key_func(entry)
                except (json.JSONDecodeError, KeyError, TypeError):
                    bad_lines += 1
                    continue
                entries.pop(key, None)
                entries[key] = entry

        if bad_lines:
            logger.warning(f"Ignored {bad_lines} unreadable lines in {path}")
        return entries

    def _load_mapping(self) -> Dict[str, dict]:
        if not self.mapping_path.is_file():
            return {}
        try:
            with open(self.mapping_path, 'r', encoding='utf-8') as f:
                mapping = json.load(f)
        except json.JSONDecodeError:
            logger.warning(f"Invalid lineup mapping file {self.mapping_path}, starting empty")
            return {}
        return mapping if isinstance(mapping, dict) else {}

    # ============================================
    # PERSISTENCE
    # ============================================

    def _write_jsonl(self, path: Path, entries: Iterable[dict]):
        text = ''.join(json.dumps(entry, ensure_ascii=False) + "\n" for entry in entries)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            raise LedgerWriteError(f"Could not write {path}: {e}") from e

    def _write_mapping(self):
        try:
            atomic_write_json(self.mapping_path, self._lineup_markets, indent=2)
        except OSError as e:
            raise LedgerWriteError(f"Could not write {self.mapping_path}: {e}") from e

    @staticmethod
    def _timestamp() -> str:
        return datetime.now().astimezone().isoformat(timespec='seconds')

    # ============================================
    # RECORDING
    # ============================================

    def record_market(self, country: str, postal_code: str, lineups_found: int):
        """Mark a market as processed, replacing any earlier entry"""
        market = Market(country, postal_code)
        self._markets.pop(market.key, None)
        self._markets[market.key] = {
            'country': market.country,
            'zip': market.postal_code,
            'timestamp': self._timestamp(),
            'lineups_found': int(lineups_found),
        }
        self._write_jsonl(self.markets_path, self._markets.values())
        logger.debug(f"Recorded market {market} ({lineups_found} lineups)")

    def record_lineup(self, lineup_id: str, country: str, postal_code: str, stations_found: int):
        """Mark a lineup as processed and remember which market it came from"""
        market = Market(country, postal_code)
        self._lineups.pop(lineup_id, None)
        self._lineups[lineup_id] = {
            'lineup_id': lineup_id,
            'timestamp': self._timestamp(),
            'stations_found': int(stations_found),
        }
        self._write_jsonl(self.lineups_path, self._lineups.values())

        self._lineup_markets[lineup_id] = {'country': market.country, 'zip': market.postal_code}
        self._write_mapping()
        logger.debug(f"Recorded lineup {lineup_id} from {market} ({stations_found} stations)")

    def forget_market(self, country: str, postal_code: str) -> bool:
        """Drop one market so the next run processes it again"""
        market = Market(country, postal_code)
        if self._markets.pop(market.key, None) is None:
            return False
        self._write_jsonl(self.markets_path, self._markets.values())
        logger.info(f"Removed market {market} from the processing ledger")
        return True

    def reset(self):
        """Forget all processed markets and lineups"""
        self._markets.clear()
        self._lineups.clear()
        self._lineup_markets.clear()
        self._write_jsonl(self.markets_path, [])
        self._write_jsonl(self.lineups_path, [])
        self._write_mapping()
        logger.info("Processing ledger cleared")

    # ============================================
    # QUERIES
    # ============================================

    def is_market_processed(self, country: str, postal_code: str) -> bool:
        return Market(country, postal_code).key in self._markets

    def is_lineup_processed(self, lineup_id: str) -> bool:
        return lineup_id in self._lineups

    def unprocessed_markets(self, configured_markets: Iterable[Market]) -> List[Market]:
        return [m for m in configured_markets
                if not self.is_market_processed(m.country, m.postal_code)]

    def market_for_lineup(self, lineup_id: str) -> Optional[Market]:
        entry = self._lineup_markets.get(lineup_id)
        if not entry or not entry.get('country'):
            return None
        return Market(entry['country'], str(entry.get('zip', '')))

    def market_entries(self) -> List[dict]:
        return list(self._markets.values())

    def lineup_entries(self) -> List[dict]:
        return list(self._lineups.values())
