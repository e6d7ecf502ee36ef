"""
Station store accessors

Base, user and combined station collections are JSON arrays of station
records. Every write goes to a temp file in the same directory and is then
moved over the target, so readers never see a half-written store.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .errors import StoreFormatError
from .models import StationRecord

logger = logging.getLogger(__name__)

BASE_STATIONS_FILE = "all_stations_base.json"
BASE_MANIFEST_FILE = "all_stations_base_manifest.json"
USER_STATIONS_FILE = "all_stations_user.json"
COMBINED_STATIONS_FILE = "all_stations_combined.json"
CACHED_MARKETS_FILE = "cached_markets.jsonl"
CACHED_LINEUPS_FILE = "cached_lineups.jsonl"
LINEUP_TO_MARKET_FILE = "lineup_to_market.json"

# Anything larger holds at least one record
SMALL_STORE_BYTES = 16


def atomic_write_text(path: Path, text: str):
    """Write text to path via temp file + rename"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, str(path))
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise


def atomic_write_json(path: Path, data: Any, indent: Optional[int] = None):
    atomic_write_text(path, json.dumps(data, indent=indent, ensure_ascii=False))


def file_mtime(path: Path) -> int:
    """Modification time in nanoseconds, 0 if missing"""
    try:
        return Path(path).stat().st_mtime_ns
    except OSError:
        return 0


@dataclass
class CachePaths:
    """On-disk layout of the station cache"""
    base_stations: Path
    base_manifest: Path
    user_stations: Path
    combined_stations: Path
    cached_markets: Path
    cached_lineups: Path
    lineup_to_market: Path
    work_dir: Path
    backup_dir: Path

    @classmethod
    def from_data_dir(cls, data_dir) -> "CachePaths":
        data_dir = Path(data_dir)
        cache_dir = data_dir / "cache"
        return cls(
            base_stations=data_dir / BASE_STATIONS_FILE,
            base_manifest=data_dir / BASE_MANIFEST_FILE,
            user_stations=cache_dir / USER_STATIONS_FILE,
            combined_stations=cache_dir / COMBINED_STATIONS_FILE,
            cached_markets=cache_dir / CACHED_MARKETS_FILE,
            cached_lineups=cache_dir / CACHED_LINEUPS_FILE,
            lineup_to_market=cache_dir / LINEUP_TO_MARKET_FILE,
            work_dir=cache_dir / "work",
            backup_dir=cache_dir / "backups",
        )


class StationStore:
    """A JSON array of station records on disk"""

    def __init__(self, path: Path, label: str):
        self.path = Path(path)
        self.label = label
        self._count_cache: Optional[Tuple[Tuple[int, int], int]] = None

    def exists(self) -> bool:
        return self.path.is_file() and self.path.stat().st_size > 0

    def mtime(self) -> int:
        return file_mtime(self.path)

    def load_raw(self) -> List[dict]:
        """Load the JSON array, [] if the file is missing or empty"""
        if not self.exists():
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreFormatError(f"{self.label} store {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise StoreFormatError(f"{self.label} store {self.path} is not a JSON array")
        return data

    def load(self) -> List[StationRecord]:
        records = []
        skipped = 0
        for item in self.load_raw():
            if isinstance(item, dict) and item.get('stationId'):
                records.append(StationRecord.from_dict(item))
            else:
                skipped += 1
        if skipped:
            logger.warning(f"Skipped {skipped} entries without stationId in {self.label} store")
        return records

    def _stat_key(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self.path.stat()
        except OSError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def count(self) -> int:
        """Number of entries, reparsed only when the file changed"""
        key = self._stat_key()
        if key is None:
            return 0
        if self._count_cache and self._count_cache[0] == key:
            return self._count_cache[1]
        count = len(self.load_raw())
        self._count_cache = (key, count)
        return count

    def is_empty(self) -> bool:
        """Missing, zero bytes or an empty array, decided from the file size"""
        key = self._stat_key()
        if key is None or key[1] == 0:
            return True
        if key[1] > SMALL_STORE_BYTES:
            return False
        # Small enough to be "[]" with whitespace
        return self.count() == 0

    def save(self, records: Iterable[StationRecord]):
        data = [record.to_dict() for record in records]
        atomic_write_json(self.path, data)
        logger.info(f"Saved {len(data)} stations to {self.label} store {self.path}")

    def delete(self) -> bool:
        if self.path.exists():
            self.path.unlink()
            return True
        return False
