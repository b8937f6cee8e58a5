"""
Record Storage

Append-only record stores used for bars, signals and metric snapshots:
- MemoryRecordStore: bounded per-kind lists (default)
- JsonlRecordStore: same read-back semantics, every record also appended to
  {base_dir}/{kind}.jsonl and rehydrated on restart

Both return records most-recent-first from recent().
"""

import json
import threading
import uuid
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Optional

from core.errors import StorageUnavailableError
from core.logging_utils import get_logger

logger = get_logger(__name__)

KIND_TICK = "tick"
KIND_BAR = "bar"
KIND_SIGNAL = "signal"
KIND_VERIFIED = "verified_signal"
KIND_METRIC = "metric"

DEFAULT_RETENTION: Dict[str, int] = {
    KIND_TICK: 10_000,
    KIND_BAR: 1440,       # 24h of 1m bars
    KIND_SIGNAL: 1000,
    KIND_VERIFIED: 1000,
    KIND_METRIC: 100,
}
FALLBACK_RETENTION = 1000


class MemoryRecordStore:
    """In-memory store; oldest records fall off once a kind's retention is hit."""

    def __init__(self, retention: Optional[Dict[str, int]] = None):
        self._retention = dict(DEFAULT_RETENTION)
        if retention:
            self._retention.update(retention)
        self._records: Dict[str, Deque[dict]] = {}
        self._lock = threading.Lock()

        # Stats
        self.records_written = 0

    def _bucket(self, kind: str) -> Deque[dict]:
        bucket = self._records.get(kind)
        if bucket is None:
            bucket = deque(maxlen=self._retention.get(kind, FALLBACK_RETENTION))
            self._records[kind] = bucket
        return bucket

    def _stamp(self, record: dict) -> dict:
        stored = dict(record)
        stored.setdefault("id", uuid.uuid4().hex)
        return stored

    def append(self, kind: str, record: dict) -> str:
        stored = self._stamp(record)
        with self._lock:
            self._bucket(kind).append(stored)
            self.records_written += 1
        return stored["id"]

    def recent(self, kind: str, limit: int) -> list[dict]:
        if limit <= 0:
            return []
        with self._lock:
            bucket = self._records.get(kind)
            if not bucket:
                return []
            items = list(bucket)[-limit:]
        items.reverse()
        return [dict(r) for r in items]

    def latest(self, kind: str) -> Optional[dict]:
        with self._lock:
            bucket = self._records.get(kind)
            if not bucket:
                return None
            return dict(bucket[-1])

    def count(self, kind: str) -> int:
        with self._lock:
            return len(self._records.get(kind, ()))


class JsonlRecordStore(MemoryRecordStore):
    """
    Disk-backed store with append-only JSONL files.

    Directory structure:
    {base_dir}/bar.jsonl
    {base_dir}/signal.jsonl
    ...
    The in-memory tail keeps read-back O(limit); the files are the full log.
    """

    def __init__(self, base_dir: str | Path, retention: Optional[Dict[str, int]] = None):
        super().__init__(retention)
        self.base_dir = Path(base_dir)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"cannot create {self.base_dir}: {e}") from e

        # Stats
        self.records_loaded = 0
        self._rehydrate()

    def _file_path(self, kind: str) -> Path:
        safe_kind = kind.replace("/", "-").replace(":", "-")
        return self.base_dir / f"{safe_kind}.jsonl"

    def _rehydrate(self) -> None:
        """Load the tail of every existing kind file into memory."""
        for path in sorted(self.base_dir.glob("*.jsonl")):
            kind = path.stem
            bucket = self._bucket(kind)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            bucket.append(json.loads(line))
                            self.records_loaded += 1
                        except json.JSONDecodeError:
                            logger.warning("[STORE] Skipping corrupt line in %s", path)
            except OSError as e:
                raise StorageUnavailableError(f"cannot read {path}: {e}") from e
        if self.records_loaded:
            logger.info("[STORE] Rehydrated %s records from %s", self.records_loaded, self.base_dir)

    def append(self, kind: str, record: dict) -> str:
        stored = self._stamp(record)
        line = json.dumps(stored, default=str)
        with self._lock:
            try:
                with open(self._file_path(kind), "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                raise StorageUnavailableError(f"cannot append {kind}: {e}") from e
            self._bucket(kind).append(stored)
            self.records_written += 1
        return stored["id"]


def create_record_store(kind: str = "memory", base_dir: str | Path = "data/records"):
    """Build the configured store implementation."""
    if kind == "jsonl":
        return JsonlRecordStore(base_dir)
    if kind == "memory":
        return MemoryRecordStore()
    raise ValueError(f"Unknown store kind: {kind}")
