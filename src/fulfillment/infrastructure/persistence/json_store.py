"""Shared file plumbing for the JSON-backed repositories.

Each store is one JSON array on disk.  Writers hold a per-file lock for
the whole load, check-version and write sequence, which is what makes the
repositories' ``save`` a compare-and-set.  The lock is a thread lock plus
an advisory ``<file>.lock`` taken through filelock, so separate CLI
processes writing the same file are serialized too.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from filelock import FileLock

from fulfillment.domain.exceptions import ConcurrencyConflict
from fulfillment.domain.model.value_objects import Money


class PathLock:
    """Re-entrant lock on one data file, held across threads and processes."""

    def __init__(self, path: Path) -> None:
        self._thread_lock = threading.RLock()
        self._file_lock = FileLock(str(path) + ".lock")

    def __enter__(self) -> PathLock:
        self._thread_lock.acquire()
        try:
            self._file_lock.acquire()
        except BaseException:
            self._thread_lock.release()
            raise
        return self

    def __exit__(self, *exc_info) -> None:
        try:
            self._file_lock.release()
        finally:
            self._thread_lock.release()


_LOCKS: dict[Path, PathLock] = {}
_LOCKS_GUARD = threading.Lock()


def lock_for(path: Path) -> PathLock:
    resolved = path.resolve()
    with _LOCKS_GUARD:
        if resolved not in _LOCKS:
            _LOCKS[resolved] = PathLock(resolved)
        return _LOCKS[resolved]


class JsonStore:

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = lock_for(file_path)
        self._ensure_file()

    # --- Version checking -----------------------------------------------------

    def check_version(self, records: list[dict], entity_id: str, version: int) -> None:
        stored = self.find(records, entity_id)
        stored_version = stored["version"] if stored is not None else 0
        if stored_version != version:
            raise ConcurrencyConflict(entity_id, version, stored_version)

    @staticmethod
    def find(records: list[dict], entity_id: str) -> dict | None:
        for raw in records:
            if raw["id"] == entity_id:
                return raw
        return None

    @staticmethod
    def upsert(records: list[dict], raw: dict) -> None:
        for i, existing in enumerate(records):
            if existing["id"] == raw["id"]:
                records[i] = raw
                return
        records.append(raw)

    # --- File helpers ---------------------------------------------------------

    def load_raw(self) -> list[dict]:
        return json.loads(self._file_path.read_text(encoding="utf-8"))

    def persist_raw(self, records: list[dict]) -> None:
        # Write-then-rename so readers never see a half-written file.
        tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(records, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self._file_path)

    def _ensure_file(self) -> None:
        with self.lock:
            if not self._file_path.exists():
                self._file_path.write_text("[]", encoding="utf-8")


# --- Field codecs -------------------------------------------------------------


def money_to_raw(money: Money | None) -> str | None:
    return None if money is None else str(money.amount)


def money_from_raw(raw: str | None, currency: str) -> Money | None:
    return None if raw is None else Money(Decimal(raw), currency)


def dt_to_raw(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def dt_from_raw(raw: str | None) -> datetime | None:
    return None if raw is None else datetime.fromisoformat(raw)
