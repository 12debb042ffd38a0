"""Record store abstraction for weekly rules and the delivery ledger.

- RecordStore: Abstract base class defining the interface.
- JsonRecordStore: File-based JSON storage (local/dev fallback).

The Supabase backend lives in weeklybot.supabase.storage.
"""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from loguru import logger
from pydantic import ValidationError

from weeklybot.errors import StoreError
from weeklybot.schedule.models import DeliveryRecord, NotificationRule
from weeklybot.utils.helpers import parse_timestamp

# ============================================================================
# RecordStore ABC
# ============================================================================


class RecordStore(ABC):
    """Abstract record store.

    All methods are **sync** (backends do blocking I/O). The engine calls
    them through ``asyncio.to_thread()``.

    Every method raises ``StoreError`` when the store cannot answer.
    Reads must observe any write that completed before they started.
    """

    @abstractmethod
    def list_active_rules(self) -> list[NotificationRule]: ...

    @abstractmethod
    def list_rules(self) -> list[NotificationRule]:
        """All rules including inactive ones (diagnostics only)."""

    @abstractmethod
    def query_deliveries(self, rule_id: str, since: datetime) -> list[DeliveryRecord]:
        """Deliveries for ``rule_id`` with ``sent_at >= since``, newest first."""

    @abstractmethod
    def insert_delivery(self, rule_id: str, sent_at: datetime) -> DeliveryRecord: ...

    @abstractmethod
    def purge_deliveries(self, before: datetime) -> int:
        """Delete deliveries older than ``before``; returns the count removed."""

    def close(self) -> None:
        """Release any held connections. Default: nothing to release."""


def parse_rule_rows(rows: list[dict], source: str) -> list[NotificationRule]:
    """Validate raw rule rows, skipping (and logging) malformed ones."""
    rules: list[NotificationRule] = []
    for row in rows:
        try:
            rules.append(NotificationRule.model_validate(row))
        except ValidationError as e:
            rid = row.get("id", "?") if isinstance(row, dict) else "???"
            logger.warning(f"[{source}] Skip malformed rule {rid}: {e.error_count()} error(s)")
    return rules


# ============================================================================
# JSON file backend
# ============================================================================


class JsonRecordStore(RecordStore):
    """Single-file JSON store: ``{"rules": [...], "deliveries": [...]}``.

    Rows use the same column names as the database tables so a dump of
    the production tables can be dropped in as-is.

    Every read and read-modify-write holds an exclusive ``fcntl.flock`` on
    a sidecar ``.<name>.lock`` file, so separate instances and separate
    processes sharing the file serialize. Writes go through a temp file +
    ``os.replace``, so a read that starts after a write returns sees it.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self.lock_path = self.path.with_name(f".{self.path.name}.lock")
        self._lock = threading.Lock()

    # --- file I/O -----------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the in-process lock and the inter-process file lock."""
        with self._lock:
            try:
                self.lock_path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self.lock_path, "a+")
            except OSError as e:
                raise StoreError(f"Cannot open lock file {self.lock_path}: {e}") from e
            with lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict:
        if not self.path.exists():
            return {"rules": [], "deliveries": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Malformed store file {self.path}: top level must be an object")
        data.setdefault("rules", [])
        data.setdefault("deliveries", [])
        return data

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise StoreError(f"Cannot write {self.path}: {e}") from e

    # --- rules --------------------------------------------------------------

    def list_rules(self) -> list[NotificationRule]:
        with self._locked():
            rows = self._load()["rules"]
        return parse_rule_rows(rows, "JsonStore")

    def list_active_rules(self) -> list[NotificationRule]:
        return [r for r in self.list_rules() if r.active]

    def add_rule(self, rule: NotificationRule) -> None:
        """Insert or replace a rule row (operator tooling and tests)."""
        with self._locked():
            data = self._load()
            data["rules"] = [r for r in data["rules"] if r.get("id") != rule.id]
            data["rules"].append(rule.to_row())
            self._save(data)

    # --- deliveries ---------------------------------------------------------

    def _deliveries(self, data: dict) -> list[DeliveryRecord]:
        records = []
        for row in data["deliveries"]:
            try:
                records.append(DeliveryRecord.model_validate(row))
            except ValidationError:
                logger.warning(f"[JsonStore] Skip malformed delivery row: {row!r}")
        return records

    def query_deliveries(self, rule_id: str, since: datetime) -> list[DeliveryRecord]:
        since = parse_timestamp(since)
        with self._locked():
            data = self._load()
        found = [d for d in self._deliveries(data) if d.rule_id == rule_id and d.sent_at >= since]
        return sorted(found, key=lambda d: d.sent_at, reverse=True)

    def insert_delivery(self, rule_id: str, sent_at: datetime) -> DeliveryRecord:
        record = DeliveryRecord(rule_id=rule_id, sent_at=sent_at)
        with self._locked():
            data = self._load()
            data["deliveries"].append(record.to_row())
            self._save(data)
        return record

    def purge_deliveries(self, before: datetime) -> int:
        before = parse_timestamp(before)
        with self._locked():
            data = self._load()
            kept = [row for row in data["deliveries"] if not _sent_before(row, before)]
            removed = len(data["deliveries"]) - len(kept)
            if removed:
                data["deliveries"] = kept
                self._save(data)
        return removed


def _sent_before(row: dict, before: datetime) -> bool:
    """True for well-formed rows older than ``before``; malformed rows are kept."""
    try:
        return parse_timestamp(row["sent_at"]) < before
    except (KeyError, TypeError, ValueError):
        return False
