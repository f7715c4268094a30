"""
JSON file stores for processed logs and monthly records.

Both stores keep a single JSON array on disk under the configured data
directory and rewrite it atomically on every change.
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from nodewar_tools.base import JSONTool
from nodewar_tools.exceptions import ExternalSourceUnavailable, PersistenceConflict
from nodewar_tools.models import MonthlyRecord, ProcessedLog, Territory

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def month_bounds(month_year: str):
    """
    Return ``(start, end)`` of a "YYYY-MM" month in UTC, end exclusive.

    Raises:
        ValueError: If the month is not in "YYYY-MM" form.
    """
    start = datetime.strptime(month_year, "%Y-%m").replace(tzinfo=timezone.utc)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class _JSONArrayStore(JSONTool):
    """A list of JSON records in one file."""

    FILE_NAME = "store.json"

    def __init__(self, config: Optional[Dict[str, Any]] = None, path: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now) -> None:
        super().__init__(config)
        self.path = self.resolve_path(path or os.path.join(self.data_dir, self.FILE_NAME))
        self._clock = clock

    def _load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        try:
            rows = self.read_json(self.path)
        except (OSError, ValueError) as e:
            raise ExternalSourceUnavailable(f"Cannot read store {self.path}: {e}") from e
        if not isinstance(rows, list):
            raise ExternalSourceUnavailable(f"Store {self.path} does not contain a list")
        return rows

    def _save(self, rows: List[Dict[str, Any]]) -> None:
        try:
            self.write_json(rows, self.path)
        except OSError as e:
            raise PersistenceConflict(f"Cannot write store {self.path}: {e}") from e

    def _now(self) -> str:
        return self._clock().isoformat()

    def delete(self, record_id: str) -> bool:
        """Delete a record by id. Returns False when there was nothing to delete."""
        rows = self._load()
        kept = [row for row in rows if row.get("id") != record_id]
        if len(kept) == len(rows):
            logger.warning(f"No record with id {record_id} in {self.path}")
            return False
        self._save(kept)
        logger.info(f"Deleted record {record_id}")
        return True

    def count(self) -> int:
        return len(self._load())

    def run(self) -> Dict[str, Any]:
        return {"path": self.path, "records": self.count()}


class LogStore(_JSONArrayStore):
    """Processed node war logs."""

    FILE_NAME = "process_logs.json"

    def insert(self, log: ProcessedLog) -> ProcessedLog:
        """
        Store a processed log, assigning ``id`` and ``created_at`` if missing.

        Raises:
            PersistenceConflict: A log with the same id is already stored or
                the file cannot be written.
        """
        rows = self._load()
        stored = log.with_storage_fields(log.id or uuid.uuid4().hex, log.created_at or self._now())
        if any(row.get("id") == stored.id for row in rows):
            raise PersistenceConflict(f"Log {stored.id} already exists")
        rows.append(stored.to_dict())
        self._save(rows)
        logger.info(f"Stored log {stored.id} ({stored.arquivo_nome or 'unnamed'})")
        return stored

    def get(self, log_id: str) -> Optional[ProcessedLog]:
        for row in self._load():
            if row.get("id") == log_id:
                return ProcessedLog.from_dict(row)
        return None

    def list_all(self) -> List[ProcessedLog]:
        """All logs, newest first."""
        rows = sorted(self._load(), key=lambda r: r.get("created_at") or "", reverse=True)
        return [ProcessedLog.from_dict(row) for row in rows]

    def get_logs_by_month(self, month_year: str, include_siege: bool = True) -> List[ProcessedLog]:
        """Logs created within a calendar month, oldest first."""
        start, end = month_bounds(month_year)
        logs = []
        for row in self._load():
            created = parse_timestamp(row.get("created_at"))
            if created is None or not (start <= created < end):
                continue
            if not include_siege and row.get("territorio") == Territory.SIEGE.value:
                continue
            logs.append(ProcessedLog.from_dict(row))
        logs.sort(key=lambda log: log.created_at or "")
        logger.info(f"Found {len(logs)} log(s) for {month_year}")
        return logs

    def update(self, log_id: str, changes: Dict[str, Any]) -> ProcessedLog:
        """
        Overwrite fields of a stored log, using the keys of its JSON form.

        Used for post-hoc timeline corrections such as ``totalNodeSeconds``.

        Raises:
            PersistenceConflict: No log with this id exists.
        """
        rows = self._load()
        for row in rows:
            if row.get("id") == log_id:
                changes = {k: v for k, v in changes.items() if k not in ("id", "created_at")}
                row.update(changes)
                self._save(rows)
                logger.info(f"Updated log {log_id}: {', '.join(changes)}")
                return ProcessedLog.from_dict(row)
        raise PersistenceConflict(f"Log {log_id} not found")

    def delete_latest(self) -> Optional[ProcessedLog]:
        """Delete the most recently created log and return it."""
        logs = self.list_all()
        if not logs:
            logger.warning("No logs to delete")
            return None
        latest = logs[0]
        self.delete(latest.id)
        return latest


class MonthlyStore(_JSONArrayStore):
    """Monthly per-player records, one per ``(month_year, player_nick)``."""

    FILE_NAME = "monthly_kda.json"

    def upsert(self, record: MonthlyRecord) -> MonthlyRecord:
        """
        Insert or supersede the record of a player for a month.

        An existing record keeps its ``id`` and ``created_at``; ``updated_at``
        is refreshed on every write.
        """
        self.upsert_many([record])
        return record

    def upsert_many(self, records: List[MonthlyRecord]) -> int:
        """Upsert several records with a single write. Returns the number written."""
        rows = self._load()
        index = {(row.get("month_year"), row.get("player_nick")): i for i, row in enumerate(rows)}
        now = self._now()
        for record in records:
            position = index.get((record.month_year, record.player_nick))
            if position is None:
                record.id = record.id or uuid.uuid4().hex
                record.created_at = record.created_at or now
            else:
                record.id = rows[position].get("id") or uuid.uuid4().hex
                record.created_at = rows[position].get("created_at") or now
            record.updated_at = now
            if position is None:
                index[(record.month_year, record.player_nick)] = len(rows)
                rows.append(record.to_dict())
            else:
                rows[position] = record.to_dict()
        self._save(rows)
        return len(records)

    def get(self, month_year: str, player_nick: str) -> Optional[MonthlyRecord]:
        for row in self._load():
            if row.get("month_year") == month_year and row.get("player_nick") == player_nick:
                return MonthlyRecord.from_dict(row)
        return None

    def list_month(self, month_year: str) -> List[MonthlyRecord]:
        """Records of a month, most kills first."""
        records = [MonthlyRecord.from_dict(row) for row in self._load() if row.get("month_year") == month_year]
        records.sort(key=lambda r: (-r.total_kills, r.player_nick.lower()))
        return records

    def months(self) -> List[str]:
        """Months with at least one record, newest first."""
        return sorted({row.get("month_year") for row in self._load() if row.get("month_year")}, reverse=True)

    def prune_month(self, month_year: str, active_nicks) -> List[str]:
        """
        Delete the records of a month whose player is not in ``active_nicks``.

        Returns:
            The nicknames that were removed.
        """
        active = set(active_nicks)
        rows = self._load()
        removed = [row.get("player_nick") for row in rows
                   if row.get("month_year") == month_year and row.get("player_nick") not in active]
        if removed:
            self._save([row for row in rows
                        if not (row.get("month_year") == month_year and row.get("player_nick") not in active)])
            logger.info(f"Removed {len(removed)} inactive player(s) from {month_year}")
        return removed
