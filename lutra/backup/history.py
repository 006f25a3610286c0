"""
Backup history ledger.

Every backup attempt, successful or not, is recorded in a single JSON file
at the root of the backup directory (backup-history.json). The whole file is
rewritten on each change: records are read, modified in memory, written to a
sibling temporary file and atomically renamed over the original.

Not safe for concurrent writers. One orchestrator per backup root.
"""

import json
import logging
import os
from typing import List

from lutra.models import BackupRecord


logger = logging.getLogger(__name__)

HISTORY_FILENAME = 'backup-history.json'


class HistoryError(Exception):
    """Raised when the history file cannot be read or written."""
    pass


class HistoryCorruptError(HistoryError):
    """Raised when the history file exists but cannot be parsed."""
    pass


class BackupHistoryStore:
    """
    Append-only JSON ledger of backup attempts.
    """

    def __init__(self, backup_directory: str):
        """
        Args:
            backup_directory: Backup root holding backup-history.json
        """
        self.backup_directory = backup_directory
        self.history_path = os.path.join(backup_directory, HISTORY_FILENAME)

    def add(self, record: BackupRecord):
        """
        Append a record to the history file.

        Raises:
            HistoryError: If the history file is corrupt or cannot be written
        """
        records = self._load()
        records.append(record)
        self._save(records)

    def all(self) -> List[BackupRecord]:
        """All records, newest first."""
        return _newest_first(self._load())

    def for_target(self, target_name: str) -> List[BackupRecord]:
        """
        Records for one target (exact name match), newest first.
        """
        return _newest_first(r for r in self._load() if r.target_name == target_name)

    def remove(self, target_name: str, file_name: str) -> bool:
        """
        Remove records matching (target_name, file_name).

        Returns:
            True if at least one record was removed
        """
        records = self._load()
        kept = [
            r for r in records
            if not (r.target_name == target_name and r.file_name == file_name)
        ]

        if len(kept) == len(records):
            return False

        self._save(kept)
        return True

    def _load(self) -> List[BackupRecord]:
        if not os.path.exists(self.history_path):
            return []

        try:
            with open(self.history_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise HistoryCorruptError(f"History file is corrupt ({self.history_path}): {e}")
        except OSError as e:
            raise HistoryError(f"Cannot read history file {self.history_path}: {e}")

        if data is None:
            return []
        if not isinstance(data, list):
            raise HistoryCorruptError(f"History file is corrupt ({self.history_path}): expected a JSON array")

        try:
            return [BackupRecord.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise HistoryCorruptError(f"History file is corrupt ({self.history_path}): invalid record: {e}")

    def _save(self, records: List[BackupRecord]):
        temp_path = self.history_path + '.tmp'

        try:
            os.makedirs(self.backup_directory, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump([r.to_dict() for r in records], f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.history_path)
        except OSError as e:
            raise HistoryError(f"Failed to write history file {self.history_path}: {e}")

        logger.debug(f"History saved ({len(records)} records)")


def _newest_first(records) -> List[BackupRecord]:
    return sorted(records, key=lambda r: r.timestamp, reverse=True)
