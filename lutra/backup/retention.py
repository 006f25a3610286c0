"""
Retention policy enforcement for backups.

Lutra deletes a backup only when BOTH conditions hold:
1. it ranks beyond max_count among the target's successful backups (newest first)
2. it is older than max_age_days

Failed attempts are never counted or pruned.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from lutra.models import BackupRecord, DatabaseTarget, RetentionPolicy
from .history import BackupHistoryStore
from .storage import LocalStorage


logger = logging.getLogger(__name__)


def select_expired(
    records: List[BackupRecord],
    policy: RetentionPolicy,
    now: Optional[datetime] = None
) -> List[BackupRecord]:
    """
    Pick the records eligible for deletion under a retention policy.

    Args:
        records: History records for a single target
        policy: Retention policy to apply
        now: Reference time (default: current UTC time)

    Returns:
        Successful records ranked beyond max_count and older than max_age_days
    """
    successful = sorted(
        (r for r in records if r.success),
        key=lambda r: r.timestamp,
        reverse=True
    )

    if len(successful) <= policy.max_count:
        return []

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=policy.max_age_days)

    return [r for r in successful[policy.max_count:] if r.timestamp < cutoff]


class RetentionManager:
    """
    Applies retention policies to a backup root.
    """

    def __init__(self, history: BackupHistoryStore, storage: LocalStorage, default_policy: RetentionPolicy):
        """
        Args:
            history: History ledger for the backup root
            storage: Local storage for the backup root
            default_policy: Global policy used when a target has no override
        """
        self.history = history
        self.storage = storage
        self.default_policy = default_policy
        self.logs = []

    def policy_for(self, target: DatabaseTarget) -> RetentionPolicy:
        """Target override replaces the global policy entirely."""
        return target.retention or self.default_policy

    def enforce_target_policy(self, target: DatabaseTarget) -> int:
        """
        Enforce retention for one target.

        The backup file is deleted before its history record, so an
        interruption can leave a record without a file but never a file
        without a record. ``logs`` holds the messages of the latest run only.

        Returns:
            Number of backups removed (records sharing a file name count once)

        Raises:
            HistoryError: If the history file cannot be read or written
            StorageError: If a backup file cannot be deleted
        """
        self.logs = []

        policy = self.policy_for(target)
        records = self.history.for_target(target.name)
        expired = select_expired(records, policy)

        if not expired:
            self._log(
                f"{target.name}: nothing to remove "
                f"(max_count={policy.max_count}, max_age_days={policy.max_age_days})"
            )
            return 0

        deleted_count = 0
        handled = set()
        for record in expired:
            if record.file_name in handled:
                continue
            handled.add(record.file_name)

            if self.storage.delete(target.name, record.file_name):
                self._log(f"Deleted backup file: {target.name}/{record.file_name}")
            else:
                self._log(f"Backup file already missing: {target.name}/{record.file_name}")

            if self.history.remove(target.name, record.file_name):
                deleted_count += 1

        self._log(f"{target.name}: removed {deleted_count} backup(s)")
        return deleted_count

    def _log(self, message: str):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.info(message)
