"""
Data model for Lutra.

Configuration values (targets, retention) are loaded once per run and never
mutated. History records are persisted to the JSON ledger; backup results are
returned to the caller only.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


class DatabaseType(Enum):
    """Supported database engines."""
    POSTGRESQL = 'postgresql'
    SQLSERVER = 'sqlserver'
    MONGODB = 'mongodb'


class CompressionType(Enum):
    """Compression applied to backup output."""
    NONE = 'none'
    GZIP = 'gzip'


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Rules for pruning old backups.

    A backup is removed only when it is ranked beyond max_count AND is older
    than max_age_days.
    """
    max_count: int = 10
    max_age_days: int = 30


@dataclass(frozen=True)
class DatabaseTarget:
    """A single database to back up."""
    name: str
    database_type: DatabaseType
    container: str
    database: str
    username: Optional[str] = None
    password_env: Optional[str] = None
    schedule: str = '*-*-* 03:00:00'
    format: Optional[str] = None
    compression: CompressionType = CompressionType.GZIP
    retention: Optional[RetentionPolicy] = None


@dataclass(frozen=True)
class BackupConfig:
    """Root configuration consumed by the orchestrator."""
    backup_directory: str
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    databases: List[DatabaseTarget] = field(default_factory=list)
    container_runtime: str = 'docker'


_FRACTION_PATTERN = re.compile(r'\.(\d+)')


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Fractional seconds of any length are padded or truncated to microseconds.
    """
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    value = _FRACTION_PATTERN.sub(lambda m: '.' + (m.group(1) + '000000')[:6], value, count=1)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class BackupRecord:
    """Outcome of one backup attempt, as stored in backup-history.json."""
    target_name: str
    timestamp: datetime
    file_name: str
    file_size_bytes: int
    duration_ms: int
    success: bool
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'target_name': self.target_name,
            'timestamp': format_timestamp(self.timestamp),
            'file_name': self.file_name,
            'file_size_bytes': self.file_size_bytes,
            'duration_ms': self.duration_ms,
            'success': self.success,
        }
        if self.error_message is not None:
            data['error_message'] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BackupRecord':
        return cls(
            target_name=data['target_name'],
            timestamp=parse_timestamp(data['timestamp']),
            file_name=data.get('file_name', ''),
            file_size_bytes=int(data.get('file_size_bytes', 0)),
            duration_ms=int(data.get('duration_ms', 0)),
            success=bool(data['success']),
            error_message=data.get('error_message')
        )


@dataclass(frozen=True)
class BackupResult:
    """Result of a single backup attempt returned to the caller."""
    target_name: str
    success: bool
    timestamp: datetime
    duration: timedelta
    file_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    error_message: Optional[str] = None
