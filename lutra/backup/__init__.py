"""
Backup module for Lutra.

This module handles the core backup functionality including:
- Dump command construction (PostgreSQL, SQL Server, MongoDB)
- Command execution inside containers
- Compression
- Local storage and the backup history ledger
- Orchestration
- Retention policy enforcement
"""

from .orchestrator import BackupOrchestrator, BackupError
from .providers import (
    ExecCommand, PostgresProvider, SqlServerProvider, MongoProvider,
    default_providers, ProviderError
)
from .process import DockerExecutor, ExecResult, ProcessError
from .compression import write_stream, generate_backup_filename
from .history import BackupHistoryStore, HistoryError
from .storage import LocalStorage
from .retention import RetentionManager

__all__ = [
    'BackupOrchestrator',
    'BackupError',
    'ExecCommand',
    'PostgresProvider',
    'SqlServerProvider',
    'MongoProvider',
    'default_providers',
    'ProviderError',
    'DockerExecutor',
    'ExecResult',
    'ProcessError',
    'write_stream',
    'generate_backup_filename',
    'BackupHistoryStore',
    'HistoryError',
    'LocalStorage',
    'RetentionManager'
]
