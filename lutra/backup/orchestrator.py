"""
Backup orchestrator - runs the complete backup workflow for a target.

Workflow:
1. Resolve the provider for the target's database type
2. Build the dump command and the destination filename
3. Run the dump (streamed, or written inside the container then extracted)
4. Write the output to disk (optionally gzip-compressed)
5. Record the attempt in the history ledger
6. Apply the retention policy

Every failure is recorded in history and returned as a failed BackupResult.
"""

import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from lutra.models import (
    BackupConfig, BackupRecord, BackupResult, DatabaseTarget, DatabaseType
)
from .compression import generate_backup_filename, get_backup_size, write_stream
from .history import BackupHistoryStore, HistoryCorruptError, HistoryError
from .process import DockerExecutor
from .providers import BackupProvider, ExecCommand, get_provider
from .retention import RetentionManager
from .storage import LocalStorage


logger = logging.getLogger(__name__)


class BackupError(Exception):
    """Raised when a dump command or extraction step fails."""
    pass


class BackupOrchestrator:
    """
    Orchestrates backups, history and retention for a configured backup root.
    """

    def __init__(
        self,
        config: BackupConfig,
        providers: Dict[DatabaseType, BackupProvider],
        executor: Optional[DockerExecutor] = None,
        history: Optional[BackupHistoryStore] = None,
        storage: Optional[LocalStorage] = None
    ):
        """
        Args:
            config: Validated configuration
            providers: Provider registry keyed by database type
            executor: Process executor (default: DockerExecutor for the configured runtime)
            history: History ledger (default: ledger in the backup directory)
            storage: Local storage (default: the backup directory)
        """
        self.config = config
        self.providers = providers
        self.executor = executor or DockerExecutor(config.container_runtime)
        self.history = history or BackupHistoryStore(config.backup_directory)
        self.storage = storage or LocalStorage(config.backup_directory)
        self.retention = RetentionManager(self.history, self.storage, config.retention)

    def backup(self, target: DatabaseTarget) -> BackupResult:
        """
        Back up a single target.

        Args:
            target: DatabaseTarget to back up

        Returns:
            BackupResult describing the attempt

        Raises:
            HistoryCorruptError: If the history ledger cannot be parsed
        """
        started_at = datetime.now(timezone.utc)
        timer = time.monotonic()

        logger.info(f"Starting backup: {target.name}")

        try:
            file_path = self._run_backup(target, started_at)
            file_size = get_backup_size(file_path)
            duration = _elapsed(timer)

            self.history.add(BackupRecord(
                target_name=target.name,
                timestamp=started_at,
                file_name=os.path.basename(file_path),
                file_size_bytes=file_size,
                duration_ms=_milliseconds(duration),
                success=True
            ))

            self.retention.enforce_target_policy(target)

        except HistoryCorruptError:
            raise

        except Exception as e:
            duration = _elapsed(timer)
            error_message = _describe(e)
            logger.error(f"Backup failed for {target.name}: {error_message}")

            self._record_failure(target, started_at, duration, error_message)

            return BackupResult(
                target_name=target.name,
                success=False,
                timestamp=started_at,
                duration=duration,
                error_message=error_message
            )

        logger.info(
            f"Backup completed: {target.name} -> {file_path} "
            f"({file_size / 1024 / 1024:.2f} MB in {duration.total_seconds():.1f}s)"
        )

        return BackupResult(
            target_name=target.name,
            success=True,
            timestamp=started_at,
            duration=duration,
            file_path=file_path,
            file_size_bytes=file_size
        )

    def backup_all(self) -> List[BackupResult]:
        """
        Back up every configured target, one after another.

        A failure for one target never stops the remaining targets.
        """
        return [self.backup(target) for target in self.config.databases]

    def cleanup(self, target: DatabaseTarget) -> int:
        """
        Apply the retention policy to a target.

        Returns:
            Number of backups removed
        """
        return self.retention.enforce_target_policy(target)

    def _run_backup(self, target: DatabaseTarget, started_at: datetime) -> str:
        """
        Produce the backup file for a target.

        Returns:
            Path to the written backup file
        """
        provider = get_provider(self.providers, target.database_type)

        command = provider.build_command(target)
        filename = generate_backup_filename(
            target.name,
            started_at,
            provider.file_extension(target),
            target.compression
        )
        self.storage.target_directory(target.name)
        file_path = self.storage.get_full_path(target.name, filename)

        if provider.streams_to_stdout:
            self._run_streaming(command, target, file_path)
        else:
            self._run_file_based(command, provider, target, file_path)

        return file_path

    def _run_streaming(self, command: ExecCommand, target: DatabaseTarget, file_path: str):
        """Run a dump that writes to stdout and save its output."""
        with self.executor.execute(command) as result:
            if not result.success:
                raise BackupError(
                    f"Backup command failed (exit code {result.exit_code}): {result.stderr.strip()}"
                )

            write_stream(result.output, file_path, target.compression)

    def _run_file_based(
        self,
        command: ExecCommand,
        provider: BackupProvider,
        target: DatabaseTarget,
        file_path: str
    ):
        """
        Run a dump that writes a file inside the container.

        Steps: run the dump, stream the file out with ``cat``, then always
        remove the container-side file.
        """
        container_path = provider.container_backup_path(target)
        if not container_path:
            raise BackupError(
                "Provider does not stream to stdout but returned no container backup path."
            )

        try:
            with self.executor.execute(command) as dump_result:
                if not dump_result.success:
                    raise BackupError(
                        f"Backup command failed (exit code {dump_result.exit_code}): "
                        f"{dump_result.stderr.strip()}"
                    )

            cat_command = ExecCommand(
                container=command.container,
                executable='cat',
                arguments=[container_path]
            )

            with self.executor.execute(cat_command) as cat_result:
                if not cat_result.success:
                    raise BackupError(
                        f"Failed to extract backup file from container: {cat_result.stderr.strip()}"
                    )

                write_stream(cat_result.output, file_path, target.compression)

        finally:
            self._remove_container_file(command.container, container_path)

    def _remove_container_file(self, container: str, container_path: str):
        """Best-effort removal of the dump file inside the container."""
        rm_command = ExecCommand(
            container=container,
            executable='rm',
            arguments=['-f', container_path]
        )

        try:
            with self.executor.execute(rm_command) as rm_result:
                if not rm_result.success:
                    logger.warning(
                        f"Failed to remove {container_path} in {container}: {rm_result.stderr.strip()}"
                    )
        except Exception as e:
            logger.warning(f"Failed to remove {container_path} in {container}: {e}")

    def _record_failure(self, target: DatabaseTarget, started_at: datetime, duration: timedelta, error_message: str):
        record = BackupRecord(
            target_name=target.name,
            timestamp=started_at,
            file_name='',
            file_size_bytes=0,
            duration_ms=_milliseconds(duration),
            success=False,
            error_message=error_message
        )

        try:
            self.history.add(record)
        except HistoryCorruptError:
            raise
        except HistoryError as e:
            logger.error(f"Could not record failed backup for {target.name}: {e}")


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - started)


def _milliseconds(duration: timedelta) -> int:
    return int(duration.total_seconds() * 1000)


def _describe(error: Exception) -> str:
    message = str(error).strip()
    return message or type(error).__name__
