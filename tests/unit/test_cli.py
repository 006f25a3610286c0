"""
Unit tests for the command-line interface (lutra/cli.py).

Commands run through click's CliRunner. The orchestrator factory is patched
so container commands go to FakeExecutor.
"""

import os
import stat
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from freezegun import freeze_time

from lutra.backup.orchestrator import BackupOrchestrator
from lutra.backup.providers import default_providers
from lutra.cli import cli, format_bytes
from lutra.config import Config


@pytest.fixture
def runner():
    """CLI test runner."""
    return CliRunner()


@pytest.fixture
def invoke(runner, config_file):
    """Invoke lutra with the test configuration files."""
    config_path, env_path = config_file

    def _invoke(*args, **kwargs):
        return runner.invoke(cli, ['--config', config_path, '--env-file', env_path, *args], **kwargs)

    return _invoke


@pytest.fixture
def executor(fake_executor, secrets):
    """Route orchestrators built by the CLI to FakeExecutor."""
    def factory(config):
        return BackupOrchestrator(config, default_providers(secrets), executor=fake_executor)

    with patch('lutra.cli.create_orchestrator', side_effect=factory):
        yield fake_executor


class TestFormatBytes:
    """Test format_bytes helper."""

    @pytest.mark.parametrize("size,expected", [
        (0, '0 B'),
        (1023, '1023 B'),
        (1536, '1.5 KB'),
        (1048576, '1 MB'),
        (1234567, '1.18 MB'),
        (5 * 1024 ** 3, '5 GB'),
    ])
    def test_format_bytes(self, size, expected):
        assert format_bytes(size) == expected


class TestBackupCommands:
    """Test lutra backup run / list."""

    def test_run_all_targets(self, invoke, executor):
        executor.respond('pg_dump', stdout=b'dump')
        executor.respond('mongodump', stdout=b'archive')

        result = invoke('backup', 'run')

        assert result.exit_code == 0, result.output
        assert 'orders-db' in result.output
        assert 'events' in result.output
        assert '2/2 backup(s) succeeded.' in result.output

    def test_run_exit_code_on_failure(self, invoke, executor):
        executor.respond('pg_dump', exit_code=1, stderr='connection refused')

        result = invoke('backup', 'run')

        assert result.exit_code == 1
        assert 'FAILED' in result.output
        assert 'connection refused' in result.output
        assert '1/2 backup(s) succeeded.' in result.output

    def test_run_single_target_case_insensitive(self, invoke, executor):
        result = invoke('backup', 'run', '--target', 'EVENTS')

        assert result.exit_code == 0, result.output
        assert executor.executables == ['mongodump']

    def test_run_unknown_target(self, invoke, executor):
        result = invoke('backup', 'run', '--target', 'billing')

        assert result.exit_code == 1
        assert "Configuration error: Target 'billing' not found" in result.output
        assert executor.commands == []

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(cli, [
            '--config', str(tmp_path / 'missing.yaml'),
            '--env-file', str(tmp_path / '.env'),
            'backup', 'list'
        ])

        assert result.exit_code == 1
        assert 'Configuration error: Configuration file not found' in result.output

    def test_list_targets(self, invoke):
        result = invoke('backup', 'list')

        assert result.exit_code == 0
        assert 'orders-db' in result.output
        assert 'postgresql' in result.output
        assert 'Sun *-*-* 04:00:00' in result.output


class TestHistoryAndCleanup:
    """Test lutra history and lutra cleanup."""

    def test_empty_history(self, invoke):
        result = invoke('history')

        assert result.exit_code == 0
        assert 'No backup history found.' in result.output

    @freeze_time("2024-01-15 03:00:00")
    def test_history_after_backup(self, invoke, executor):
        executor.respond('pg_dump', stdout=b'dump')
        invoke('backup', 'run', '--target', 'orders-db')

        result = invoke('history', '--target', 'orders-db')

        assert result.exit_code == 0
        assert '2024-01-15 03:00:00' in result.output
        assert 'orders-db_2024-01-15_030000.sql' in result.output

    def test_cleanup(self, invoke, executor):
        result = invoke('cleanup')

        assert result.exit_code == 0
        assert 'orders-db: removed 0 backup(s)' in result.output
        assert 'Total: 0 backup(s) removed.' in result.output

    def test_corrupt_history(self, invoke, backup_dir):
        (backup_dir / 'backup-history.json').write_text('not json')

        result = invoke('history')

        assert result.exit_code == 1
        assert 'History error' in result.output


class TestConfigCommands:
    """Test lutra config init / validate / reset."""

    def paths(self, tmp_path):
        config_dir = tmp_path / 'etc'
        return str(config_dir / 'lutra.yaml'), str(config_dir / '.env')

    def test_init_writes_templates(self, runner, tmp_path):
        config_path, env_path = self.paths(tmp_path)

        result = runner.invoke(cli, ['--config', config_path, '--env-file', env_path, 'config', 'init'])

        assert result.exit_code == 0, result.output
        assert 'backup_directory:' in open(config_path).read()
        assert stat.S_IMODE(os.stat(env_path).st_mode) == 0o600

    def test_init_refuses_to_overwrite(self, invoke):
        result = invoke('config', 'init')

        assert result.exit_code == 1
        assert 'already exists' in result.output

    def test_init_force(self, invoke, config_file):
        result = invoke('config', 'init', '--force')

        assert result.exit_code == 0
        assert 'example-postgres' in open(config_file[0]).read()

    def test_validate(self, invoke):
        result = invoke('config', 'validate')

        assert result.exit_code == 0, result.output
        assert 'Configuration is valid' in result.output
        assert 'Targets (2):' in result.output

    def test_validate_bad_schedule(self, invoke, config_file):
        config_path = config_file[0]
        with open(config_path) as f:
            content = f.read()
        with open(config_path, 'w') as f:
            f.write(content.replace('Sun *-*-* 04:00:00', 'whenever'))

        result = invoke('config', 'validate')

        assert result.exit_code == 1
        assert "Configuration error: Unsupported schedule 'whenever'" in result.output

    def test_reset_requires_confirmation(self, invoke, config_file):
        result = invoke('config', 'reset', input='n\n')

        assert result.exit_code == 1
        assert 'orders-db' in open(config_file[0]).read()

    def test_reset_with_yes(self, invoke, config_file):
        result = invoke('config', 'reset', '--yes')

        assert result.exit_code == 0
        assert 'example-postgres' in open(config_file[0]).read()


class TestScheduleCommands:
    """Test lutra schedule install / list / remove."""

    @pytest.fixture
    def systemd_dir(self, tmp_path):
        path = tmp_path / 'systemd'
        path.mkdir()
        with patch.object(Config, 'SYSTEMD_DIR', str(path)), \
                patch('lutra.systemd.run_systemctl', return_value='enabled') as mock_systemctl:
            yield path, mock_systemctl

    def test_install_and_list(self, invoke, systemd_dir):
        path, mock_systemctl = systemd_dir

        result = invoke('schedule', 'install')

        assert result.exit_code == 0, result.output
        assert (path / 'lutra-backup-orders-db.timer').exists()
        assert (path / 'lutra-backup-events.service').exists()
        mock_systemctl.assert_any_call('enable', '--now', 'lutra-backup-events.timer')

        result = invoke('schedule', 'list')

        assert 'orders-db' in result.output
        assert '*-*-* 03:00:00' in result.output

    def test_list_empty(self, invoke, systemd_dir):
        result = invoke('schedule', 'list')

        assert result.exit_code == 0
        assert 'No scheduled backups installed.' in result.output

    def test_remove(self, invoke, systemd_dir):
        path, _ = systemd_dir
        invoke('schedule', 'install', '--target', 'orders-db')

        result = invoke('schedule', 'remove', '--target', 'orders-db')

        assert result.exit_code == 0
        assert 'Removed lutra-backup-orders-db.timer' in result.output
        assert list(path.iterdir()) == []

    def test_remove_target_case_insensitive(self, invoke, systemd_dir):
        path, _ = systemd_dir
        invoke('schedule', 'install', '--target', 'orders-db')

        result = invoke('schedule', 'remove', '--target', 'Orders-DB')

        assert result.exit_code == 0
        assert 'Removed lutra-backup-orders-db.service' in result.output
        assert list(path.iterdir()) == []
