"""
Unit tests for systemd unit management (lutra/systemd.py).

systemctl is mocked; unit files are written to tmp_path.
"""

from unittest.mock import MagicMock, patch

import pytest

from lutra.systemd import (
    SystemdError,
    SystemdUnits,
    parse_on_calendar,
    render_service,
    render_timer,
    run_systemctl
)


class TestRenderUnits:
    """Test unit file contents."""

    def test_service(self, postgres_target):
        content = render_service(postgres_target, '/usr/local/bin/lutra', '/etc/lutra/lutra.yaml', '/etc/lutra/.env')

        assert 'Type=oneshot' in content
        assert (
            'ExecStart="/usr/local/bin/lutra" --config "/etc/lutra/lutra.yaml" '
            '--env-file "/etc/lutra/.env" backup run --target "orders-db"'
        ) in content

    def test_service_paths_with_spaces(self, postgres_target):
        content = render_service(postgres_target, '/opt/my tools/lutra', '/srv/lutra cfg/lutra.yaml', '/srv/lutra cfg/.env')

        assert (
            'ExecStart="/opt/my tools/lutra" --config "/srv/lutra cfg/lutra.yaml" '
            '--env-file "/srv/lutra cfg/.env" '
        ) in content

    def test_timer(self, postgres_target):
        content = render_timer(postgres_target)

        assert 'OnCalendar=*-*-* 03:00:00' in content
        assert 'Persistent=true' in content
        assert 'WantedBy=timers.target' in content


@patch('lutra.systemd.run_systemctl', return_value='enabled')
class TestSystemdUnits:
    """Test SystemdUnits install, list and remove."""

    def test_install_writes_units(self, mock_systemctl, tmp_path, postgres_target):
        units = SystemdUnits(str(tmp_path))

        paths = units.install(postgres_target, 'lutra', '/cfg.yaml', '/.env')

        assert paths == [
            str(tmp_path / 'lutra-backup-orders-db.service'),
            str(tmp_path / 'lutra-backup-orders-db.timer')
        ]
        assert (tmp_path / 'lutra-backup-orders-db.timer').exists()

    def test_missing_directory(self, mock_systemctl, tmp_path, postgres_target):
        units = SystemdUnits(str(tmp_path / 'missing'))

        with pytest.raises(SystemdError, match="Systemd directory not found"):
            units.install(postgres_target, 'lutra', '/cfg.yaml', '/.env')

    def test_list_timers(self, mock_systemctl, tmp_path, postgres_target, mongo_target):
        units = SystemdUnits(str(tmp_path))
        units.install(postgres_target, 'lutra', '/cfg.yaml', '/.env')
        units.install(mongo_target, 'lutra', '/cfg.yaml', '/.env')
        (tmp_path / 'other.timer').write_text('[Timer]\nOnCalendar=daily\n')

        timers = units.list_timers()

        assert [t['target'] for t in timers] == ['events', 'orders-db']
        assert timers[1]['schedule'] == '*-*-* 03:00:00'
        assert timers[1]['enabled'] == 'enabled'
        mock_systemctl.assert_any_call('is-active', 'lutra-backup-orders-db.timer')

    def test_remove_single_target(self, mock_systemctl, tmp_path, postgres_target, mongo_target):
        units = SystemdUnits(str(tmp_path))
        units.install(postgres_target, 'lutra', '/cfg.yaml', '/.env')
        units.install(mongo_target, 'lutra', '/cfg.yaml', '/.env')

        removed = units.remove('orders-db')

        assert removed == ['lutra-backup-orders-db.service', 'lutra-backup-orders-db.timer']
        assert (tmp_path / 'lutra-backup-events.timer').exists()
        mock_systemctl.assert_any_call('stop', 'lutra-backup-orders-db.timer')
        mock_systemctl.assert_any_call('disable', 'lutra-backup-orders-db.timer')
        mock_systemctl.assert_called_with('daemon-reload')

    def test_remove_matches_target_case_insensitively(self, mock_systemctl, tmp_path, postgres_target):
        units = SystemdUnits(str(tmp_path))
        units.install(postgres_target, 'lutra', '/cfg.yaml', '/.env')

        removed = units.remove('ORDERS-DB')

        assert removed == ['lutra-backup-orders-db.service', 'lutra-backup-orders-db.timer']
        assert list(tmp_path.iterdir()) == []

    def test_remove_nothing_installed(self, mock_systemctl, tmp_path):
        assert SystemdUnits(str(tmp_path)).remove() == []
        mock_systemctl.assert_not_called()


class TestHelpers:
    """Test parse_on_calendar and run_systemctl."""

    def test_parse_on_calendar_missing_line(self, tmp_path):
        timer = tmp_path / 'x.timer'
        timer.write_text('[Timer]\nPersistent=true\n')

        assert parse_on_calendar(timer) == 'unknown'

    @patch('lutra.systemd.subprocess.run')
    def test_run_systemctl_output(self, mock_run):
        mock_run.return_value = MagicMock(stdout='active\n', returncode=0)

        assert run_systemctl('is-active', 'x.timer') == 'active'
        assert mock_run.call_args.args[0] == ['systemctl', 'is-active', 'x.timer']

    @patch('lutra.systemd.subprocess.run', side_effect=FileNotFoundError('systemctl'))
    def test_run_systemctl_unavailable(self, mock_run):
        assert run_systemctl('daemon-reload') is None
