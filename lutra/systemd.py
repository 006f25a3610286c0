"""
systemd timer units for scheduled backups.

Each target gets a oneshot service running ``lutra backup run --target <name>``
and a timer firing on the target's schedule:

    lutra-backup-<name>.service
    lutra-backup-<name>.timer
"""

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional

from lutra.models import DatabaseTarget


logger = logging.getLogger(__name__)

UNIT_PREFIX = 'lutra-backup-'


class SystemdError(Exception):
    """Raised when unit files cannot be managed."""
    pass


def unit_name(target_name: str) -> str:
    return f"{UNIT_PREFIX}{target_name}"


def render_service(target: DatabaseTarget, lutra_path: str, config_path: str, env_path: str) -> str:
    return (
        "[Unit]\n"
        f"Description=Lutra backup for {target.name}\n"
        "\n"
        "[Service]\n"
        "Type=oneshot\n"
        f"ExecStart=\"{lutra_path}\" --config \"{config_path}\" --env-file \"{env_path}\" "
        f"backup run --target \"{target.name}\"\n"
    )


def render_timer(target: DatabaseTarget) -> str:
    return (
        "[Unit]\n"
        f"Description=Lutra backup timer for {target.name}\n"
        "\n"
        "[Timer]\n"
        f"OnCalendar={target.schedule}\n"
        "Persistent=true\n"
        "\n"
        "[Install]\n"
        "WantedBy=timers.target\n"
    )


class SystemdUnits:
    """
    Installs, lists and removes Lutra timer units in a systemd directory.
    """

    def __init__(self, systemd_dir: str = '/etc/systemd/system'):
        self.systemd_dir = Path(systemd_dir)

    def _check_directory(self):
        if not self.systemd_dir.is_dir():
            raise SystemdError(f"Systemd directory not found: {self.systemd_dir}")

    def install(self, target: DatabaseTarget, lutra_path: str, config_path: str, env_path: str) -> List[str]:
        """
        Write the service and timer units for a target.

        Returns:
            Paths of the written unit files

        Raises:
            SystemdError: If the directory is missing or not writable
        """
        self._check_directory()

        name = unit_name(target.name)
        service_path = self.systemd_dir / f"{name}.service"
        timer_path = self.systemd_dir / f"{name}.timer"

        try:
            service_path.write_text(render_service(target, lutra_path, config_path, env_path))
            timer_path.write_text(render_timer(target))
        except PermissionError as e:
            raise SystemdError(f"Permission denied writing unit files (run as root): {e}")
        except OSError as e:
            raise SystemdError(f"Failed to write unit files: {e}")

        logger.info(f"Installed {name}.timer ({target.schedule})")
        return [str(service_path), str(timer_path)]

    def unit_files(self, target_name: Optional[str] = None) -> List[Path]:
        """Installed Lutra unit files, optionally for one target."""
        self._check_directory()

        files = sorted(self.systemd_dir.glob(f"{UNIT_PREFIX}*"))
        if target_name is None:
            return files

        name = unit_name(target_name).lower()
        return [f for f in files if f.name.lower() in (f"{name}.service", f"{name}.timer")]

    def list_timers(self) -> List[Dict[str, str]]:
        """
        Describe installed timers.

        Returns:
            List of dicts with 'target', 'unit', 'schedule', 'enabled' and 'active'
        """
        timers = []
        for timer_path in self.unit_files():
            if timer_path.suffix != '.timer':
                continue

            timers.append({
                'target': timer_path.stem[len(UNIT_PREFIX):],
                'unit': timer_path.name,
                'schedule': parse_on_calendar(timer_path),
                'enabled': run_systemctl('is-enabled', timer_path.name) or 'unknown',
                'active': run_systemctl('is-active', timer_path.name) or 'unknown'
            })
        return timers

    def remove(self, target_name: Optional[str] = None) -> List[str]:
        """
        Stop, disable and delete Lutra units.

        Returns:
            Names of the removed unit files

        Raises:
            SystemdError: If a unit file cannot be deleted
        """
        files = self.unit_files(target_name)
        if not files:
            return []

        for timer in (f.name for f in files if f.suffix == '.timer'):
            run_systemctl('stop', timer)
            run_systemctl('disable', timer)

        removed = []
        for path in files:
            try:
                path.unlink()
            except PermissionError as e:
                raise SystemdError(f"Permission denied deleting {path} (run as root): {e}")
            except OSError as e:
                raise SystemdError(f"Failed to delete {path}: {e}")
            removed.append(path.name)
            logger.info(f"Removed {path.name}")

        run_systemctl('daemon-reload')
        return removed


def parse_on_calendar(timer_path: Path) -> str:
    """Read the OnCalendar= value of a timer unit."""
    try:
        for line in timer_path.read_text().splitlines():
            if line.startswith('OnCalendar='):
                return line[len('OnCalendar='):].strip()
    except OSError as e:
        logger.debug(f"Cannot read {timer_path}: {e}")
    return 'unknown'


def run_systemctl(*args: str) -> Optional[str]:
    """
    Run systemctl and return its trimmed stdout.

    systemctl being unavailable or failing is not fatal; None is returned
    when it cannot be started.
    """
    try:
        completed = subprocess.run(
            ['systemctl', *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True
        )
    except OSError as e:
        logger.debug(f"systemctl {' '.join(args)} failed: {e}")
        return None
    return completed.stdout.strip()


def lutra_executable() -> str:
    """Absolute path of the running lutra command, falling back to 'lutra'."""
    argv0 = sys.argv[0] if sys.argv else ''
    if argv0 and os.path.basename(argv0) == 'lutra' and os.path.exists(argv0):
        return os.path.abspath(argv0)
    return shutil.which('lutra') or 'lutra'
