"""
Command-line interface for Lutra.

    lutra backup run [--target NAME]
    lutra backup list
    lutra history [--target NAME]
    lutra cleanup [--target NAME]
    lutra config init|validate|reset
    lutra schedule install|list|remove|run
"""

import logging
import os
from datetime import timedelta

import click

from lutra import __version__, configure_logging, create_orchestrator
from lutra.backup.history import BackupHistoryStore, HistoryError
from lutra.config import (
    Config, ConfigurationError, default_backup_directory, load_config, load_env_file,
    resolve_config_path, resolve_env_path, resolve_target
)
from lutra.models import BackupConfig
from lutra.templates import generate_env_template, generate_yaml_template


logger = logging.getLogger(__name__)


class CliContext:
    """Paths chosen on the command line and the configuration loaded from them."""

    def __init__(self, config_path: str, env_path: str):
        self.config_path = config_path
        self.env_path = env_path

    def load(self) -> BackupConfig:
        """
        Load the .env file, then the YAML configuration.

        Raises:
            ConfigurationError: If the configuration is missing or invalid
        """
        if load_env_file(self.env_path):
            logger.debug(f"Loaded environment from {self.env_path}")
        return load_config(self.config_path)

    def targets(self, config: BackupConfig, target_name=None):
        if target_name:
            return [resolve_target(config, target_name)]
        return list(config.databases)


def format_bytes(size) -> str:
    """Human-readable size in B, KB, MB or GB with up to two decimals."""
    value = float(size or 0)
    for unit in ('B', 'KB', 'MB'):
        if value < 1024:
            return f"{_trim(value)} {unit}"
        value /= 1024
    return f"{_trim(value)} GB"


def format_duration(duration: timedelta) -> str:
    return f"{duration.total_seconds():.1f}s"


def _trim(value: float) -> str:
    return f"{value:.2f}".rstrip('0').rstrip('.')


def _echo_table(headers, rows):
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    line = '  '.join(h.ljust(widths[i]) for i, h in enumerate(headers))
    click.echo(line.rstrip())
    click.echo('  '.join('-' * w for w in widths))
    for row in rows:
        click.echo('  '.join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)).rstrip())


def _fail(ctx, message: str):
    click.echo(message, err=True)
    ctx.exit(1)


def _load_config(ctx) -> BackupConfig:
    try:
        return ctx.obj.load()
    except ConfigurationError as e:
        _fail(ctx, f"Configuration error: {e}")


def _resolve_targets(ctx, config: BackupConfig, target_name):
    try:
        return ctx.obj.targets(config, target_name)
    except ConfigurationError as e:
        _fail(ctx, f"Configuration error: {e}")


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Path to lutra.yaml (default: LUTRA_CONFIG or the standard location).')
@click.option('--env-file', 'env_path', type=click.Path(dir_okay=False),
              help='Path to the .env file holding database passwords.')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging.')
@click.version_option(__version__, prog_name='lutra')
@click.pass_context
def cli(ctx, config_path, env_path, verbose):
    """Lutra - backups for databases running in containers."""
    configure_logging(level=logging.DEBUG if verbose else None)

    ctx.obj = CliContext(
        config_path=resolve_config_path(config_path or Config.CONFIG_PATH),
        env_path=resolve_env_path(env_path or Config.ENV_FILE)
    )


# Backups

@cli.group()
def backup():
    """Run backups and list targets."""


@backup.command('run')
@click.option('--target', 'target_name', help='Back up only this target.')
@click.pass_context
def backup_run(ctx, target_name):
    """Back up one target or all configured targets."""
    config = _load_config(ctx)
    targets = _resolve_targets(ctx, config, target_name)
    orchestrator = create_orchestrator(config)

    results = []
    try:
        for target in targets:
            results.append(orchestrator.backup(target))
    except HistoryError as e:
        _fail(ctx, f"History error: {e}")

    rows = []
    for result in results:
        if result.success:
            rows.append([result.target_name, 'OK', format_bytes(result.file_size_bytes),
                         format_duration(result.duration), result.file_path])
        else:
            rows.append([result.target_name, 'FAILED', '-',
                         format_duration(result.duration), result.error_message])

    _echo_table(['TARGET', 'STATUS', 'SIZE', 'DURATION', 'DETAILS'], rows)

    succeeded = sum(1 for r in results if r.success)
    click.echo(f"\n{succeeded}/{len(results)} backup(s) succeeded.")

    if succeeded != len(results):
        ctx.exit(1)


@backup.command('list')
@click.pass_context
def backup_list(ctx):
    """List configured targets."""
    config = _load_config(ctx)

    rows = [
        [t.name, t.database_type.value, t.container, t.database, t.schedule, t.compression.value]
        for t in config.databases
    ]
    _echo_table(['NAME', 'TYPE', 'CONTAINER', 'DATABASE', 'SCHEDULE', 'COMPRESSION'], rows)


@cli.command()
@click.option('--target', 'target_name', help='Show history for this target only.')
@click.pass_context
def history(ctx, target_name):
    """Show backup history, newest first."""
    config = _load_config(ctx)
    store = BackupHistoryStore(config.backup_directory)

    try:
        if target_name:
            target = _resolve_targets(ctx, config, target_name)[0]
            records = store.for_target(target.name)
        else:
            records = store.all()
    except HistoryError as e:
        _fail(ctx, f"History error: {e}")

    if not records:
        click.echo("No backup history found.")
        return

    rows = []
    for record in records:
        rows.append([
            record.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
            record.target_name,
            'OK' if record.success else 'FAILED',
            format_bytes(record.file_size_bytes) if record.success else '-',
            format_duration(timedelta(milliseconds=record.duration_ms)),
            record.file_name if record.success else (record.error_message or '')
        ])

    _echo_table(['TIMESTAMP (UTC)', 'TARGET', 'STATUS', 'SIZE', 'DURATION', 'DETAILS'], rows)


@cli.command()
@click.option('--target', 'target_name', help='Apply retention to this target only.')
@click.pass_context
def cleanup(ctx, target_name):
    """Apply retention policies and delete expired backups."""
    config = _load_config(ctx)
    targets = _resolve_targets(ctx, config, target_name)
    orchestrator = create_orchestrator(config)

    total = 0
    try:
        for target in targets:
            removed = orchestrator.cleanup(target)
            total += removed
            click.echo(f"{target.name}: removed {removed} backup(s)")
    except HistoryError as e:
        _fail(ctx, f"History error: {e}")

    click.echo(f"Total: {total} backup(s) removed.")


# Configuration files

@cli.group('config')
def config_group():
    """Create, validate and reset configuration files."""


def _write_templates(config_path: str, env_path: str, write_env: bool):
    os.makedirs(os.path.dirname(os.path.abspath(config_path)), exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        f.write(generate_yaml_template(default_backup_directory()))
    click.echo(f"Wrote {config_path}")

    if write_env:
        os.makedirs(os.path.dirname(os.path.abspath(env_path)), exist_ok=True)
        with open(env_path, 'w', encoding='utf-8') as f:
            f.write(generate_env_template())
        os.chmod(env_path, 0o600)
        click.echo(f"Wrote {env_path} (mode 600)")


@config_group.command('init')
@click.option('--force', is_flag=True, help='Overwrite existing files.')
@click.pass_context
def config_init(ctx, force):
    """Write starter lutra.yaml and .env files."""
    paths = ctx.obj

    if os.path.exists(paths.config_path) and not force:
        _fail(ctx, f"Configuration file already exists: {paths.config_path} (use --force to overwrite)")

    try:
        _write_templates(paths.config_path, paths.env_path, force or not os.path.exists(paths.env_path))
    except OSError as e:
        _fail(ctx, f"Failed to write configuration files: {e}")

    click.echo("Edit the files, then run 'lutra config validate'.")


@config_group.command('validate')
@click.pass_context
def config_validate(ctx):
    """Check the configuration and summarise its targets."""
    from lutra.scheduler import schedule_trigger

    config = _load_config(ctx)

    try:
        for target in config.databases:
            schedule_trigger(target.schedule)
    except ConfigurationError as e:
        _fail(ctx, f"Configuration error: {e}")

    click.echo(f"Configuration is valid: {ctx.obj.config_path}")
    click.echo(f"Backup directory: {config.backup_directory}")
    click.echo(
        f"Retention: keep {config.retention.max_count} backups, "
        f"{config.retention.max_age_days} days"
    )
    click.echo(f"Targets ({len(config.databases)}):")

    for target in config.databases:
        click.echo(
            f"  - {target.name} ({target.database_type.value}) "
            f"container={target.container} database={target.database} schedule={target.schedule}"
        )
        if target.password_env and target.password_env not in os.environ:
            click.echo(f"    Warning: environment variable {target.password_env} is not set")


@config_group.command('reset')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation.')
@click.pass_context
def config_reset(ctx, yes):
    """Replace existing configuration files with fresh templates."""
    paths = ctx.obj
    existing = [p for p in (paths.config_path, paths.env_path) if os.path.exists(p)]

    if not existing:
        click.echo("No configuration files found. Run 'lutra config init' instead.")
        return

    if not yes:
        click.confirm(f"Overwrite {', '.join(existing)}?", abort=True)

    try:
        _write_templates(paths.config_path, paths.env_path, write_env=True)
    except OSError as e:
        _fail(ctx, f"Failed to write configuration files: {e}")


# Scheduling

@cli.group()
def schedule():
    """Manage scheduled backups."""


@schedule.command('install')
@click.option('--target', 'target_name', help='Install the timer for this target only.')
@click.pass_context
def schedule_install(ctx, target_name):
    """Install systemd timers for targets."""
    from lutra.systemd import SystemdError, SystemdUnits, lutra_executable, run_systemctl, unit_name

    config = _load_config(ctx)
    targets = _resolve_targets(ctx, config, target_name)
    units = SystemdUnits(Config.SYSTEMD_DIR)

    config_path = os.path.abspath(ctx.obj.config_path)
    env_path = os.path.abspath(ctx.obj.env_path)

    try:
        for target in targets:
            units.install(target, lutra_executable(), config_path, env_path)
    except SystemdError as e:
        _fail(ctx, f"Error: {e}")

    run_systemctl('daemon-reload')
    for target in targets:
        run_systemctl('enable', '--now', f"{unit_name(target.name)}.timer")
        click.echo(f"Installed {unit_name(target.name)}.timer ({target.schedule})")


@schedule.command('list')
@click.pass_context
def schedule_list(ctx):
    """List installed systemd timers."""
    from lutra.systemd import SystemdError, SystemdUnits

    try:
        timers = SystemdUnits(Config.SYSTEMD_DIR).list_timers()
    except SystemdError as e:
        _fail(ctx, f"Error: {e}")

    if not timers:
        click.echo("No scheduled backups installed.")
        return

    rows = [[t['target'], t['schedule'], t['enabled'], t['active']] for t in timers]
    _echo_table(['TARGET', 'SCHEDULE', 'ENABLED', 'ACTIVE'], rows)


@schedule.command('remove')
@click.option('--target', 'target_name', help='Remove the timer for this target only.')
@click.pass_context
def schedule_remove(ctx, target_name):
    """Stop, disable and delete systemd timers."""
    from lutra.systemd import SystemdError, SystemdUnits

    try:
        removed = SystemdUnits(Config.SYSTEMD_DIR).remove(target_name)
    except SystemdError as e:
        _fail(ctx, f"Error: {e}")

    if not removed:
        click.echo("No scheduled backups found.")
        return

    for name in removed:
        click.echo(f"Removed {name}")


@schedule.command('run')
@click.pass_context
def schedule_run(ctx):
    """Run the backup scheduler in the foreground."""
    from lutra.scheduler import create_scheduler

    config = _load_config(ctx)

    try:
        scheduler = create_scheduler(config, create_orchestrator(config))
    except ConfigurationError as e:
        _fail(ctx, f"Configuration error: {e}")

    click.echo(f"Starting scheduler with {len(scheduler.get_jobs())} job(s). Press Ctrl+C to exit.")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


def main():
    cli(prog_name='lutra')


if __name__ == '__main__':
    main()
