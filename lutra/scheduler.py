"""
APScheduler configuration for running Lutra in the foreground.

Used by ``lutra schedule run`` on hosts without systemd. Each target gets a
cron-triggered job that backs it up on the target's schedule.
"""

import logging
import re
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from lutra.config import Config, ConfigurationError
from lutra.models import BackupConfig, DatabaseTarget


logger = logging.getLogger(__name__)

SHORTHANDS = {
    'hourly': {'minute': 0, 'second': 0},
    'daily': {'hour': 0, 'minute': 0, 'second': 0},
    'weekly': {'day_of_week': 'mon', 'hour': 0, 'minute': 0, 'second': 0},
}

WEEKDAYS = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')


def schedule_trigger(expression: str, timezone: Optional[str] = None) -> CronTrigger:
    """
    Build a CronTrigger from a target schedule.

    Accepted forms:
    - 5-field crontab: ``0 3 * * *``
    - systemd calendar subset: ``[Dow[,Dow..]] *-*-* HH:MM[:SS]``
      (``Mon..Fri`` ranges allowed)
    - ``hourly``, ``daily``, ``weekly``

    Raises:
        ConfigurationError: If the expression is not understood
    """
    timezone = timezone or Config.SCHEDULER_TIMEZONE
    text = (expression or '').strip()

    shorthand = SHORTHANDS.get(text.lower())
    if shorthand:
        return CronTrigger(timezone=timezone, **shorthand)

    fields = text.split()

    if len(fields) == 5:
        try:
            return CronTrigger.from_crontab(text, timezone=timezone)
        except ValueError as e:
            raise ConfigurationError(f"Invalid cron schedule '{expression}': {e}")

    if len(fields) in (2, 3) and fields[-2] == '*-*-*':
        match = _TIME_PATTERN.match(fields[-1])
        if match:
            hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
            if hour < 24 and minute < 60 and second < 60:
                kwargs = {'hour': hour, 'minute': minute, 'second': second}
                if len(fields) == 3:
                    kwargs['day_of_week'] = _parse_weekdays(fields[0], expression)
                return CronTrigger(timezone=timezone, **kwargs)

    raise ConfigurationError(
        f"Unsupported schedule '{expression}'. Use a crontab expression, "
        "'[Dow] *-*-* HH:MM[:SS]', hourly, daily or weekly."
    )


def _parse_weekdays(value: str, expression: str) -> str:
    parts = []
    for part in value.lower().split(','):
        bounds = part.split('..')
        if len(bounds) > 2 or any(b[:3] not in WEEKDAYS or len(b) < 3 for b in bounds):
            raise ConfigurationError(f"Invalid weekday '{part}' in schedule '{expression}'.")
        parts.append('-'.join(b[:3] for b in bounds))
    return ','.join(parts)


def create_scheduler(config: BackupConfig, orchestrator) -> BlockingScheduler:
    """
    Create a blocking scheduler with one backup job per target.

    Args:
        config: Validated configuration
        orchestrator: BackupOrchestrator used by the jobs

    Raises:
        ConfigurationError: If a target schedule cannot be parsed
    """
    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=Config.SCHEDULER_TIMEZONE
    )

    for target in config.databases:
        scheduler.add_job(
            func=run_scheduled_backup,
            args=[orchestrator, target],
            trigger=schedule_trigger(target.schedule),
            id=f"backup_{target.name}",
            name=f"Backup: {target.name}",
            replace_existing=True
        )
        logger.info(f"Scheduled backup: {target.name} ({target.schedule})")

    return scheduler


def run_scheduled_backup(orchestrator, target: DatabaseTarget):
    """Job function: back up one target and log the outcome."""
    logger.info(f"Scheduler executing backup: {target.name}")
    result = orchestrator.backup(target)

    if result.success:
        logger.info(f"Scheduled backup {target.name} completed: {result.file_path}")
    else:
        logger.error(f"Scheduled backup {target.name} failed: {result.error_message}")

    return result
