import os
import pwd
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from lutra.models import (
    BackupConfig, CompressionType, DatabaseTarget, DatabaseType, RetentionPolicy
)


DEFAULT_SYSTEM_CONFIG_PATH = '/etc/lutra/lutra.yaml'
DEFAULT_SYSTEM_ENV_PATH = '/etc/lutra/.env'


class ConfigurationError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""
    pass


class Config:
    """Process-level settings, overridable through environment variables"""

    CONFIG_PATH = os.environ.get('LUTRA_CONFIG') or DEFAULT_SYSTEM_CONFIG_PATH
    ENV_FILE = os.environ.get('LUTRA_ENV_FILE') or DEFAULT_SYSTEM_ENV_PATH

    # Logging
    LOG_DIR = os.environ.get('LUTRA_LOG_DIR')
    LOG_LEVEL = (os.environ.get('LUTRA_LOG_LEVEL') or 'INFO').upper()

    # Scheduling
    SYSTEMD_DIR = os.environ.get('LUTRA_SYSTEMD_DIR') or '/etc/systemd/system'
    SCHEDULER_TIMEZONE = 'UTC'


def is_privileged() -> bool:
    return os.geteuid() == 0


def default_backup_directory() -> str:
    if is_privileged():
        return '/var/backups/lutra'
    return os.path.join(os.path.expanduser('~'), 'backups', 'lutra')


def default_config_directory() -> str:
    if is_privileged():
        return '/etc/lutra'
    config_home = os.environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return os.path.join(config_home, 'lutra')


def _sudo_user_config_directory() -> Optional[str]:
    """Config directory of the user who invoked sudo, if any."""
    sudo_user = os.environ.get('SUDO_USER')
    if not sudo_user:
        return None

    try:
        home = pwd.getpwnam(sudo_user).pw_dir
    except KeyError:
        return None

    return os.path.join(home, '.config', 'lutra')


def _resolve_default_path(path: str, system_default: str, filename: str) -> str:
    if path != system_default:
        return path

    if not is_privileged():
        return os.path.join(default_config_directory(), filename)

    # Root via sudo: prefer the invoking user's files when they exist
    sudo_dir = _sudo_user_config_directory()
    if sudo_dir:
        candidate = os.path.join(sudo_dir, filename)
        if os.path.exists(candidate):
            return candidate

    return path


def resolve_config_path(config_path: str) -> str:
    """Map the system default config path to the per-user location when needed."""
    return _resolve_default_path(config_path, DEFAULT_SYSTEM_CONFIG_PATH, 'lutra.yaml')


def resolve_env_path(env_path: str) -> str:
    """Map the system default .env path to the per-user location when needed."""
    return _resolve_default_path(env_path, DEFAULT_SYSTEM_ENV_PATH, '.env')


def load_env_file(env_path: str) -> bool:
    """
    Load KEY=VALUE pairs from a .env file into the process environment.

    Values override variables that are already set. A missing file is not an
    error.

    Returns:
        True if the file existed and was loaded
    """
    if not os.path.isfile(env_path):
        return False
    return load_dotenv(env_path, override=True)


def load_config(config_path: str) -> BackupConfig:
    """
    Load and validate the YAML configuration file.

    Args:
        config_path: Path to lutra.yaml

    Returns:
        Validated BackupConfig

    Raises:
        ConfigurationError: If the file is missing, unreadable, not valid YAML,
            or has missing/invalid values
    """
    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file '{config_path}': {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if data is None:
        raise ConfigurationError("Configuration file is empty.")
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration file must contain a mapping at the top level.")

    return parse_config(data)


def parse_config(data: Dict[str, Any]) -> BackupConfig:
    """
    Build a BackupConfig from already-parsed YAML data.

    Raises:
        ConfigurationError: If required fields are missing or values are invalid
    """
    backup_directory = _optional_str(data.get('backup_directory'))
    if not backup_directory:
        raise ConfigurationError("'backup_directory' is required.")

    retention = _parse_retention(data.get('retention'), 'retention') or RetentionPolicy()

    databases = data.get('databases')
    if not isinstance(databases, list) or not databases:
        raise ConfigurationError("At least one database target must be configured under 'databases'.")

    targets = []
    seen = set()
    for index, entry in enumerate(databases):
        target = _parse_target(entry, index)
        key = target.name.lower()
        if key in seen:
            raise ConfigurationError(f"databases[{index}]: duplicate target name '{target.name}'.")
        seen.add(key)
        targets.append(target)

    runtime = _optional_str(data.get('container_runtime')) or 'docker'

    return BackupConfig(
        backup_directory=os.path.expanduser(backup_directory),
        retention=retention,
        databases=targets,
        container_runtime=runtime
    )


def resolve_target(config: BackupConfig, target_name: str) -> DatabaseTarget:
    """
    Find a target by name (case-insensitive).

    Raises:
        ConfigurationError: If no target has that name
    """
    for target in config.databases:
        if target.name.lower() == target_name.lower():
            return target

    available = ', '.join(t.name for t in config.databases)
    raise ConfigurationError(f"Target '{target_name}' not found. Available targets: {available}")


def _parse_target(entry: Any, index: int) -> DatabaseTarget:
    prefix = f"databases[{index}]"

    if not isinstance(entry, dict):
        raise ConfigurationError(f"{prefix}: expected a mapping.")

    name = _optional_str(entry.get('name'))
    if not name:
        raise ConfigurationError(f"{prefix}: 'name' is required.")

    prefix = f"{prefix} ({name})"

    container = _optional_str(entry.get('container'))
    if not container:
        raise ConfigurationError(f"{prefix}: 'container' is required.")

    database = _optional_str(entry.get('database'))
    if not database:
        raise ConfigurationError(f"{prefix}: 'database' is required.")

    database_type = _parse_enum(DatabaseType, entry.get('type'), 'type', prefix)

    compression = CompressionType.GZIP
    if entry.get('compression') is not None:
        compression = _parse_enum(CompressionType, entry.get('compression'), 'compression', prefix)

    kwargs = {}
    schedule = _optional_str(entry.get('schedule'))
    if schedule:
        kwargs['schedule'] = schedule

    return DatabaseTarget(
        name=name,
        database_type=database_type,
        container=container,
        database=database,
        username=_optional_str(entry.get('username')),
        password_env=_optional_str(entry.get('password_env')),
        format=_optional_str(entry.get('format')),
        compression=compression,
        retention=_parse_retention(entry.get('retention'), f"{prefix}: retention"),
        **kwargs
    )


def _parse_retention(value: Any, field_name: str) -> Optional[RetentionPolicy]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{field_name}' must be a mapping.")

    defaults = RetentionPolicy()
    return RetentionPolicy(
        max_count=_non_negative_int(value.get('max_count', defaults.max_count), f"{field_name}.max_count"),
        max_age_days=_non_negative_int(value.get('max_age_days', defaults.max_age_days), f"{field_name}.max_age_days")
    )


def _non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"'{field_name}' must be an integer.")
    if value < 0:
        raise ConfigurationError(f"'{field_name}' must not be negative.")
    return value


def _parse_enum(enum_cls, value: Any, field_name: str, prefix: str):
    valid = ', '.join(member.value for member in enum_cls)

    if value is None:
        raise ConfigurationError(f"{prefix}: '{field_name}' is required. Valid values: {valid}")

    normalized = str(value).strip().lower()
    for member in enum_cls:
        if member.value == normalized:
            return member

    raise ConfigurationError(f"{prefix}: invalid value '{value}' for '{field_name}'. Valid values: {valid}")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
