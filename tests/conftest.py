"""
Shared pytest fixtures for Lutra tests.

This module provides fixtures for:
- Backup roots and configuration objects
- Database targets for each supported engine
- A fake container executor recording every command it is asked to run
- Configuration files on disk for CLI tests
"""

import logging

import pytest

from lutra.backup.orchestrator import BackupOrchestrator
from lutra.backup.process import CapturedOutput, ExecResult
from lutra.backup.providers import default_providers
from lutra.credentials import EnvironmentSecrets
from lutra.models import (
    BackupConfig, CompressionType, DatabaseTarget, DatabaseType, RetentionPolicy
)


class FakeExecutor:
    """
    Stand-in for DockerExecutor.

    Responses are keyed by executable name. A response is either a tuple of
    (exit_code, stdout bytes, stderr text) or an exception to raise.
    """

    def __init__(self, work_dir):
        self.work_dir = work_dir
        self.commands = []
        self.responses = {}
        self.results = []

    def respond(self, executable, exit_code=0, stdout=b'', stderr=''):
        self.responses[executable] = (exit_code, stdout, stderr)

    def fail_with(self, executable, error):
        self.responses[executable] = error

    def execute(self, command):
        self.commands.append(command)

        response = self.responses.get(command.executable, (0, b'', ''))
        if isinstance(response, BaseException):
            raise response

        exit_code, stdout, stderr = response
        path = self.work_dir / f"exec_{len(self.commands)}.out"
        path.write_bytes(stdout)

        result = ExecResult(exit_code, CapturedOutput(str(path)), stderr)
        self.results.append(result)
        return result

    @property
    def executables(self):
        return [c.executable for c in self.commands]


@pytest.fixture(autouse=True)
def reset_lutra_logger():
    """Drop handlers installed by configure_logging between tests."""
    yield
    lutra_logger = logging.getLogger('lutra')
    lutra_logger.handlers.clear()
    lutra_logger.propagate = True
    lutra_logger.setLevel(logging.NOTSET)


@pytest.fixture
def backup_dir(tmp_path):
    """Empty backup root."""
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture
def secrets():
    return EnvironmentSecrets({
        'POSTGRES_PASSWORD': 'pg-secret',
        'SQLSERVER_PASSWORD': 'Str0ng!Pass',
        'MONGO_PASSWORD': 'mongo-secret'
    })


@pytest.fixture
def postgres_target():
    """
    PostgreSQL target in plain format without compression.

    pg_dump -U app -Fp orders_db
    """
    return DatabaseTarget(
        name='orders-db',
        database_type=DatabaseType.POSTGRESQL,
        container='pg',
        database='orders_db',
        username='app',
        format='plain',
        compression=CompressionType.NONE
    )


@pytest.fixture
def sqlserver_target():
    return DatabaseTarget(
        name='erp',
        database_type=DatabaseType.SQLSERVER,
        container='mssql',
        database='ErpDb',
        username='sa',
        password_env='SQLSERVER_PASSWORD',
        compression=CompressionType.NONE
    )


@pytest.fixture
def mongo_target():
    return DatabaseTarget(
        name='events',
        database_type=DatabaseType.MONGODB,
        container='mongo',
        database='events',
        compression=CompressionType.GZIP
    )


@pytest.fixture
def backup_config(backup_dir, postgres_target, sqlserver_target, mongo_target):
    return BackupConfig(
        backup_directory=str(backup_dir),
        retention=RetentionPolicy(max_count=10, max_age_days=30),
        databases=[postgres_target, sqlserver_target, mongo_target]
    )


@pytest.fixture
def fake_executor(tmp_path):
    work_dir = tmp_path / 'exec'
    work_dir.mkdir()
    return FakeExecutor(work_dir)


@pytest.fixture
def orchestrator(backup_config, fake_executor, secrets):
    return BackupOrchestrator(
        config=backup_config,
        providers=default_providers(secrets),
        executor=fake_executor
    )


@pytest.fixture
def config_file(tmp_path, backup_dir):
    """
    lutra.yaml with two targets, plus an empty .env next to it.

    Returns:
        (config_path, env_path) as strings
    """
    config_path = tmp_path / 'lutra.yaml'
    config_path.write_text(f"""
backup_directory: {backup_dir}
retention:
  max_count: 10
  max_age_days: 30
databases:
  - name: orders-db
    type: postgresql
    container: pg
    database: orders_db
    username: app
    format: plain
    compression: none
  - name: events
    type: mongodb
    container: mongo
    database: events
    schedule: "Sun *-*-* 04:00:00"
""")

    env_path = tmp_path / '.env'
    env_path.write_text('')

    return str(config_path), str(env_path)
