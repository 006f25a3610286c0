"""
Dump providers for each supported database engine.

Providers:
- PostgresProvider: pg_dump, streams to stdout
- SqlServerProvider: sqlcmd BACKUP DATABASE, writes a file inside the container
- MongoProvider: mongodump --archive, streams to stdout

A provider only describes the command to run. Execution belongs to the
process executor and the orchestrator.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lutra.credentials import EnvironmentSecrets, SecretResolver
from lutra.models import DatabaseTarget, DatabaseType


class ProviderError(Exception):
    """Raised when no provider can handle a target."""
    pass


@dataclass(frozen=True)
class ExecCommand:
    """
    A command to run inside a container via ``<runtime> exec``.

    Environment variables are passed with ``-e KEY=VALUE`` so credentials
    never appear in the dump tool's own arguments.
    """
    container: str
    executable: str
    arguments: List[str] = field(default_factory=list)
    environment: Optional[Dict[str, str]] = None


class BackupProvider:
    """
    Base class for database dump providers.

    Subclasses set ``database_type`` and implement ``build_command`` and
    ``file_extension``. Providers that write to a file inside the container
    set ``streams_to_stdout = False`` and return that path from
    ``container_backup_path``.
    """

    database_type: DatabaseType = None
    streams_to_stdout = True

    def __init__(self, secrets: Optional[SecretResolver] = None):
        """
        Args:
            secrets: Resolver for password environment variables
        """
        self.secrets = secrets or EnvironmentSecrets()

    def build_command(self, target: DatabaseTarget) -> ExecCommand:
        raise NotImplementedError

    def file_extension(self, target: DatabaseTarget) -> str:
        raise NotImplementedError

    def container_backup_path(self, target: DatabaseTarget) -> Optional[str]:
        return None

    def _resolve_password(self, target: DatabaseTarget) -> Optional[str]:
        if not target.password_env:
            return None
        return self.secrets(target.password_env)


def _is_plain_format(target: DatabaseTarget) -> bool:
    return (target.format or '').strip().lower() == 'plain'


class PostgresProvider(BackupProvider):
    """pg_dump in custom format (.dump) or plain SQL (.sql)."""

    database_type = DatabaseType.POSTGRESQL

    def build_command(self, target: DatabaseTarget) -> ExecCommand:
        args = []

        if target.username:
            args.extend(['-U', target.username])

        args.append('-Fp' if _is_plain_format(target) else '-Fc')
        args.append(target.database)

        environment = None
        password = self._resolve_password(target)
        if password is not None:
            environment = {'PGPASSWORD': password}

        return ExecCommand(
            container=target.container,
            executable='pg_dump',
            arguments=args,
            environment=environment
        )

    def file_extension(self, target: DatabaseTarget) -> str:
        return '.sql' if _is_plain_format(target) else '.dump'


class SqlServerProvider(BackupProvider):
    """
    sqlcmd running BACKUP DATABASE to a fixed path inside the container.

    The .bak file has to be pulled out of the container afterwards, so this
    provider does not stream to stdout.
    """

    database_type = DatabaseType.SQLSERVER
    streams_to_stdout = False

    SQLCMD = '/opt/mssql-tools18/bin/sqlcmd'
    CONTAINER_BACKUP_PATH = '/tmp/lutra_backup.bak'
    DEFAULT_USERNAME = 'sa'

    def build_command(self, target: DatabaseTarget) -> ExecCommand:
        backup_sql = (
            f"BACKUP DATABASE [{target.database}] "
            f"TO DISK = N'{self.CONTAINER_BACKUP_PATH}' WITH FORMAT, INIT"
        )

        args = [
            '-S', 'localhost',
            '-U', target.username or self.DEFAULT_USERNAME,
            '-C',  # trust server certificate
            '-Q', backup_sql
        ]

        environment = None
        password = self._resolve_password(target)
        if password is not None:
            environment = {'SQLCMDPASSWORD': password}

        return ExecCommand(
            container=target.container,
            executable=self.SQLCMD,
            arguments=args,
            environment=environment
        )

    def file_extension(self, target: DatabaseTarget) -> str:
        return '.bak'

    def container_backup_path(self, target: DatabaseTarget) -> Optional[str]:
        return self.CONTAINER_BACKUP_PATH


class MongoProvider(BackupProvider):
    """
    mongodump writing a single archive to stdout.

    mongodump has no password environment variable, so when a password is
    configured the dump runs under ``sh -c`` and the password is expanded
    from an exec environment variable inside the container.
    """

    database_type = DatabaseType.MONGODB

    PASSWORD_VARIABLE = 'LUTRA_MONGODB_PASSWORD'
    AUTH_DATABASE = 'admin'

    def build_command(self, target: DatabaseTarget) -> ExecCommand:
        args = ['--archive', '--db', target.database]

        if target.username:
            args.extend([
                '--username', target.username,
                '--authenticationDatabase', self.AUTH_DATABASE
            ])

        password = self._resolve_password(target)
        if password is None:
            return ExecCommand(
                container=target.container,
                executable='mongodump',
                arguments=args
            )

        # $0 is "mongodump", "$@" are the dump arguments
        script = f'exec mongodump "$@" --password "${self.PASSWORD_VARIABLE}"'
        return ExecCommand(
            container=target.container,
            executable='sh',
            arguments=['-c', script, 'mongodump'] + args,
            environment={self.PASSWORD_VARIABLE: password}
        )

    def file_extension(self, target: DatabaseTarget) -> str:
        return '.archive'


def default_providers(secrets: Optional[SecretResolver] = None) -> Dict[DatabaseType, BackupProvider]:
    """
    Build the provider registry keyed by database type.

    Args:
        secrets: Resolver shared by all providers

    Returns:
        Dict mapping DatabaseType to its provider
    """
    secrets = secrets or EnvironmentSecrets()
    providers = [
        PostgresProvider(secrets),
        SqlServerProvider(secrets),
        MongoProvider(secrets)
    ]
    return {provider.database_type: provider for provider in providers}


def get_provider(providers: Dict[DatabaseType, BackupProvider], database_type) -> BackupProvider:
    """
    Look up the provider for a database type.

    Raises:
        ProviderError: If no provider is registered for the type
    """
    provider = providers.get(database_type)
    if provider is None:
        type_name = getattr(database_type, 'value', database_type)
        raise ProviderError(f"No backup provider registered for database type '{type_name}'.")
    return provider
