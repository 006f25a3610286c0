import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '0.1.0'

logger = logging.getLogger('lutra')


def configure_logging(level=None, log_dir=None):
    """Configure logging for the lutra package"""

    from lutra.config import Config

    if level is None:
        level = getattr(logging, Config.LOG_LEVEL, logging.INFO)
    log_dir = log_dir or Config.LOG_DIR

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    ))

    handlers = [console_handler]
    file_error = None

    # File handler, only when a log directory is configured
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'lutra.log'),
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(
                '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
            ))
            handlers.append(file_handler)
        except OSError as e:
            file_error = e

    logger.handlers.clear()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    if file_error:
        logger.warning(f"File logging disabled, cannot write to {log_dir}: {file_error}")

    logger.debug(f"Logging configured (level: {logging.getLevelName(level)})")


def create_orchestrator(config, secrets=None, executor=None):
    """
    Build a BackupOrchestrator for a validated configuration.

    Args:
        config: BackupConfig
        secrets: Password resolver (default: snapshot of the current environment)
        executor: Process executor (default: DockerExecutor for config.container_runtime)
    """
    from lutra.backup import BackupOrchestrator, BackupHistoryStore, LocalStorage, default_providers
    from lutra.credentials import EnvironmentSecrets

    secrets = secrets or EnvironmentSecrets.from_environ()

    return BackupOrchestrator(
        config=config,
        providers=default_providers(secrets),
        executor=executor,
        history=BackupHistoryStore(config.backup_directory),
        storage=LocalStorage(config.backup_directory)
    )
