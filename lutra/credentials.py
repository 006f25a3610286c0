"""
Password resolution for database targets.

Targets never carry passwords. They name an environment variable
(``password_env``) that is looked up when the dump command is built. The
lookup runs against a snapshot of the environment taken once at startup,
after the .env file has been loaded.
"""

import os
from typing import Callable, Mapping, Optional


SecretResolver = Callable[[str], Optional[str]]


class EnvironmentSecrets:
    """
    Resolves environment-variable names to their values.

    Instances are callables of (name) -> Optional[str] so tests can pass a
    plain dict-backed resolver instead.
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        """
        Args:
            values: Mapping to resolve against. Defaults to a copy of os.environ.
        """
        self._values = dict(os.environ if values is None else values)

    @classmethod
    def from_environ(cls) -> 'EnvironmentSecrets':
        return cls(os.environ)

    def __call__(self, name: str) -> Optional[str]:
        if not name:
            return None
        return self._values.get(name)
