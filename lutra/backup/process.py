"""
Process executor - runs dump commands inside containers.

Commands are run as ``<runtime> exec [-e KEY=VALUE ...] <container> <exe> [args]``.
Standard output goes straight into a temporary file so large dumps are never
held in memory; standard error is captured as text.
"""

import logging
import os
import subprocess
import tempfile
from typing import List, Optional

from .providers import ExecCommand


logger = logging.getLogger(__name__)


class ProcessError(Exception):
    """Raised when the container runtime cannot be started."""
    pass


class CapturedOutput:
    """
    Read-once stream over a captured stdout file.

    The backing file is opened on first read and deleted when the stream is
    closed. Use it as a context manager so the file is removed on every exit
    path.
    """

    def __init__(self, path: str):
        self.path = path
        self._file = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("I/O operation on closed captured output")
        if self._file is None:
            self._file = open(self.path, 'rb')
        return self._file.read(size)

    def readable(self) -> bool:
        return not self._closed

    def close(self):
        """Close the stream and delete its backing file."""
        if self._closed:
            return
        self._closed = True

        if self._file is not None:
            self._file.close()
            self._file = None

        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove captured output {self.path}: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class ExecResult:
    """
    Result of a command run inside a container.

    Owns ``output``; close the result (or use it in a ``with`` block) to
    release the captured stream.
    """

    def __init__(self, exit_code: int, output: CapturedOutput, stderr: str):
        self.exit_code = exit_code
        self.output = output
        self.stderr = stderr

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def close(self):
        self.output.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class DockerExecutor:
    """
    Executes commands in containers through a docker-compatible CLI.
    """

    def __init__(self, runtime: str = 'docker', temp_dir: Optional[str] = None):
        """
        Args:
            runtime: Container runtime executable (docker, podman, ...)
            temp_dir: Directory for captured output (default: system temp dir)
        """
        self.runtime = runtime
        self.temp_dir = temp_dir

    def build_args(self, command: ExecCommand) -> List[str]:
        """
        Build the full argument list for the runtime.

        Args:
            command: ExecCommand to run

        Returns:
            Argument list starting with the runtime executable
        """
        args = [self.runtime, 'exec']

        for key, value in (command.environment or {}).items():
            args.extend(['-e', f'{key}={value}'])

        args.append(command.container)
        args.append(command.executable)
        args.extend(command.arguments)
        return args

    def execute(self, command: ExecCommand) -> ExecResult:
        """
        Run a command and capture its output.

        Args:
            command: ExecCommand to run

        Returns:
            ExecResult owning the captured stdout stream

        Raises:
            ProcessError: If the runtime cannot be started
        """
        args = self.build_args(command)
        logger.debug(f"Running {command.executable} in container {command.container}")

        fd, output_path = tempfile.mkstemp(prefix='lutra_exec_', dir=self.temp_dir)

        try:
            with os.fdopen(fd, 'wb') as output_file:
                completed = subprocess.run(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=output_file,
                    stderr=subprocess.PIPE
                )
        except OSError as e:
            _remove_quietly(output_path)
            raise ProcessError(f"Failed to start {self.runtime}: {e}")
        except BaseException:
            _remove_quietly(output_path)
            raise

        stderr = completed.stderr.decode('utf-8', errors='replace')

        if completed.returncode != 0:
            logger.debug(
                f"{command.executable} in {command.container} exited with code "
                f"{completed.returncode}"
            )

        return ExecResult(completed.returncode, CapturedOutput(output_path), stderr)


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except OSError:
        pass
