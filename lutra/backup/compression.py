"""
Writing captured dump output to backup files.

Supports:
- none: bytes are copied as-is
- gzip: bytes are gzip-compressed on the way to disk (``.gz`` suffix)
"""

import gzip
import os
import shutil
from datetime import datetime

from lutra.models import CompressionType


COPY_BUFFER_SIZE = 1024 * 1024


class CompressionError(Exception):
    """Raised when a backup file cannot be written."""
    pass


def generate_backup_filename(
    target_name: str,
    timestamp: datetime,
    extension: str,
    compression: CompressionType = CompressionType.NONE
) -> str:
    """
    Generate a standardized backup filename.

    Format: {target_name}_{YYYY-MM-DD}_{HHMMSS}{extension}[.gz]

    Args:
        target_name: Name of the database target
        timestamp: Start time of the backup attempt (UTC)
        extension: Provider file extension including the leading dot
        compression: Compression applied to the file

    Returns:
        Filename (without path)
    """
    filename = f"{target_name}_{timestamp:%Y-%m-%d}_{timestamp:%H%M%S}{extension}"

    if compression == CompressionType.GZIP:
        filename += '.gz'

    return filename


def write_stream(source, output_path: str, compression: CompressionType = CompressionType.NONE) -> str:
    """
    Copy a readable binary stream into a backup file.

    Args:
        source: Object with a ``read(size)`` method
        output_path: Destination file path
        compression: Compression to apply while writing

    Returns:
        output_path

    Raises:
        CompressionError: If writing fails
    """
    try:
        with open(output_path, 'wb') as destination:
            if compression == CompressionType.GZIP:
                with gzip.GzipFile(filename='', mode='wb', fileobj=destination) as gz:
                    shutil.copyfileobj(source, gz, COPY_BUFFER_SIZE)
            else:
                shutil.copyfileobj(source, destination, COPY_BUFFER_SIZE)
        return output_path
    except BaseException as e:
        _remove_partial(output_path)
        if isinstance(e, Exception):
            raise CompressionError(f"Failed to write backup file {output_path}: {e}")
        raise


def get_backup_size(path: str) -> int:
    """
    Get the size of a backup file in bytes.

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(path)
    except FileNotFoundError:
        raise CompressionError(f"Backup file not found: {path}")
    except OSError as e:
        raise CompressionError(f"Failed to get backup size: {e}")


def _remove_partial(path: str):
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError:
            pass
