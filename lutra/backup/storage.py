"""
Local storage for backup files.

Layout under the backup root:
    {base_path}/{target_name}/{filename}
    {base_path}/backup-history.json
"""

from pathlib import Path


class StorageError(Exception):
    """Raised when a storage operation fails."""
    pass


class LocalStorage:
    """
    Handler for backup files in the local backup directory.
    """

    def __init__(self, base_path: str):
        """
        Args:
            base_path: Backup root directory
        """
        self.base_path = Path(base_path)

    def target_directory(self, target_name: str) -> Path:
        """
        Ensure the target's directory exists and return it.

        Raises:
            StorageError: If the directory cannot be created
        """
        target_dir = self.base_path / target_name

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise StorageError(f"Permission denied creating {target_dir}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {target_dir}: {e}")

        return target_dir

    def get_full_path(self, target_name: str, filename: str) -> str:
        """Full filesystem path of a target's backup file."""
        return str(self.base_path / target_name / filename)

    def delete(self, target_name: str, filename: str) -> bool:
        """
        Delete a backup file if it exists.

        Returns:
            True if a file was removed, False if it was already missing

        Raises:
            StorageError: If deletion fails
        """
        full_path = self.base_path / target_name / filename

        try:
            if full_path.is_file():
                full_path.unlink()
                return True
            return False
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete backup file {full_path}: {e}")
