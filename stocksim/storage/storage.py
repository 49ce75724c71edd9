"""Storage service interfaces and implementations.

Provides abstract key-value storage interface and JSON file-based
implementation for persisting application state.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when stored data cannot be read, written or removed."""


class IStorageService(ABC):
    """Abstract base class for storage services.

    Defines the interface for saving, loading, and deleting data
    with string keys.
    """

    @abstractmethod
    def save(self, key: str, data: Any) -> None:
        """Save data with the given key.

        Args:
            key: Unique identifier for the data
            data: JSON-serializable data to store
        """
        ...

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """Load data for the given key.

        Args:
            key: Unique identifier for the data

        Returns:
            The stored data, or None if not found
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete data for the given key.

        Args:
            key: Unique identifier for the data to delete
        """
        ...


class JsonFileStorage(IStorageService):
    """JSON file-based storage implementation.

    Stores each key as a separate JSON file in the specified base directory.
    Writes go to a temporary file in the same directory which then replaces
    the target, so a reader sees either the old or the new content.
    """

    def __init__(self, base_path: str | Path) -> None:
        """Initialize the JSON file storage.

        Args:
            base_path: Directory path where JSON files will be stored
        """
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _get_file_path(self, key: str) -> Path:
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._base_path / f"{safe_key}.json"

    def exists(self, key: str) -> bool:
        return self._get_file_path(key).exists()

    def save(self, key: str, data: Any) -> None:
        """Atomically save data to a JSON file.

        Args:
            key: Unique identifier for the data
            data: JSON-serializable data to store

        Raises:
            StorageError: If data is not JSON-serializable or cannot be written
        """
        file_path = self._get_file_path(key)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{file_path.stem}.", suffix=".tmp", dir=self._base_path
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, file_path)
        except (TypeError, ValueError, OSError) as e:
            logger.error(f"Failed to save data for key '{key}': {e}")
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise StorageError(f"Failed to save '{key}': {e}") from e

    def load(self, key: str) -> Optional[Any]:
        """Load data from a JSON file.

        Args:
            key: Unique identifier for the data

        Returns:
            The stored data, or None if the file doesn't exist

        Raises:
            StorageError: If the file is corrupted or unreadable
        """
        file_path = self._get_file_path(key)
        if not file_path.exists():
            return None

        try:
            with file_path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted data for key '{key}': {e}")
            raise StorageError(f"Corrupted data for '{key}': {e}") from e
        except OSError as e:
            logger.error(f"Failed to load data for key '{key}': {e}")
            raise StorageError(f"Failed to load '{key}': {e}") from e

    def delete(self, key: str) -> None:
        """Delete a JSON file for the given key.

        Args:
            key: Unique identifier for the data to delete

        Raises:
            StorageError: If the file exists but cannot be removed
        """
        file_path = self._get_file_path(key)
        try:
            if file_path.exists():
                file_path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete data for key '{key}': {e}")
            raise StorageError(f"Failed to delete '{key}': {e}") from e
