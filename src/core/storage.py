"""
Staging Storage Abstraction Layer

Holds raw inbound images between intake and the queue worker. Each
staging artifact is written once, read once and deleted once by the job
that owns it.
"""

import re
import uuid
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from src.core.config import settings
from src.core.exceptions import StagingNotFoundError, StorageError
from src.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class IStaging(ABC):
    """Interface for staging operations."""

    @abstractmethod
    def write(self, data: bytes, filename: str) -> str:
        """
        Persist raw bytes and return a staging key.

        Args:
            data: Raw bytes of the image
            filename: Suggested filename (sanitized by the implementation)

        Returns:
            Staging key accepted by read() and delete()
        """
        pass

    @abstractmethod
    def read(self, staging_key: str) -> bytes:
        """Read the artifact. Raises StagingNotFoundError when absent."""
        pass

    @abstractmethod
    def delete(self, staging_key: str) -> bool:
        """
        Delete the artifact.

        Returns:
            True if a file was removed, False if it was already gone
        """
        pass

    @abstractmethod
    def exists(self, staging_key: str) -> bool:
        """Check if an artifact exists."""
        pass


_IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def staging_filename(event_id: str, mimetype: Optional[str]) -> str:
    """Build `<event_id>.<ext>` from the media MIME type."""
    mimetype = (mimetype or "").split(";")[0].strip().lower()
    ext = _IMAGE_EXTENSIONS.get(mimetype) or mimetypes.guess_extension(mimetype) or ""
    return f"{event_id}{ext}"


class LocalStagingStorage(IStaging):
    """Local filesystem staging directory."""

    def __init__(self, base_path: str = "./temp"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_unique_filename(self, filename: str) -> str:
        """Sanitize and suffix the filename so concurrent events never collide."""
        path = Path(_UNSAFE_CHARS.sub("_", filename) or "image")
        unique_id = uuid.uuid4().hex[:8]
        return f"{path.stem}_{unique_id}{path.suffix}"

    def _path(self, staging_key: str) -> Path:
        path = (self.base_path / staging_key).resolve()
        if path.parent != self.base_path.resolve():
            raise StorageError(f"Invalid staging key: {staging_key}")
        return path

    def write(self, data: bytes, filename: str) -> str:
        staging_key = self._get_unique_filename(filename)
        try:
            with open(self.base_path / staging_key, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write staging file: {e}")

        logger.debug("staging_written", staging_key=staging_key, size=len(data))
        return staging_key

    def read(self, staging_key: str) -> bytes:
        try:
            with open(self._path(staging_key), "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise StagingNotFoundError(staging_key)

    def delete(self, staging_key: str) -> bool:
        try:
            self._path(staging_key).unlink()
        except FileNotFoundError:
            return False
        logger.debug("staging_deleted", staging_key=staging_key)
        return True

    def exists(self, staging_key: str) -> bool:
        return self._path(staging_key).exists()


class StagingFactory:
    """Factory for the process-wide staging storage."""

    _instance: Optional[IStaging] = None

    @classmethod
    def get_staging(cls) -> IStaging:
        if cls._instance is None:
            cls._instance = LocalStagingStorage(base_path=settings.STAGING_PATH)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None


def get_staging() -> IStaging:
    """Get the staging instance - ready for FastAPI Depends()."""
    return StagingFactory.get_staging()
