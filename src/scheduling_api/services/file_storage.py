"""Local disk storage for uploaded bulk import files."""

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Optional, Tuple

from scheduling_api.config import UploadSettings, get_settings
from scheduling_api.exceptions import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass
class StoredFile:
    """A file written to the upload directory."""

    file_name: str
    path: str
    size: int


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


class FileStorage:
    """Writes, locates and removes uploaded files under one directory."""

    def __init__(self, directory: str, max_file_size_bytes: int):
        self.directory = Path(directory)
        self.max_file_size_bytes = max_file_size_bytes

    @classmethod
    def from_settings(cls, settings: Optional[UploadSettings] = None) -> "FileStorage":
        settings = settings or get_settings().upload
        return cls(settings.directory, settings.max_file_size_bytes)

    def build_file_name(self, user_id: str, original_name: str, millis: Optional[int] = None) -> str:
        """``{epoch millis}-{user id}-{sanitized original name}``."""
        if millis is None:
            millis = int(time.time() * 1000)
        return f"{millis}-{user_id}-{sanitize_file_name(original_name)}"

    def _create_unique(self, user_id: str, original_name: str) -> Tuple[str, Path, BinaryIO]:
        """Open a new file exclusively, moving the timestamp forward on a name clash."""
        millis = int(time.time() * 1000)
        while True:
            file_name = self.build_file_name(user_id, original_name, millis)
            path = self.directory / file_name
            try:
                return file_name, path, open(path, "xb")
            except FileExistsError:
                millis += 1

    async def save(self, upload: Any, user_id: str) -> StoredFile:
        """
        Stream an uploaded file to disk, enforcing the size limit.

        Args:
            upload: Object with ``filename`` and an async ``read(size)``
            user_id: Uploader id, embedded in the stored name

        Raises:
            ValidationError: the file exceeds the size limit
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        file_name, path, handle = self._create_unique(user_id, upload.filename or "upload")
        size = 0
        try:
            with handle:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_file_size_bytes:
                        raise ValidationError(
                            f"File size too large. Maximum size is "
                            f"{self.max_file_size_bytes // (1024 * 1024)}MB"
                        )
                    handle.write(chunk)
        except Exception:
            self.delete(str(path))
            raise
        logger.info(f"Stored upload {file_name} ({size} bytes)")
        return StoredFile(file_name=file_name, path=str(path), size=size)

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def delete(self, path: str) -> bool:
        """Remove a stored file. Returns False if it was already gone."""
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to delete stored file {path}: {e}")
            return False
