"""Filesystem storage for uploaded document bytes."""

import logging
import os
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from pydantic import BaseModel

from .config import settings
from .errors import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class StoredFile(BaseModel):
    path: str
    file_name: str
    mime_type: str
    size: int


class LocalFileStorage:
    def __init__(self, root: Path, max_size: Optional[int] = None):
        self.root = Path(root)
        self.max_size = max_size

    def _new_path(self, original_name: str) -> Path:
        ext = os.path.splitext(original_name or "")[1]
        name = f"document-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
        return self.root / name

    def save(self, stream: BinaryIO, original_name: str, mime_type: Optional[str]) -> StoredFile:
        """Write an upload to disk; the file exists once this returns."""
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._new_path(original_name)
        size = 0
        with open(path, "wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if self.max_size is not None and size > self.max_size:
                    out.close()
                    self.delete(str(path))
                    raise ValidationError("File exceeds the maximum upload size")
                out.write(chunk)
        logger.debug("Stored upload %s at %s (%d bytes)", original_name, path, size)
        return StoredFile(
            path=str(path),
            file_name=original_name or path.name,
            mime_type=mime_type or "application/octet-stream",
            size=size,
        )

    def delete(self, path: str) -> bool:
        """Remove stored bytes; failures are logged and reported as False."""
        try:
            os.remove(path)
        except OSError as exc:
            logger.error("Error deleting file from filesystem at path %s: %s", path, exc)
            return False
        logger.info("File deleted from filesystem: %s", path)
        return True

    def exists(self, path: str) -> bool:
        return bool(path) and os.path.isfile(path)


_storage: Optional[LocalFileStorage] = None


def get_storage() -> LocalFileStorage:
    global _storage
    if _storage is None:
        _storage = LocalFileStorage(settings.upload_dir, max_size=settings.max_upload_size_mb * 1024 * 1024)
    return _storage
