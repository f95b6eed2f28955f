# spebit/core/storage.py
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from fastapi import Request

from spebit.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def build_screenshot_key(user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Storage key for a payment screenshot: ``{user_id}/{timestamp}_{filename}``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_name = os.path.basename((filename or "").replace("\\", "/")) or "screenshot"
    return f"{user_id}/{timestamp_ms}_{safe_name}"


class ObjectStorage(ABC):
    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        pass


class LocalObjectStorage(ObjectStorage):
    """Stores objects as files under ``root``; ``public_base_url`` is where they are served."""

    def __init__(self, root: str, public_base_url: str = "/storage"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self._path_for(key)
        if path.exists():
            raise StorageError(f"Object already exists: {key}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(str(e)) from e
        logger.info(f"Stored {len(data)} bytes at {key} ({content_type})")
        return key

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(str(e)) from e
        logger.info(f"Deleted {key}")

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage
