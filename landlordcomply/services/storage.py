"""
Local file store for generated PDFs and uploaded evidence.

Files live under settings.upload_dir as
    <user_id>/<case_id>/<kind>/<name>
and rows keep the path relative to that root.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Optional

from landlordcomply.core.config import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """Strip directories and anything outside [A-Za-z0-9._-]."""
    base = Path(name or "file").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "file"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class LocalFileStore:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or get_settings().upload_dir).resolve()

    def _resolve(self, relative_path: str) -> Path:
        path = (self.root / relative_path).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Path escapes storage root: {relative_path}")
        return path

    def save(self, relative_path: str, data: bytes) -> str:
        path = self._resolve(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), relative_path)
        return relative_path

    def read(self, relative_path: str) -> bytes:
        """Raises FileNotFoundError when the file is gone."""
        return self._resolve(relative_path).read_bytes()

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).is_file()

    def delete(self, relative_path: str) -> bool:
        path = self._resolve(relative_path)
        if path.is_file():
            path.unlink()
            return True
        return False


_file_store: Optional[LocalFileStore] = None


def get_file_store() -> LocalFileStore:
    """Get or create the file store singleton."""
    global _file_store
    if _file_store is None:
        _file_store = LocalFileStore()
    return _file_store
