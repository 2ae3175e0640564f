"""File storage collaborator for uploaded label images."""

from __future__ import annotations

import os
import time
from typing import Optional

from werkzeug.utils import secure_filename

from ..config import DEFAULT_MAX_UPLOAD_BYTES
from ..errors import StorageError
from ..logging import get_logger

LOG = get_logger("orchestrator-storage")

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}


class UploadTooLarge(StorageError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Upload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


def safe_upload_name(name: str) -> str:
    """ASCII basename of the client filename; "upload" when nothing survives."""
    return secure_filename(name or "") or "upload"


class UploadStore:
    """Writes uploads as ``<epoch-millis>-<name>`` under one directory.

    The returned stored name is the opaque reference kept on the record.
    """

    def __init__(self, upload_dir: str, *, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
        self.upload_dir = os.path.abspath(upload_dir)
        self.max_bytes = max_bytes
        os.makedirs(self.upload_dir, exist_ok=True)

    def save(self, filename: str, data: bytes, *, now_ms: Optional[int] = None) -> str:
        self.check_size(len(data))
        safe = safe_upload_name(filename)
        ext = os.path.splitext(safe)[1].lower()
        if ext and ext not in ALLOWED_EXTENSIONS:
            LOG.warning(f"Unexpected upload extension {ext!r}; storing anyway")
        stamp = now_ms if now_ms is not None else int(time.time() * 1000)
        stored = f"{stamp}-{safe}"
        try:
            with open(self.path_for(stored), "wb") as f:
                f.write(data)
        except OSError as exc:
            raise StorageError(f"Could not store upload {stored}: {exc}") from exc
        LOG.info(f"Stored upload {stored} ({len(data)} bytes)")
        return stored

    def check_size(self, size: int) -> None:
        if size > self.max_bytes:
            raise UploadTooLarge(size, self.max_bytes)

    def path_for(self, stored_name: str) -> str:
        return os.path.join(self.upload_dir, os.path.basename(stored_name))

    def remove(self, stored_name: str) -> None:
        try:
            os.remove(self.path_for(stored_name))
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOG.warning(f"Could not remove {stored_name}: {exc}")
