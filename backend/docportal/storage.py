# Overview: Blob store adapter for document contents.

"""
Filesystem blob store.

Paths are opaque relative keys chosen by the document service
("<sede_id>/<random hex><ext>"), never client filenames. put() writes through
a temporary file and renames, so readers never see a half-written blob.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from flask import current_app

from .errors import NotFoundError, TransientError, ValidationError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "docportal.blob_store"


class BlobNotFound(NotFoundError):
    """Raised when a blob path has no content."""


class FilesystemBlobStore:
    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        if not path or path.startswith(("/", "\\")) or ".." in Path(path).parts:
            raise ValidationError("Invalid blob path")
        full = (self.root / path).resolve()
        if self.root not in full.parents:
            raise ValidationError("Invalid blob path")
        return full

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("Blob write failed for %s: %s", path, exc)
            raise TransientError("Blob store unavailable, retry later") from exc
        return path

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFound("Document content not found") from exc
        except OSError as exc:
            logger.error("Blob read failed for %s: %s", path, exc)
            raise TransientError("Blob store unavailable, retry later") from exc

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            raise BlobNotFound("Document content not found") from exc
        except OSError as exc:
            logger.error("Blob delete failed for %s: %s", path, exc)
            raise TransientError("Blob store unavailable, retry later") from exc


def build_blob_store(app) -> FilesystemBlobStore:
    root = app.config.get("BLOB_STORAGE_DIR") or "blobs"
    if not os.path.isabs(root):
        root = os.path.join(app.instance_path, root)
    return FilesystemBlobStore(root)


def current_blob_store():
    return current_app.extensions[EXTENSION_KEY]
