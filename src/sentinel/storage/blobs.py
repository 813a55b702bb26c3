"""
Blob storage for case files, patron files, avatars and templates.

Blobs live under {storage_root}/{bucket}/{path} on the local filesystem.
File I/O runs in worker threads so request handlers stay responsive.
"""

import asyncio
import logging
import mimetypes
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)


CASE_FILES_BUCKET = "case-files"
PATRON_FILES_BUCKET = "patron-files"
AVATARS_BUCKET = "avatars"
TEMPLATES_BUCKET = "templates"

BUCKETS = (CASE_FILES_BUCKET, PATRON_FILES_BUCKET, AVATARS_BUCKET, TEMPLATES_BUCKET)


class BlobStoreError(Exception):
    """Raised when a blob operation fails."""
    pass


class BlobNotFoundError(BlobStoreError):
    def __init__(self, bucket: str, path: str):
        self.bucket = bucket
        self.path = path
        super().__init__(f"Object not found: {bucket}/{path}")


class BlobExistsError(BlobStoreError):
    def __init__(self, bucket: str, path: str):
        self.bucket = bucket
        self.path = path
        super().__init__(f"Object already exists: {bucket}/{path}")


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or "application/octet-stream"


class BlobStore:
    """Filesystem-backed blob store with named buckets."""

    def __init__(self, root: Path, public_base_url: str = ""):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        """
        Map bucket/path to a file location.

        Raises:
            ValueError: For unknown buckets or paths that escape the bucket
        """
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown bucket: {bucket}")
        pure = PurePosixPath(path)
        if not path or pure.is_absolute() or ".." in pure.parts or "\x00" in path:
            raise ValueError(f"Invalid object path: {path!r}")
        return self.root / bucket / Path(*pure.parts)

    def ensure_buckets(self) -> None:
        for bucket in BUCKETS:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        upsert: bool = False,
    ) -> str:
        """
        Store bytes at bucket/path.

        Raises:
            BlobExistsError: If the object exists and upsert is False
        """
        target = self._resolve(bucket, path)

        def _write() -> None:
            if target.exists() and not upsert:
                raise BlobExistsError(bucket, path)
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(f".{target.name}.tmp")
            tmp.write_bytes(data)
            os.replace(tmp, target)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise BlobStoreError(f"Upload failed for {bucket}/{path}: {e}") from e

        logger.debug(
            f"Stored {bucket}/{path} ({len(data)} bytes, "
            f"{content_type or guess_content_type(path)})"
        )
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        """
        Raises:
            BlobNotFoundError: If nothing is stored at bucket/path
        """
        target = self._resolve(bucket, path)

        def _read() -> bytes:
            if not target.is_file():
                raise BlobNotFoundError(bucket, path)
            return target.read_bytes()

        try:
            return await asyncio.to_thread(_read)
        except OSError as e:
            raise BlobStoreError(f"Download failed for {bucket}/{path}: {e}") from e

    async def exists(self, bucket: str, path: str) -> bool:
        target = self._resolve(bucket, path)
        return await asyncio.to_thread(target.is_file)

    async def remove(self, bucket: str, paths: Iterable[str]) -> None:
        """Delete objects. Paths that do not exist are ignored."""
        targets = [self._resolve(bucket, p) for p in paths]

        def _remove() -> None:
            for target in targets:
                target.unlink(missing_ok=True)

        try:
            await asyncio.to_thread(_remove)
        except OSError as e:
            raise BlobStoreError(f"Remove failed in {bucket}: {e}") from e

    def public_url(self, bucket: str, path: str) -> str:
        self._resolve(bucket, path)
        return f"{self.public_base_url}/storage/{bucket}/{quote(path)}"
