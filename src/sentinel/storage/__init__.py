"""
Blob storage for Sentinel.
"""

from sentinel.storage.blobs import (
    AVATARS_BUCKET,
    CASE_FILES_BUCKET,
    PATRON_FILES_BUCKET,
    TEMPLATES_BUCKET,
    BlobExistsError,
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    guess_content_type,
)

__all__ = [
    "AVATARS_BUCKET",
    "CASE_FILES_BUCKET",
    "PATRON_FILES_BUCKET",
    "TEMPLATES_BUCKET",
    "BlobExistsError",
    "BlobNotFoundError",
    "BlobStore",
    "BlobStoreError",
    "guess_content_type",
]
