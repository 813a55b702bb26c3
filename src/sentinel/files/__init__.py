"""
File attachments for cases and patrons.
"""

from sentinel.files.service import (
    AttachmentService,
    CopyResult,
    ExportResult,
    case_file_path,
    clean_filename,
    patron_file_path,
)

__all__ = [
    "AttachmentService",
    "CopyResult",
    "ExportResult",
    "case_file_path",
    "clean_filename",
    "patron_file_path",
]
