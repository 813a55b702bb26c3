"""
File Attachment Service.

Associates uploaded artifacts with a case or patron, and moves them
between the two:
- Case files live in the case-files bucket at {caseId}/{filename}
- Patron files live in the patron-files bucket at {patronId}/{timestamp}-{filename}
- On submission every case file is copied into the patron's record

Blob writes and metadata writes are separate steps and are not
transactional with each other.
"""

import io
import logging
import time
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.db.orm import CaseFile, CaseRecord, PatronFile, utcnow
from sentinel.db.repositories import (
    CaseFileRepository,
    CaseRepository,
    PatronFileRepository,
    PatronRepository,
)
from sentinel.errors import PatronNotFoundError
from sentinel.security.auth import User
from sentinel.storage.blobs import (
    CASE_FILES_BUCKET,
    PATRON_FILES_BUCKET,
    BlobStore,
    BlobStoreError,
    guess_content_type,
)
from sentinel.workflow.states import CaseKind

logger = logging.getLogger(__name__)

AML_THRESHOLD_MARKER = "AML Threshold"


def clean_filename(filename: Optional[str]) -> str:
    """
    Reduce an uploaded name to its final path component.

    Raises:
        ValueError: If nothing usable remains
    """
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    if not name or name in {".", ".."}:
        raise ValueError("A file name is required")
    return name


def case_file_path(case_id: str, filename: str) -> str:
    return f"{case_id}/{filename}"


def patron_file_path(patron_id: UUID, filename: str, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{patron_id}/{timestamp_ms}-{filename}"


def export_folder_name(case: CaseRecord) -> str:
    return f"{case.case_id}_{case.first_name}_{case.last_name}"


@dataclass
class CopyResult:
    """Outcome of copying case files into a patron record."""

    copied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "copied": self.copied,
            "skipped": self.skipped,
            "failed": [{"file_name": k, "error": v} for k, v in self.failed.items()],
        }


@dataclass
class ExportResult:
    """A case archive ready for download."""

    filename: str
    content: bytes
    included: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class AttachmentService:
    """Uploads, downloads, deletes and copies case and patron files."""

    def __init__(self, session: AsyncSession, blobs: BlobStore, user: Optional[User] = None):
        self.session = session
        self.blobs = blobs
        self.user = user
        self.case_files = CaseFileRepository(session)
        self.patron_files = PatronFileRepository(session)
        self.patrons = PatronRepository(session)

    @property
    def _user_id(self) -> Optional[UUID]:
        return UUID(self.user.id) if self.user else None

    # Case files

    async def upload_case_file(
        self,
        kind: CaseKind,
        case_id: str,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        upsert: bool = False,
        description: Optional[str] = None,
    ) -> CaseFile:
        """
        Store a file against a case and record its metadata.

        Raises:
            CaseNotFoundError: If the case does not exist
            BlobExistsError: If a file with that name is already attached and upsert is False
        """
        await CaseRepository(self.session, kind).require(case_id)

        name = clean_filename(filename)
        path = case_file_path(case_id, name)
        file_type = content_type or guess_content_type(name)

        await self.blobs.upload(CASE_FILES_BUCKET, path, data, file_type, upsert=upsert)

        existing = await self.case_files.get_by_path(kind, case_id, path) if upsert else None
        if existing is not None:
            existing.file_size = len(data)
            existing.file_type = file_type
            existing.last_modified = utcnow()
            await self.session.flush()
            logger.info(f"Replaced {path} on {kind.label} {case_id}")
            return existing

        record = await self.case_files.create(
            kind=kind,
            case_id=case_id,
            file_name=name,
            file_path=path,
            file_size=len(data),
            file_type=file_type,
            user_id=self._user_id,
            description=description,
        )
        logger.info(f"Attached {name} to {kind.label} {case_id}")
        return record

    async def list_case_files(self, kind: CaseKind, case_id: str) -> list[CaseFile]:
        return await self.case_files.list_for_case(kind, case_id)

    async def download_case_file(self, file_id: UUID) -> tuple[CaseFile, bytes]:
        record = await self.case_files.require(file_id)
        data = await self.blobs.download(CASE_FILES_BUCKET, record.file_path)
        return record, data

    async def delete_case_file(self, file_id: UUID) -> CaseFile:
        """Remove the blob, then the metadata row."""
        record = await self.case_files.require(file_id)
        await self.blobs.remove(CASE_FILES_BUCKET, [record.file_path])
        await self.case_files.delete(record)
        logger.info(f"Deleted {record.file_path} from {record.kind.label} {record.case_id}")
        return record

    async def export_case_zip(self, kind: CaseKind, case_id: str) -> ExportResult:
        """
        Bundle every file on a case into one zip archive.

        Files are placed under {caseId}_{firstName}_{lastName}/. A file that
        cannot be downloaded is logged and left out of the archive.
        """
        case = await CaseRepository(self.session, kind).require(case_id)
        folder = export_folder_name(case)
        records = await self.case_files.list_for_case(kind, case_id)

        included: list[str] = []
        skipped: list[str] = []
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for record in records:
                try:
                    data = await self.blobs.download(CASE_FILES_BUCKET, record.file_path)
                except BlobStoreError as e:
                    logger.error(f"Error downloading {record.file_name} for export: {e}")
                    skipped.append(record.file_name)
                    continue
                archive.writestr(f"{folder}/{record.file_name}", data)
                included.append(record.file_name)

        logger.info(
            f"Exported {len(included)} file(s) for {kind.label} {case_id}"
            + (f", skipped {len(skipped)}" if skipped else "")
        )
        return ExportResult(
            filename=f"{folder}.zip",
            content=buffer.getvalue(),
            included=included,
            skipped=skipped,
        )

    # Case -> patron copies

    async def copy_case_files_to_patron(
        self,
        case: CaseRecord,
        skip_name_containing: Optional[str] = None,
    ) -> CopyResult:
        """
        Copy every file on a case into its patron's record.

        Each copy gets its own timestamped path, so files with the same
        name from different cases never replace each other. Best effort:
        a file that fails is logged and recorded in the result, and its
        metadata row is rolled back to a savepoint. The remaining files
        are still copied.
        """
        result = CopyResult()
        if case.patron_id is None:
            logger.info(f"{case.kind.label} {case.case_id} has no patron; nothing to copy")
            return result

        records = await self.case_files.list_for_case(case.kind, case.case_id)
        for record in records:
            if skip_name_containing and skip_name_containing in record.file_name:
                result.skipped.append(record.file_name)
                continue
            try:
                data = await self.blobs.download(CASE_FILES_BUCKET, record.file_path)
                target = await self._free_patron_path(case.patron_id, record.file_name)
                await self.blobs.upload(PATRON_FILES_BUCKET, target, data, record.file_type)
            except (BlobStoreError, ValueError) as e:
                logger.error(f"Error copying file {record.file_name}: {e}")
                result.failed[record.file_name] = str(e)
                continue
            try:
                async with self.session.begin_nested():
                    await self.patron_files.create(
                        patron_id=case.patron_id,
                        file_name=record.file_name,
                        file_path=target,
                        file_size=record.file_size,
                        file_type=record.file_type,
                        user_id=self._user_id,
                        last_modified=record.last_modified,
                        description=f"Copied from {case.kind.label} {case.case_id}",
                    )
            except SQLAlchemyError as e:
                logger.error(f"Error recording file {record.file_name}: {e}")
                await self.blobs.remove(PATRON_FILES_BUCKET, [target])
                result.failed[record.file_name] = str(e)
                continue
            result.copied.append(record.file_name)

        return result

    async def _free_patron_path(self, patron_id: UUID, filename: str) -> str:
        """A patron file path no existing blob occupies."""
        timestamp_ms = int(time.time() * 1000)
        path = patron_file_path(patron_id, filename, timestamp_ms)
        while await self.blobs.exists(PATRON_FILES_BUCKET, path):
            timestamp_ms += 1
            path = patron_file_path(patron_id, filename, timestamp_ms)
        return path

    async def save_to_patron_database(self, kind: CaseKind, case_id: str) -> CopyResult:
        """
        Manually copy a case's files into the patron record.

        AML Threshold worksheets stay with the case.

        Raises:
            CaseNotFoundError: If the case does not exist
            PatronNotFoundError: If the case is not linked to a patron
        """
        case = await CaseRepository(self.session, kind).require(case_id)
        if case.patron_id is None:
            raise PatronNotFoundError(f"for {kind.label} {case_id}")
        return await self.copy_case_files_to_patron(
            case, skip_name_containing=AML_THRESHOLD_MARKER
        )

    # Patron files

    async def upload_patron_file(
        self,
        patron_id: UUID,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PatronFile:
        """
        Raises:
            PatronNotFoundError: If the patron does not exist
        """
        await self.patrons.require(patron_id)

        name = clean_filename(filename)
        path = patron_file_path(patron_id, name)
        file_type = content_type or guess_content_type(name)

        await self.blobs.upload(PATRON_FILES_BUCKET, path, data, file_type)
        record = await self.patron_files.create(
            patron_id=patron_id,
            file_name=name,
            file_path=path,
            file_size=len(data),
            file_type=file_type,
            user_id=self._user_id,
            description=description or None,
        )
        logger.info(f"Added {name} to patron {patron_id}")
        return record

    async def list_patron_files(self, patron_id: UUID) -> list[PatronFile]:
        return await self.patron_files.list_for_patron(patron_id)

    async def download_patron_file(self, file_id: UUID) -> tuple[PatronFile, bytes]:
        record = await self.patron_files.require(file_id)
        data = await self.blobs.download(PATRON_FILES_BUCKET, record.file_path)
        return record, data

    async def delete_patron_file(self, file_id: UUID) -> PatronFile:
        """Remove the blob, then the metadata row."""
        record = await self.patron_files.require(file_id)
        await self.blobs.remove(PATRON_FILES_BUCKET, [record.file_path])
        await self.patron_files.delete(record)
        logger.info(f"Deleted {record.file_path} from patron {record.patron_id}")
        return record
