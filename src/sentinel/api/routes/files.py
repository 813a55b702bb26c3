"""
File attachment API routes.

Case files, patron files, the per-case zip export and the manual
save-to-patron copy.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel

from sentinel.api.deps import AppSettings, Attachments
from sentinel.cases.views import StoredFileView
from sentinel.workflow.states import CaseKind

logger = logging.getLogger(__name__)

router = APIRouter()


class CopyFailure(BaseModel):
    file_name: str
    error: str


class CopyResponse(BaseModel):
    copied: list[str]
    skipped: list[str]
    failed: list[CopyFailure]


async def _read_upload(upload: UploadFile, max_bytes: int) -> bytes:
    data = await upload.read()
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds maximum size of {max_bytes // (1024 * 1024)}MB",
        )
    return data


def _attachment(data: bytes, file_name: str, content_type: str) -> Response:
    return Response(
        content=data,
        media_type=content_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


# Case files

@router.get("/cases/{kind}/{case_id}/files", response_model=list[StoredFileView])
async def list_case_files(kind: CaseKind, case_id: str, attachments: Attachments):
    return await attachments.list_case_files(kind, case_id)


@router.post(
    "/cases/{kind}/{case_id}/files",
    response_model=StoredFileView,
    status_code=status.HTTP_201_CREATED,
)
async def upload_case_file(
    kind: CaseKind,
    case_id: str,
    attachments: Attachments,
    settings: AppSettings,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
):
    """Attach a file to a case at {caseId}/{filename}."""
    data = await _read_upload(file, settings.max_upload_bytes)
    return await attachments.upload_case_file(
        kind,
        case_id,
        file.filename,
        data,
        content_type=file.content_type,
        description=description,
    )


@router.get("/files/case/{file_id}")
async def download_case_file(file_id: UUID, attachments: Attachments):
    record, data = await attachments.download_case_file(file_id)
    return _attachment(data, record.file_name, record.file_type)


@router.delete("/files/case/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_case_file(file_id: UUID, attachments: Attachments):
    await attachments.delete_case_file(file_id)


@router.get("/cases/{kind}/{case_id}/export")
async def export_case_files(kind: CaseKind, case_id: str, attachments: Attachments):
    """Download every case file as one zip archive."""
    export = await attachments.export_case_zip(kind, case_id)
    response = _attachment(export.content, export.filename, "application/zip")
    if export.skipped:
        response.headers["X-Skipped-Files"] = str(len(export.skipped))
    return response


@router.post("/cases/{kind}/{case_id}/save-to-patron", response_model=CopyResponse)
async def save_to_patron(kind: CaseKind, case_id: str, attachments: Attachments):
    """Copy case files (except AML Threshold worksheets) into the patron record."""
    result = await attachments.save_to_patron_database(kind, case_id)
    return CopyResponse(
        copied=result.copied,
        skipped=result.skipped,
        failed=[CopyFailure(file_name=k, error=v) for k, v in result.failed.items()],
    )


# Patron files

@router.get("/patrons/{patron_id}/files", response_model=list[StoredFileView])
async def list_patron_files(patron_id: UUID, attachments: Attachments):
    return await attachments.list_patron_files(patron_id)


@router.post(
    "/patrons/{patron_id}/files",
    response_model=StoredFileView,
    status_code=status.HTTP_201_CREATED,
)
async def upload_patron_file(
    patron_id: UUID,
    attachments: Attachments,
    settings: AppSettings,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
):
    data = await _read_upload(file, settings.max_upload_bytes)
    return await attachments.upload_patron_file(
        patron_id,
        file.filename,
        data,
        content_type=file.content_type,
        description=description,
    )


@router.get("/files/patron/{file_id}")
async def download_patron_file(file_id: UUID, attachments: Attachments):
    record, data = await attachments.download_patron_file(file_id)
    return _attachment(data, record.file_name, record.file_type)


@router.delete("/files/patron/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patron_file(file_id: UUID, attachments: Attachments):
    await attachments.delete_patron_file(file_id)
