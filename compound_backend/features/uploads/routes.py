"""REST endpoints for storing spectra, structure images and attachments."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import FrozenSet, List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from compound_backend.api.deps import get_object_storage
from compound_backend.api.responses import success
from compound_backend.config import get_settings
from compound_backend.core.observability import timing_dependency_factory
from compound_backend.features.compounds.reconciliation import remove_references
from compound_backend.storage.object_store import ObjectStorage, StorageError

from .schemas import FileDeleteRequest, FileDeleteResult, UploadedFile

logger = logging.getLogger(__name__)

timing_dependency = timing_dependency_factory("compound_backend.features.uploads")

router = APIRouter(prefix="/uploads", tags=["Uploads"], dependencies=[Depends(timing_dependency)])

_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
SINGLE_UPLOAD_TYPES: FrozenSet[str] = _IMAGE_TYPES | {
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
MULTIPLE_UPLOAD_TYPES: FrozenSet[str] = _IMAGE_TYPES | {"application/pdf", "text/plain"}


def _content_type(file: UploadFile) -> str:
    declared = (file.content_type or "").split(";")[0].strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    return (mimetypes.guess_type(file.filename or "")[0] or "application/octet-stream").lower()


def build_object_key(original: str, content_type: str) -> str:
    """``<uuid><extension>``; the extension comes from the name or the content type."""

    extension = Path(original or "").suffix.lower()
    if not extension:
        extension = (mimetypes.guess_extension(content_type or "") or "").lower()
    return f"{uuid.uuid4()}{extension}"


async def _store(file: UploadFile, allowed: FrozenSet[str], storage: ObjectStorage) -> UploadedFile:
    settings = get_settings()
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")

    content_type = _content_type(file)
    if content_type not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type {content_type} is not allowed",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file was empty")
    if len(content) > settings.upload_max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File exceeds the {settings.upload_max_bytes // (1024 * 1024)}MB limit",
        )

    key = build_object_key(file.filename, content_type)
    try:
        reference = await run_in_threadpool(storage.put_bytes, key, content, content_type)
    except StorageError as exc:
        logger.error("uploads.put_failed filename=%s key=%s error=%s", file.filename, key, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to upload file to storage",
        ) from exc

    logger.info("uploads.stored key=%s size=%s mimetype=%s", key, len(content), content_type)
    return UploadedFile(
        url=reference,
        filename=key,
        originalName=file.filename,
        size=len(content),
        mimetype=content_type,
    )


async def _require_bucket(storage: ObjectStorage) -> None:
    if not await run_in_threadpool(storage.ensure_bucket):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="File storage bucket is unavailable",
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Store one file and return its bucket-relative reference."""

    await _require_bucket(storage)
    uploaded = await _store(file, SINGLE_UPLOAD_TYPES, storage)
    return success(uploaded.model_dump())


@router.post("/multiple", status_code=status.HTTP_201_CREATED)
async def upload_files(
    files: List[UploadFile] = File(...),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Store up to ``upload_max_files`` files in one request."""

    max_files = get_settings().upload_max_files
    if len(files) > max_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {max_files} files can be uploaded at once",
        )

    await _require_bucket(storage)
    uploaded: List[UploadedFile] = []
    for file in files:
        uploaded.append(await _store(file, MULTIPLE_UPLOAD_TYPES, storage))
    return success([item.model_dump() for item in uploaded])


@router.delete("")
async def delete_file(body: FileDeleteRequest, storage: ObjectStorage = Depends(get_object_storage)):
    """Best-effort removal; the outcome is reported rather than raised."""

    report = await remove_references(storage, [body.url])
    result = FileDeleteResult(**report.as_dicts()[0])
    return success(result.model_dump())
