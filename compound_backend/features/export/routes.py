"""Download a compound as a formatted Excel workbook."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from starlette.concurrency import run_in_threadpool

from compound_backend.api.deps import get_repository
from compound_backend.api.responses import error_response
from compound_backend.config import get_settings
from compound_backend.core.observability import timing_dependency_factory
from compound_backend.features.compounds.service import CompoundRepository

from .images import ImageResolver
from .service import (
    XLSX_MEDIA_TYPE,
    ExportGenerationError,
    build_compound_workbook,
    content_disposition,
    export_filename,
)

logger = logging.getLogger(__name__)

timing_dependency = timing_dependency_factory("compound_backend.features.export")

router = APIRouter(tags=["Export"], dependencies=[Depends(timing_dependency)])


@router.get("/compounds/{compound_id}/export")
async def export_compound(compound_id: str, repository: CompoundRepository = Depends(get_repository)):
    compound = await repository.get_by_id(compound_id)
    if compound is None:
        return error_response(status.HTTP_404_NOT_FOUND, "Compound not found")

    settings = get_settings()
    resolver = ImageResolver(
        repository.storage,
        timeout=settings.export_image_timeout_seconds,
        max_size_mb=settings.export_image_max_mb,
    )
    try:
        content = await run_in_threadpool(build_compound_workbook, compound, resolver)
    except ExportGenerationError as exc:
        logger.error("export.failed id=%s error=%s", compound_id, exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate Excel file")

    filename = export_filename(compound)
    logger.info("export.ready id=%s filename=%s bytes=%s", compound_id, filename, len(content))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": content_disposition(filename)},
    )
