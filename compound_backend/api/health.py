"""Health and diagnostics endpoints for infrastructure dependencies."""
from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from compound_backend.features.compounds.service import CompoundRepository
from compound_backend.storage.object_store import ObjectStorage, StorageError

from .deps import get_object_storage, get_repository

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", summary="Process liveness")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


@router.get("/database", summary="Inspect Postgres connectivity")
async def database_health(repository: CompoundRepository = Depends(get_repository)) -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        await repository.ping()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database ping failed: {exc}") from exc
    latency_ms = (time.perf_counter() - start) * 1000
    return {"status": "ok", "latency_ms": latency_ms}


@router.get("/storage", summary="Inspect object storage connectivity")
async def storage_health(storage: ObjectStorage = Depends(get_object_storage)) -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        await run_in_threadpool(storage.bucket_reachable)
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=f"Bucket {storage.bucket} unreachable: {exc}") from exc
    latency_ms = (time.perf_counter() - start) * 1000
    return {"status": "ok", "bucket": storage.bucket, "latency_ms": latency_ms}
