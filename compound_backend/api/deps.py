from __future__ import annotations

from fastapi import HTTPException, Request, status

from compound_backend.features.compounds.service import CompoundRepository
from compound_backend.storage.object_store import ObjectStorage


def get_repository(request: Request) -> CompoundRepository:
    repository = getattr(request.app.state, "compound_repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Compound store is not initialised",
        )
    return repository


def get_object_storage(request: Request) -> ObjectStorage:
    storage = getattr(request.app.state, "object_storage", None)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Object storage is not initialised",
        )
    return storage
