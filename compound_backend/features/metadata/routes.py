import logging

from fastapi import APIRouter, Depends, HTTPException, status

from compound_backend.api.deps import get_repository
from compound_backend.api.responses import success
from compound_backend.core.observability import timing_dependency_factory
from compound_backend.features.compounds.service import METADATA_KINDS, CompoundRepository

logger = logging.getLogger(__name__)

timing_dependency = timing_dependency_factory("compound_backend.features.metadata")

router = APIRouter(dependencies=[Depends(timing_dependency)])


@router.get("/{kind}")
async def list_distinct_values(kind: str, repository: CompoundRepository = Depends(get_repository)):
    """Distinct non-empty values used to populate selection lists."""

    if kind not in METADATA_KINDS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown metadata list '{kind}'")
    values = await repository.distinct_values(kind)
    logger.info("meta.list kind=%s count=%s", kind, len(values))
    return success(values)
