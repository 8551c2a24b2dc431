import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from compound_backend.api.deps import get_repository
from compound_backend.api.responses import error_response, success
from compound_backend.config import get_settings
from compound_backend.core.observability import timing_dependency_factory

from .queries import CompoundFilters
from .schemas import CompoundCreate, CompoundUpdate, SignalCSVRequest
from .service import CompoundRepository
from .signals_csv import parse_signal_csv

logger = logging.getLogger(__name__)

timing_dependency = timing_dependency_factory("compound_backend.features.compounds")

router = APIRouter(dependencies=[Depends(timing_dependency)])

_settings = get_settings()


def _not_found():
    return error_response(status.HTTP_404_NOT_FOUND, "Compound not found")


@router.get("")
async def list_compounds(
    page: int = Query(1, ge=1),
    limit: int = Query(_settings.page_size_default, ge=1, le=_settings.page_size_max),
    searchTerm: str = Query(""),
    loaiHC: Optional[List[str]] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    trangThai: Optional[List[str]] = Query(None),
    mau: Optional[List[str]] = Query(None),
    repository: CompoundRepository = Depends(get_repository),
):
    filters = CompoundFilters(
        types=loaiHC or [],
        statuses=status_filter or [],
        state_phases=trangThai or [],
        colors=mau or [],
    )
    result = await repository.list(page=page, limit=limit, search_term=searchTerm, filters=filters)
    return success(
        [item.to_wire() for item in result.items],
        pagination=result.pagination.model_dump(),
    )


@router.get("/next-stt-hc")
async def next_compound_number(repository: CompoundRepository = Depends(get_repository)):
    return success({"nextSttHC": await repository.next_stt_hc()})


@router.get("/next-stt-bang")
async def next_table_number(repository: CompoundRepository = Depends(get_repository)):
    return success({"nextSttBang": await repository.next_stt_bang()})


@router.post("/nmr-signals/parse-csv")
async def parse_nmr_signals(body: SignalCSVRequest):
    signals = parse_signal_csv(body.csv)
    logger.info("compounds.parse_csv signals=%s", len(signals))
    return success([signal.model_dump() for signal in signals])


@router.get("/{compound_id}")
async def get_compound(compound_id: str, repository: CompoundRepository = Depends(get_repository)):
    compound = await repository.get_by_id(compound_id)
    if compound is None:
        return _not_found()
    return success(compound.to_wire())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_compound(payload: CompoundCreate, repository: CompoundRepository = Depends(get_repository)):
    compound = await repository.create(payload)
    return success(compound.to_wire())


@router.put("/{compound_id}")
async def update_compound(
    compound_id: str,
    payload: CompoundUpdate,
    repository: CompoundRepository = Depends(get_repository),
):
    outcome = await repository.update(compound_id, payload)
    if outcome.compound is None:
        return _not_found()
    for failure in outcome.cleanup.failed:
        logger.warning(
            "compounds.update orphaned_file id=%s reference=%s error=%s",
            compound_id,
            failure.reference,
            failure.error,
        )
    return success(outcome.compound.to_wire())


@router.delete("/{compound_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_compound(compound_id: str, repository: CompoundRepository = Depends(get_repository)):
    outcome = await repository.delete(compound_id)
    if not outcome.removed:
        return _not_found()
    for failure in outcome.cleanup.failed:
        logger.warning(
            "compounds.delete orphaned_file id=%s reference=%s error=%s",
            compound_id,
            failure.reference,
            failure.error,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
