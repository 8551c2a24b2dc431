"""Best-effort removal of object-store files a compound no longer references."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from starlette.concurrency import run_in_threadpool

from compound_backend.storage.object_store import ObjectStorage

from .schemas import CompoundDocument

logger = logging.getLogger(__name__)

DELETED = "deleted"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class CleanupResult:
    reference: str
    key: Optional[str]
    status: str
    error: Optional[str] = None


@dataclass
class CleanupReport:
    """Outcome of one cleanup pass; failures are recorded, never raised."""

    results: List[CleanupResult] = field(default_factory=list)

    def _with_status(self, status: str) -> List[CleanupResult]:
        return [result for result in self.results if result.status == status]

    @property
    def deleted(self) -> List[CleanupResult]:
        return self._with_status(DELETED)

    @property
    def skipped(self) -> List[CleanupResult]:
        return self._with_status(SKIPPED)

    @property
    def failed(self) -> List[CleanupResult]:
        return self._with_status(FAILED)

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [asdict(result) for result in self.results]


def removed_references(old: CompoundDocument, new: CompoundDocument) -> List[str]:
    """References dropped between ``old`` and ``new``.

    Spectral channels are compared one by one with exact string equality, then
    the structure image. A reference that merely moved to another channel is
    still held by ``new`` and is not returned.
    """

    new_channels = new.pho.channels()
    removed: List[str] = []
    for channel, references in old.pho.channels().items():
        kept = set(new_channels.get(channel, ()))
        removed.extend(reference for reference in references if reference not in kept)

    if old.hinhCauTruc and old.hinhCauTruc != new.hinhCauTruc:
        removed.append(old.hinhCauTruc)

    still_held = set(new.file_references())
    return [reference for reference in dict.fromkeys(removed) if reference not in still_held]


async def remove_references(storage: ObjectStorage, references: Iterable[str]) -> CleanupReport:
    """Issue one delete per distinct reference, recording each outcome."""

    report = CleanupReport()
    for reference in dict.fromkeys(references):
        key = storage.extract_key(reference)
        if key is None:
            logger.info("files.cleanup_skipped reference=%s reason=no_storage_key", reference[:120])
            report.results.append(CleanupResult(reference=reference, key=None, status=SKIPPED))
            continue

        try:
            await run_in_threadpool(storage.remove, key)
        except Exception as exc:  # object-store failures never reach the caller
            logger.warning("files.cleanup_failed reference=%s key=%s error=%s", reference, key, exc)
            report.results.append(
                CleanupResult(reference=reference, key=key, status=FAILED, error=str(exc))
            )
            continue

        logger.info("files.cleanup_deleted key=%s", key)
        report.results.append(CleanupResult(reference=reference, key=key, status=DELETED))
    return report


__all__ = [
    "CleanupReport",
    "CleanupResult",
    "DELETED",
    "FAILED",
    "SKIPPED",
    "remove_references",
    "removed_references",
]
