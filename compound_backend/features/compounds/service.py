"""Compound repository: transactional reads and writes over the three tables."""
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import asyncpg

from compound_backend.config import Settings, get_settings
from compound_backend.storage.object_store import ObjectStorage

from . import queries
from .errors import CompoundConflictError, CompoundStorageError, CompoundValidationError
from .mapper import (
    assemble_documents,
    block_ids,
    block_rows,
    compound_row_values,
    group_signals,
    merge_document,
)
from .queries import CompoundFilters
from .reconciliation import CleanupReport, remove_references, removed_references
from .schemas import CompoundCreate, CompoundDocument, CompoundUpdate, Pagination

logger = logging.getLogger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError, OSError)

METADATA_KINDS = tuple(queries.DISTINCT_VALUES)


@dataclass
class CompoundPage:
    items: List[CompoundDocument]
    pagination: Pagination


@dataclass
class UpdateOutcome:
    compound: Optional[CompoundDocument]
    cleanup: CleanupReport = field(default_factory=CleanupReport)


@dataclass
class DeleteOutcome:
    removed: bool
    cleanup: CleanupReport = field(default_factory=CleanupReport)


def parse_compound_id(value: Any) -> str:
    """Return the canonical UUID text or raise before any query is issued."""

    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError) as exc:
        raise CompoundValidationError("Invalid ID format", {"id": "Invalid ID format"}) from exc


class CompoundRepository:
    """Owns the connection pool and object storage handles for compound operations."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        storage: ObjectStorage,
        settings: Optional[Settings] = None,
    ) -> None:
        self._pool = pool
        self._storage = storage
        self._settings = settings or get_settings()

    @property
    def storage(self) -> ObjectStorage:
        return self._storage

    def _acquire(self):
        return self._pool.acquire(timeout=self._settings.db_acquire_timeout_seconds)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def _assemble(self, conn, rows: Sequence[Any]) -> List[CompoundDocument]:
        ids = block_ids(rows)
        signal_rows = []
        if ids:
            signal_rows = await conn.fetch(queries.SELECT_SIGNALS_FOR_BLOCKS, [uuid.UUID(i) for i in ids])
        return assemble_documents(rows, group_signals(signal_rows))

    async def _load(self, conn, compound_id: str) -> Optional[CompoundDocument]:
        rows = await conn.fetch(queries.SELECT_COMPOUND_BY_ID, uuid.UUID(compound_id))
        if not rows:
            return None
        documents = await self._assemble(conn, rows)
        return documents[0]

    async def get_by_id(self, compound_id: Any) -> Optional[CompoundDocument]:
        compound_id = parse_compound_id(compound_id)
        try:
            async with self._acquire() as conn:
                return await self._load(conn, compound_id)
        except _DB_ERRORS as exc:
            logger.exception("compounds.get failed id=%s", compound_id)
            raise CompoundStorageError("Failed to fetch compound") from exc

    async def list(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        search_term: str = "",
        filters: Optional[CompoundFilters] = None,
    ) -> CompoundPage:
        page = max(int(page or 1), 1)
        limit = int(limit or self._settings.page_size_default)
        limit = min(max(limit, 1), self._settings.page_size_max)
        filters = filters or CompoundFilters()

        page_sql, count_sql, page_params, count_params = queries.build_list_queries(
            search_term, filters, limit, (page - 1) * limit
        )
        try:
            async with self._acquire() as conn:
                rows = await conn.fetch(page_sql, *page_params)
                items = await self._assemble(conn, rows)
                total = await conn.fetchval(count_sql, *count_params)
        except _DB_ERRORS as exc:
            logger.exception("compounds.list failed page=%s limit=%s", page, limit)
            raise CompoundStorageError("Failed to fetch compounds") from exc

        total = int(total or 0)
        pagination = Pagination(
            totalItems=total,
            totalPages=math.ceil(total / limit),
            currentPage=page,
            limit=limit,
        )
        logger.info(
            "compounds.list page=%s limit=%s total=%s returned=%s",
            page,
            limit,
            total,
            len(items),
        )
        return CompoundPage(items=items, pagination=pagination)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def _insert_blocks(self, conn, compound_id: str, document: CompoundDocument) -> None:
        for block in block_rows(document.nmrData):
            await conn.execute(
                queries.INSERT_BLOCK,
                uuid.UUID(block.id),
                uuid.UUID(compound_id),
                block.dm_nmr,
                block.tan_so_13c,
                block.tan_so_1h,
                block.luu_y_nmr,
                block.tltk_nmr,
            )
            if block.signals:
                await conn.executemany(
                    queries.INSERT_SIGNAL,
                    [
                        (
                            uuid.UUID(signal.id),
                            uuid.UUID(block.id),
                            signal.vi_tri,
                            signal.scab,
                            signal.shac_j_hz,
                            signal.sort_order,
                        )
                        for signal in block.signals
                    ],
                )

    async def create(self, payload: CompoundCreate) -> CompoundDocument:
        compound_id = str(uuid.uuid4())
        document = merge_document(compound_id, payload)
        values = compound_row_values(document)
        try:
            async with self._acquire() as conn:
                async with conn.transaction():
                    if document.sttHC is None:
                        await conn.execute(queries.INSERT_COMPOUND, uuid.UUID(compound_id), *values)
                    else:
                        await conn.execute(
                            queries.INSERT_COMPOUND_WITH_NUMBER,
                            uuid.UUID(compound_id),
                            document.sttHC,
                            *values,
                        )
                        await conn.fetchval(queries.SYNC_STT_HC_SEQUENCE)
                    await self._insert_blocks(conn, compound_id, document)
                created = await self._load(conn, compound_id)
        except asyncpg.UniqueViolationError as exc:
            logger.warning("compounds.create conflict stt_hc=%s", document.sttHC)
            raise CompoundConflictError("Compound number is already in use") from exc
        except _DB_ERRORS as exc:
            logger.exception("compounds.create failed name=%s", document.tenHC)
            raise CompoundStorageError("Failed to create compound") from exc

        if created is None:
            raise CompoundStorageError("Failed to create compound")
        logger.info(
            "compounds.create id=%s stt_hc=%s blocks=%s",
            compound_id,
            created.sttHC,
            len(created.nmrData),
        )
        return created

    async def update(self, compound_id: Any, payload: CompoundUpdate) -> UpdateOutcome:
        compound_id = parse_compound_id(compound_id)
        try:
            async with self._acquire() as conn:
                existing = await self._load(conn, compound_id)
                if existing is None:
                    return UpdateOutcome(compound=None)

                document = merge_document(compound_id, payload, existing)
                dropped = removed_references(existing, document)
                async with conn.transaction():
                    status = await conn.execute(
                        queries.UPDATE_COMPOUND,
                        uuid.UUID(compound_id),
                        document.sttHC,
                        *compound_row_values(document),
                        payload.updatedAt,
                    )
                    if _affected_rows(status) == 0:
                        raise CompoundConflictError(
                            "Compound was modified by another request; reload and try again"
                        )
                    if payload.sttHC is not None and payload.sttHC != existing.sttHC:
                        await conn.fetchval(queries.SYNC_STT_HC_SEQUENCE)
                    if payload.nmrData is not None:
                        await conn.execute(queries.DELETE_BLOCKS_FOR_COMPOUND, uuid.UUID(compound_id))
                        await self._insert_blocks(conn, compound_id, document)
                updated = await self._load(conn, compound_id)
        except asyncpg.UniqueViolationError as exc:
            logger.warning("compounds.update conflict id=%s stt_hc=%s", compound_id, payload.sttHC)
            raise CompoundConflictError("Compound number is already in use") from exc
        except _DB_ERRORS as exc:
            logger.exception("compounds.update failed id=%s", compound_id)
            raise CompoundStorageError("Failed to update compound") from exc

        cleanup = await remove_references(self._storage, dropped)
        logger.info(
            "compounds.update id=%s blocks_replaced=%s files_removed=%s files_failed=%s",
            compound_id,
            payload.nmrData is not None,
            len(cleanup.deleted),
            len(cleanup.failed),
        )
        return UpdateOutcome(compound=updated, cleanup=cleanup)

    async def delete(self, compound_id: Any) -> DeleteOutcome:
        compound_id = parse_compound_id(compound_id)
        try:
            async with self._acquire() as conn:
                existing = await self._load(conn, compound_id)
                if existing is None:
                    return DeleteOutcome(removed=False)
                async with conn.transaction():
                    status = await conn.execute(queries.DELETE_COMPOUND, uuid.UUID(compound_id))
        except _DB_ERRORS as exc:
            logger.exception("compounds.delete failed id=%s", compound_id)
            raise CompoundStorageError("Failed to delete compound") from exc

        removed = _affected_rows(status) > 0
        cleanup = CleanupReport()
        if removed:
            cleanup = await remove_references(self._storage, existing.file_references())
        logger.info(
            "compounds.delete id=%s removed=%s files_removed=%s files_failed=%s",
            compound_id,
            removed,
            len(cleanup.deleted),
            len(cleanup.failed),
        )
        return DeleteOutcome(removed=removed, cleanup=cleanup)

    # ------------------------------------------------------------------
    # Metadata helpers
    # ------------------------------------------------------------------
    async def distinct_values(self, kind: str) -> List[str]:
        sql = queries.DISTINCT_VALUES.get(kind)
        if sql is None:
            raise CompoundValidationError(
                f"Unknown metadata kind '{kind}'",
                {"kind": f"must be one of {', '.join(METADATA_KINDS)}"},
            )
        try:
            async with self._acquire() as conn:
                rows = await conn.fetch(sql)
        except _DB_ERRORS as exc:
            logger.exception("compounds.meta failed kind=%s", kind)
            raise CompoundStorageError("Failed to fetch metadata") from exc
        return [row["value"] for row in rows]

    async def _scalar(self, sql: str, message: str) -> int:
        try:
            async with self._acquire() as conn:
                value = await conn.fetchval(sql)
        except _DB_ERRORS as exc:
            logger.exception("compounds.scalar failed sql=%s", sql.strip()[:60])
            raise CompoundStorageError(message) from exc
        return int(value or 1)

    async def next_stt_hc(self) -> int:
        """``max + 1`` over display numbers; advisory only, not reserved."""

        return await self._scalar(queries.NEXT_STT_HC, "Failed to compute next compound number")

    async def next_stt_bang(self) -> int:
        """``max + 1`` over table numbers; advisory only, not reserved."""

        return await self._scalar(queries.NEXT_STT_BANG, "Failed to compute next table number")

    async def ping(self) -> None:
        async with self._acquire() as conn:
            await conn.fetchval(queries.PING)


def _affected_rows(status: Any) -> int:
    """Row count from an asyncpg command tag such as ``'UPDATE 1'``."""

    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except (TypeError, ValueError):
        return 0


__all__ = [
    "CompoundPage",
    "CompoundRepository",
    "DeleteOutcome",
    "METADATA_KINDS",
    "UpdateOutcome",
    "parse_compound_id",
]
