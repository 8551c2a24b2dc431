from __future__ import annotations

import copy
import io
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import asyncpg
import pytest
from botocore.exceptions import ClientError

from compound_backend.config import Settings
from compound_backend.features.compounds import queries
from compound_backend.features.compounds.mapper import WRITE_COLUMNS
from compound_backend.features.compounds.service import CompoundRepository
from compound_backend.storage.object_store import ObjectStorage

BUCKET = "compound-uploads"

_BLOCK_FIELDS = ("dm_nmr", "tan_so_13c", "tan_so_1h", "luu_y_nmr", "tltk_nmr")


class FakeConnection:
    """In-memory stand-in for an asyncpg connection over the three compound tables.

    Statements are dispatched on the SQL constants of ``queries``; list and
    count statements apply the search term and ``ANY`` filters they carry.
    """

    def __init__(self) -> None:
        self.compounds: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.blocks: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.signals: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.stt_hc_sequence = 0
        self.stt_bang_sequence = 0
        self.statements: List[str] = []
        self.fail_on: Optional[str] = None
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    # helpers -----------------------------------------------------------
    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _record(self, sql: str) -> None:
        self.statements.append(sql)
        if self.fail_on is not None and sql == self.fail_on:
            raise asyncpg.PostgresError("simulated failure")

    def _check_unique_number(self, number: Optional[int], compound_id: uuid.UUID) -> None:
        for other_id, row in self.compounds.items():
            if other_id != compound_id and number is not None and row["stt_hc"] == number:
                raise asyncpg.UniqueViolationError("duplicate key value violates unique constraint")

    def _joined_rows(self, compound_ids: List[uuid.UUID]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for compound_id in compound_ids:
            compound = self.compounds[compound_id]
            blocks = sorted(
                (block for block in self.blocks.values() if block["compound_id"] == compound_id),
                key=lambda block: block["stt_bang"],
            )
            if not blocks:
                rows.append({**compound, "nmr_data_block_id": None, "stt_bang": None, **{f: None for f in _BLOCK_FIELDS}})
            for block in blocks:
                rows.append(
                    {
                        **compound,
                        "nmr_data_block_id": block["id"],
                        "stt_bang": block["stt_bang"],
                        **{f: block[f] for f in _BLOCK_FIELDS},
                    }
                )
        return rows

    def _ordered_compounds(self) -> List[uuid.UUID]:
        return [
            row["id"]
            for row in sorted(
                self.compounds.values(),
                key=lambda row: (row["created_at"], row["stt_hc"]),
                reverse=True,
            )
        ]

    def _matching(self, sql: str, args: tuple) -> List[uuid.UUID]:
        search = re.search(r"c\.ten_hc ILIKE \$(\d+)", sql)
        filters = re.findall(r"c\.(\w+) = ANY\(\$(\d+)::text\[\]\)", sql)

        def keep(row: Dict[str, Any]) -> bool:
            if search:
                needle = re.sub(r"\\(.)", r"\1", args[int(search.group(1)) - 1][1:-1]).lower()
                haystack = (row["ten_hc"], str(row["stt_hc"]), row["loai_hc"])
                if not any(needle in (value or "").lower() for value in haystack):
                    return False
            return all(row[column] in args[int(index) - 1] for column, index in filters)

        return [compound_id for compound_id in self._ordered_compounds() if keep(self.compounds[compound_id])]

    def _drop_blocks(self, compound_id: uuid.UUID) -> None:
        for block_id in [key for key, block in self.blocks.items() if block["compound_id"] == compound_id]:
            del self.blocks[block_id]
            for signal_id in [key for key, sig in self.signals.items() if sig["nmr_data_block_id"] == block_id]:
                del self.signals[signal_id]

    def _write_row(self, compound_id: uuid.UUID, stt_hc: int, values: tuple) -> Dict[str, Any]:
        row = dict(zip(WRITE_COLUMNS, values))
        row["uv_sklm"] = str(row["uv_sklm"])
        row["pho"] = str(row["pho"])
        row.update(id=compound_id, stt_hc=stt_hc)
        return row

    # asyncpg surface ----------------------------------------------------
    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy((self.compounds, self.blocks, self.signals, self.stt_hc_sequence))
        try:
            yield self
        except BaseException:
            self.compounds, self.blocks, self.signals, self.stt_hc_sequence = snapshot
            raise

    async def fetch(self, sql: str, *args: Any) -> List[Dict[str, Any]]:
        self._record(sql)
        if sql == queries.SELECT_COMPOUND_BY_ID:
            compound_id = args[0]
            return self._joined_rows([compound_id]) if compound_id in self.compounds else []
        if sql == queries.SELECT_SIGNALS_FOR_BLOCKS:
            wanted = set(args[0])
            rows = [dict(sig) for sig in self.signals.values() if sig["nmr_data_block_id"] in wanted]
            return sorted(rows, key=lambda sig: (str(sig["nmr_data_block_id"]), sig["sort_order"]))
        if sql.lstrip().startswith("WITH page AS"):
            limit, offset = args[-2], args[-1]
            return self._joined_rows(self._matching(sql, args)[offset : offset + limit])
        for kind, statement in queries.DISTINCT_VALUES.items():
            if sql == statement:
                return [{"value": value} for value in self._distinct(kind)]
        raise AssertionError(f"unexpected fetch: {sql}")

    def _distinct(self, kind: str) -> List[str]:
        column = {"loai-hc": "loai_hc", "trang-thai": "trang_thai", "mau": "mau"}.get(kind)
        if column is not None:
            values = {row[column] for row in self.compounds.values()}
        else:
            values = {block["dm_nmr"] for block in self.blocks.values()}
            values |= {row["dm_nmr_general"] for row in self.compounds.values()}
        return sorted(value for value in values if value)

    async def fetchval(self, sql: str, *args: Any) -> Any:
        self._record(sql)
        if sql == queries.SYNC_STT_HC_SEQUENCE:
            numbers = [row["stt_hc"] for row in self.compounds.values()]
            self.stt_hc_sequence = max(numbers + [self.stt_hc_sequence, 1])
            return self.stt_hc_sequence
        if sql == queries.NEXT_STT_HC:
            return max([row["stt_hc"] for row in self.compounds.values()] + [0]) + 1
        if sql == queries.NEXT_STT_BANG:
            return max([block["stt_bang"] for block in self.blocks.values()] + [0]) + 1
        if sql == queries.PING:
            return 1
        if sql.startswith("SELECT COUNT(*) FROM compounds"):
            return len(self._matching(sql, args))
        raise AssertionError(f"unexpected fetchval: {sql}")

    async def execute(self, sql: str, *args: Any) -> str:
        self._record(sql)
        if sql == queries.INSERT_COMPOUND:
            self.stt_hc_sequence += 1
            while any(row["stt_hc"] == self.stt_hc_sequence for row in self.compounds.values()):
                self.stt_hc_sequence += 1
            compound_id = args[0]
            row = self._write_row(compound_id, self.stt_hc_sequence, args[1:])
            row["created_at"] = row["updated_at"] = self._now()
            self.compounds[compound_id] = row
            return "INSERT 0 1"
        if sql == queries.INSERT_COMPOUND_WITH_NUMBER:
            compound_id, number = args[0], args[1]
            self._check_unique_number(number, compound_id)
            row = self._write_row(compound_id, number, args[2:])
            row["created_at"] = row["updated_at"] = self._now()
            self.compounds[compound_id] = row
            return "INSERT 0 1"
        if sql == queries.UPDATE_COMPOUND:
            compound_id, number, expected = args[0], args[1], args[-1]
            current = self.compounds.get(compound_id)
            if current is None or (expected is not None and current["updated_at"] != expected):
                return "UPDATE 0"
            self._check_unique_number(number, compound_id)
            row = self._write_row(compound_id, number, args[2:-1])
            row["created_at"] = current["created_at"]
            row["updated_at"] = self._now()
            self.compounds[compound_id] = row
            return "UPDATE 1"
        if sql == queries.INSERT_BLOCK:
            self.stt_bang_sequence += 1
            block_id, compound_id = args[0], args[1]
            self.blocks[block_id] = {
                "id": block_id,
                "compound_id": compound_id,
                "stt_bang": self.stt_bang_sequence,
                **dict(zip(_BLOCK_FIELDS, args[2:])),
            }
            return "INSERT 0 1"
        if sql == queries.DELETE_BLOCKS_FOR_COMPOUND:
            self._drop_blocks(args[0])
            return "DELETE 1"
        if sql == queries.DELETE_COMPOUND:
            compound_id = args[0]
            if compound_id not in self.compounds:
                return "DELETE 0"
            self._drop_blocks(compound_id)
            del self.compounds[compound_id]
            return "DELETE 1"
        raise AssertionError(f"unexpected execute: {sql}")

    async def executemany(self, sql: str, rows: List[tuple]) -> None:
        self._record(sql)
        assert sql == queries.INSERT_SIGNAL
        for signal_id, block_id, vi_tri, scab, shac_j_hz, sort_order in rows:
            self.signals[signal_id] = {
                "id": signal_id,
                "nmr_data_block_id": block_id,
                "vi_tri": vi_tri,
                "scab": scab,
                "shac_j_hz": shac_j_hz,
                "sort_order": sort_order,
            }


class FakePool:
    def __init__(self, conn: Optional[FakeConnection] = None) -> None:
        self.conn = conn or FakeConnection()
        self.acquired = 0

    @asynccontextmanager
    async def _acquired(self):
        self.acquired += 1
        yield self.conn

    def acquire(self, timeout: Optional[float] = None):
        return self._acquired()


class FakeS3Client:
    """The slice of the boto3 S3 client used by :class:`ObjectStorage`."""

    def __init__(self, bucket_exists: bool = True) -> None:
        self.buckets = {BUCKET} if bucket_exists else set()
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.fail_keys: set = set()
        self.unreachable = False

    def _error(self, code: str, operation: str) -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": code}}, operation)

    def head_bucket(self, Bucket: str) -> Dict[str, Any]:
        if self.unreachable:
            raise self._error("503", "HeadBucket")
        if Bucket not in self.buckets:
            raise self._error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket: str) -> Dict[str, Any]:
        self.buckets.add(Bucket)
        return {}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentLength: int, ContentType: str) -> Dict[str, Any]:
        if Key in self.fail_keys:
            raise self._error("InternalError", "PutObject")
        self.objects[Key] = Body
        self.content_types[Key] = ContentType
        return {}

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        if Key not in self.objects:
            raise self._error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def delete_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        if Key in self.fail_keys:
            raise self._error("AccessDenied", "DeleteObject")
        self.deleted.append(Key)
        self.objects.pop(Key, None)
        return {}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(minio_bucket=BUCKET, db_run_migrations=False)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(s3_client) -> ObjectStorage:
    return ObjectStorage(s3_client, BUCKET, "/s3")


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


@pytest.fixture
def repository(pool, storage, settings) -> CompoundRepository:
    return CompoundRepository(pool, storage, settings)


def _compound_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "tenHC": "Quercetin",
        "loaiHC": "Flavonoid",
        "status": "Mới",
        "trangThai": "Bột",
        "mau": "Vàng",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def compound_payload():
    """Factory for a minimal valid create body in wire form."""

    return _compound_payload


@pytest.fixture
def app(repository, storage, settings):
    from compound_backend.api.deps import get_object_storage, get_repository
    from compound_backend.main import create_app

    application = create_app(settings)
    application.dependency_overrides[get_repository] = lambda: repository
    application.dependency_overrides[get_object_storage] = lambda: storage
    return application


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
