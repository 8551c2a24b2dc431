from contextlib import asynccontextmanager

import pytest

from compound_backend.config import Settings
from compound_backend.storage.db import SCHEMA_STATEMENTS, apply_schema


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("MINIO_BUCKET", "spectra")
    monkeypatch.setenv("DB_POOL_MAX_SIZE", "5")
    monkeypatch.setenv("CORS_ORIGINS", '["http://localhost:8080"]')

    settings = Settings()

    assert settings.minio_bucket == "spectra"
    assert settings.db_pool_max_size == 5
    assert settings.cors_origins == ["http://localhost:8080"]


class _RecordingConnection:
    def __init__(self):
        self.executed = []
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self

    async def execute(self, sql):
        self.executed.append(sql)


@pytest.mark.anyio("asyncio")
async def test_apply_schema_runs_every_statement_in_one_transaction():
    conn = _RecordingConnection()

    await apply_schema(conn)

    assert conn.transactions == 1
    assert conn.executed == list(SCHEMA_STATEMENTS)
    assert "GENERATED BY DEFAULT AS IDENTITY" in SCHEMA_STATEMENTS[0]
    assert "ON DELETE CASCADE" in SCHEMA_STATEMENTS[2]
