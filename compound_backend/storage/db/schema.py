"""Idempotent DDL for the compounds, nmr_data_blocks and nmr_signals tables."""
from __future__ import annotations

import logging
from typing import Tuple

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: Tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS compounds (
        id UUID PRIMARY KEY,
        stt_hc INTEGER GENERATED BY DEFAULT AS IDENTITY,
        ten_hc TEXT NOT NULL,
        ten_hc_khac TEXT NOT NULL DEFAULT '',
        loai_hc TEXT NOT NULL,
        status TEXT NOT NULL,
        ten_latin TEXT NOT NULL DEFAULT '',
        ten_ta TEXT NOT NULL DEFAULT '',
        ten_tv TEXT NOT NULL DEFAULT '',
        bpnc TEXT NOT NULL DEFAULT '',
        nguon_khac TEXT NOT NULL DEFAULT '',
        trang_thai TEXT NOT NULL,
        mau TEXT NOT NULL,
        uv_sklm JSONB NOT NULL DEFAULT '{"nm254": false, "nm365": false}'::jsonb,
        diem_nong_chay TEXT NOT NULL DEFAULT '',
        alpha_d TEXT NOT NULL DEFAULT '',
        dung_moi_hoa_tan_tcvl TEXT NOT NULL DEFAULT '',
        ctpt TEXT NOT NULL DEFAULT '',
        klpt TEXT NOT NULL DEFAULT '',
        hinh_cau_truc TEXT NOT NULL DEFAULT '',
        cau_hinh_tuyet_doi BOOLEAN NOT NULL DEFAULT FALSE,
        smiles TEXT NOT NULL DEFAULT '',
        pho JSONB NOT NULL DEFAULT '{}'::jsonb,
        dm_nmr_general TEXT NOT NULL DEFAULT '',
        cart_coor TEXT NOT NULL DEFAULT '',
        img_freq TEXT NOT NULL DEFAULT '',
        te TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT compounds_stt_hc_key UNIQUE (stt_hc),
        CONSTRAINT compounds_status_check CHECK (status IN ('Mới', 'Đã biết'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS nmr_data_blocks (
        id UUID PRIMARY KEY,
        compound_id UUID NOT NULL REFERENCES compounds (id) ON DELETE CASCADE,
        stt_bang INTEGER GENERATED ALWAYS AS IDENTITY,
        dm_nmr TEXT NOT NULL DEFAULT '',
        tan_so_13c TEXT NOT NULL DEFAULT '',
        tan_so_1h TEXT NOT NULL DEFAULT '',
        luu_y_nmr TEXT NOT NULL DEFAULT '',
        tltk_nmr TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT nmr_data_blocks_stt_bang_key UNIQUE (stt_bang)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS nmr_signals (
        id UUID PRIMARY KEY,
        nmr_data_block_id UUID NOT NULL REFERENCES nmr_data_blocks (id) ON DELETE CASCADE,
        vi_tri TEXT NOT NULL DEFAULT '',
        scab TEXT NOT NULL DEFAULT '',
        shac_j_hz TEXT NOT NULL DEFAULT '',
        sort_order INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_compounds_created_at ON compounds (created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_nmr_data_blocks_compound_id ON nmr_data_blocks (compound_id)",
    "CREATE INDEX IF NOT EXISTS idx_nmr_signals_block_order ON nmr_signals (nmr_data_block_id, sort_order)",
)


async def apply_schema(conn) -> None:
    """Create any missing table or index inside a single transaction."""

    async with conn.transaction():
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
    logger.info("db.schema_applied statements=%s", len(SCHEMA_STATEMENTS))
