"""SQL statements used by :mod:`compound_backend.features.compounds.service`."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Sequence, Tuple

from .mapper import JSON_COLUMNS, WRITE_COLUMNS


def _placeholders(columns: Sequence[str], start: int) -> str:
    parts = []
    for offset, column in enumerate(columns):
        cast = "::jsonb" if column in JSON_COLUMNS else ""
        parts.append(f"${start + offset}{cast}")
    return ", ".join(parts)


_COLUMN_LIST = ", ".join(WRITE_COLUMNS)

BLOCK_COLUMNS = """
    ndb.id AS nmr_data_block_id,
    ndb.stt_bang,
    ndb.dm_nmr,
    ndb.tan_so_13c,
    ndb.tan_so_1h,
    ndb.luu_y_nmr,
    ndb.tltk_nmr
"""

SELECT_COMPOUND_BY_ID = f"""
SELECT c.*, {BLOCK_COLUMNS}
FROM compounds c
LEFT JOIN nmr_data_blocks ndb ON ndb.compound_id = c.id
WHERE c.id = $1
ORDER BY ndb.stt_bang
"""

SELECT_SIGNALS_FOR_BLOCKS = """
SELECT id, nmr_data_block_id, vi_tri, scab, shac_j_hz, sort_order
FROM nmr_signals
WHERE nmr_data_block_id = ANY($1::uuid[])
ORDER BY nmr_data_block_id, sort_order
"""

# $1 id, $2.. WRITE_COLUMNS; stt_hc comes from the identity sequence.
INSERT_COMPOUND = f"""
INSERT INTO compounds (id, {_COLUMN_LIST})
VALUES ($1, {_placeholders(WRITE_COLUMNS, 2)})
"""

# $1 id, $2 stt_hc, $3.. WRITE_COLUMNS
INSERT_COMPOUND_WITH_NUMBER = f"""
INSERT INTO compounds (id, stt_hc, {_COLUMN_LIST})
VALUES ($1, $2, {_placeholders(WRITE_COLUMNS, 3)})
"""

# Moves the identity sequence forward past explicit display numbers, never back.
SYNC_STT_HC_SEQUENCE = """
SELECT setval(
    seq,
    GREATEST(
        (SELECT COALESCE(MAX(stt_hc), 0) FROM compounds),
        COALESCE(pg_sequence_last_value(seq), 0),
        1
    )
)
FROM (SELECT pg_get_serial_sequence('compounds', 'stt_hc')::regclass AS seq) s
"""

_UPDATE_ASSIGNMENTS = ", ".join(
    f"{column} = ${index + 3}{'::jsonb' if column in JSON_COLUMNS else ''}"
    for index, column in enumerate(WRITE_COLUMNS)
)
_EXPECTED_UPDATED_AT = len(WRITE_COLUMNS) + 3

# $1 id, $2 stt_hc, $3.. WRITE_COLUMNS, last: expected updated_at or NULL
UPDATE_COMPOUND = f"""
UPDATE compounds
SET stt_hc = $2, {_UPDATE_ASSIGNMENTS}, updated_at = NOW()
WHERE id = $1
  AND (${_EXPECTED_UPDATED_AT}::timestamptz IS NULL OR updated_at = ${_EXPECTED_UPDATED_AT}::timestamptz)
"""

INSERT_BLOCK = """
INSERT INTO nmr_data_blocks (id, compound_id, dm_nmr, tan_so_13c, tan_so_1h, luu_y_nmr, tltk_nmr)
VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

INSERT_SIGNAL = """
INSERT INTO nmr_signals (id, nmr_data_block_id, vi_tri, scab, shac_j_hz, sort_order)
VALUES ($1, $2, $3, $4, $5, $6)
"""

DELETE_BLOCKS_FOR_COMPOUND = "DELETE FROM nmr_data_blocks WHERE compound_id = $1"

DELETE_COMPOUND = "DELETE FROM compounds WHERE id = $1"

NEXT_STT_HC = "SELECT COALESCE(MAX(stt_hc), 0) + 1 FROM compounds"

NEXT_STT_BANG = "SELECT COALESCE(MAX(stt_bang), 0) + 1 FROM nmr_data_blocks"

DISTINCT_VALUES = {
    "loai-hc": """
        SELECT DISTINCT loai_hc AS value FROM compounds
        WHERE loai_hc IS NOT NULL AND loai_hc <> ''
        ORDER BY value
    """,
    "trang-thai": """
        SELECT DISTINCT trang_thai AS value FROM compounds
        WHERE trang_thai IS NOT NULL AND trang_thai <> ''
        ORDER BY value
    """,
    "mau": """
        SELECT DISTINCT mau AS value FROM compounds
        WHERE mau IS NOT NULL AND mau <> ''
        ORDER BY value
    """,
    "nmr-solvent": """
        SELECT value FROM (
            SELECT dm_nmr AS value FROM nmr_data_blocks
            UNION
            SELECT dm_nmr_general AS value FROM compounds
        ) solvents
        WHERE value IS NOT NULL AND value <> ''
        ORDER BY value
    """,
}

PING = "SELECT 1"


@dataclass
class CompoundFilters:
    """Exact-match filters; values within one category are OR-ed."""

    types: List[str] = field(default_factory=list)
    statuses: List[str] = field(default_factory=list)
    state_phases: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)

    def columns(self) -> Tuple[Tuple[str, List[str]], ...]:
        return (
            ("loai_hc", self.types),
            ("status", self.statuses),
            ("trang_thai", self.state_phases),
            ("mau", self.colors),
        )


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_filter_clause(search_term: str, filters: CompoundFilters) -> Tuple[str, List[Any]]:
    """Return ``(WHERE clause, params)``; categories are AND-ed together."""

    conditions: List[str] = []
    params: List[Any] = []

    term = (search_term or "").strip()
    if term:
        params.append(f"%{escape_like(term)}%")
        index = len(params)
        conditions.append(
            f"(c.ten_hc ILIKE ${index} OR c.stt_hc::text ILIKE ${index} OR c.loai_hc ILIKE ${index})"
        )

    for column, values in filters.columns():
        wanted = [value for value in values if value]
        if wanted:
            params.append(wanted)
            conditions.append(f"c.{column} = ANY(${len(params)}::text[])")

    clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return clause, params


def build_list_queries(
    search_term: str, filters: CompoundFilters, limit: int, offset: int
) -> Tuple[str, str, List[Any], List[Any]]:
    """Return ``(page SQL, count SQL, page params, count params)``.

    The page is cut over compounds before the block join so that compounds
    with several blocks still count once toward ``limit``.
    """

    clause, params = build_filter_clause(search_term, filters)
    limit_index = len(params) + 1
    offset_index = len(params) + 2
    page_sql = f"""
WITH page AS (
    SELECT c.* FROM compounds c
    {clause}
    ORDER BY c.created_at DESC, c.stt_hc DESC
    LIMIT ${limit_index} OFFSET ${offset_index}
)
SELECT c.*, {BLOCK_COLUMNS}
FROM page c
LEFT JOIN nmr_data_blocks ndb ON ndb.compound_id = c.id
ORDER BY c.created_at DESC, c.stt_hc DESC, ndb.stt_bang
"""
    count_sql = f"SELECT COUNT(*) FROM compounds c {clause}".rstrip()
    return page_sql, count_sql, [*params, limit, offset], list(params)


__all__ = [
    "CompoundFilters",
    "DELETE_BLOCKS_FOR_COMPOUND",
    "DELETE_COMPOUND",
    "DISTINCT_VALUES",
    "INSERT_BLOCK",
    "INSERT_COMPOUND",
    "INSERT_COMPOUND_WITH_NUMBER",
    "INSERT_SIGNAL",
    "NEXT_STT_BANG",
    "NEXT_STT_HC",
    "PING",
    "SELECT_COMPOUND_BY_ID",
    "SELECT_SIGNALS_FOR_BLOCKS",
    "SYNC_STT_HC_SEQUENCE",
    "UPDATE_COMPOUND",
    "build_filter_clause",
    "build_list_queries",
    "escape_like",
]
