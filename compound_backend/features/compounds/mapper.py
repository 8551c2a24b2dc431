"""Translation between the three compound tables and the nested document.

Read direction: joined ``compounds x nmr_data_blocks`` rows plus the signal rows
of the referenced blocks are grouped into :class:`CompoundDocument` objects.
Write direction: a merged document is split into one compound row, block rows
and signal rows. Table numbers are never written; the database assigns them.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .schemas import (
    CompoundDocument,
    CompoundPayload,
    NMRCondition,
    NMRDataBlock,
    NMRSignal,
    SpectralRecord,
    UVSklm,
)

logger = logging.getLogger(__name__)

# What the driver may hand back for a JSONB column: decoded (codec installed),
# text (no codec), raw bytes, or nothing.
StoredJson = Union[Mapping[str, Any], str, bytes, None]

# (document field, column) for every plain text column of ``compounds``.
TEXT_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("tenHC", "ten_hc"),
    ("tenHCKhac", "ten_hc_khac"),
    ("loaiHC", "loai_hc"),
    ("status", "status"),
    ("tenLatin", "ten_latin"),
    ("tenTA", "ten_ta"),
    ("tenTV", "ten_tv"),
    ("bpnc", "bpnc"),
    ("nguonKhac", "nguon_khac"),
    ("trangThai", "trang_thai"),
    ("mau", "mau"),
    ("diemNongChay", "diem_nong_chay"),
    ("alphaD", "alpha_d"),
    ("dungMoiHoaTanTCVL", "dung_moi_hoa_tan_tcvl"),
    ("ctpt", "ctpt"),
    ("klpt", "klpt"),
    ("hinhCauTruc", "hinh_cau_truc"),
    ("smiles", "smiles"),
    ("dmNMRGeneral", "dm_nmr_general"),
    ("cartCoor", "cart_coor"),
    ("imgFreq", "img_freq"),
    ("te", "te"),
)

JSON_COLUMNS = ("uv_sklm", "pho")

# Column order of the values produced by :func:`compound_row_values`.
WRITE_COLUMNS: Tuple[str, ...] = (
    *(column for _, column in TEXT_COLUMNS),
    "uv_sklm",
    "cau_hinh_tuyet_doi",
    "pho",
)

_MERGED_FIELDS = (
    *(name for name, _ in TEXT_COLUMNS),
    "uvSklm",
    "cauHinhTuyetDoi",
    "pho",
)


@dataclass
class SignalRow:
    id: str
    vi_tri: str
    scab: str
    shac_j_hz: str
    sort_order: int


@dataclass
class BlockRow:
    id: str
    dm_nmr: str
    tan_so_13c: str
    tan_so_1h: str
    luu_y_nmr: str
    tltk_nmr: str
    signals: List[SignalRow] = field(default_factory=list)


def decode_stored_json(value: StoredJson, column: str = "") -> Dict[str, Any]:
    """The single decode step from a stored JSON column to a plain mapping.

    Malformed or non-object content decodes to an empty mapping so that the
    structural defaults of the document apply.
    """

    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, str):
        if not value.strip():
            return {}
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("mapper.malformed_json column=%s", column or "unknown")
            return {}
        if isinstance(decoded, dict):
            return decoded
        logger.warning("mapper.unexpected_json_shape column=%s type=%s", column or "unknown", type(decoded).__name__)
        return {}
    logger.warning("mapper.unexpected_json_value column=%s type=%s", column or "unknown", type(value).__name__)
    return {}


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number_text(value: Any) -> str:
    if value is None or value == "":
        return ""
    try:
        return str(int(value))
    except (TypeError, ValueError):
        return str(value)


def uv_from_stored(value: StoredJson) -> UVSklm:
    data = decode_stored_json(value, "uv_sklm")
    return UVSklm(nm254=bool(data.get("nm254", False)), nm365=bool(data.get("nm365", False)))


def spectral_from_stored(value: StoredJson) -> SpectralRecord:
    return SpectralRecord.model_validate(decode_stored_json(value, "pho"))


def _compound_fields(row: Mapping[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {name: _text(row.get(column)) for name, column in TEXT_COLUMNS}
    stt_hc = row.get("stt_hc")
    fields.update(
        id=str(row["id"]),
        sttHC=int(stt_hc) if stt_hc is not None else None,
        uvSklm=uv_from_stored(row.get("uv_sklm")),
        cauHinhTuyetDoi=bool(row.get("cau_hinh_tuyet_doi") or False),
        pho=spectral_from_stored(row.get("pho")),
        createdAt=row.get("created_at"),
        updatedAt=row.get("updated_at"),
        nmrData=[],
    )
    return fields


def _signal_from_row(row: Mapping[str, Any]) -> NMRSignal:
    return NMRSignal(
        id=_text(row.get("id")),
        viTri=_text(row.get("vi_tri")),
        scab=_text(row.get("scab")),
        shacJHz=_text(row.get("shac_j_hz")),
        sortOrder=_number_text(row.get("sort_order")),
    )


def _block_from_row(row: Mapping[str, Any], signals: Sequence[NMRSignal]) -> NMRDataBlock:
    block_id = _text(row.get("nmr_data_block_id"))
    return NMRDataBlock(
        id=block_id,
        sttBang=_number_text(row.get("stt_bang")),
        nmrConditions=NMRCondition(
            id=block_id,
            dmNMR=_text(row.get("dm_nmr")),
            tanSo13C=_text(row.get("tan_so_13c")),
            tanSo1H=_text(row.get("tan_so_1h")),
        ),
        signals=list(signals),
        luuYNMR=_text(row.get("luu_y_nmr")),
        tltkNMR=_text(row.get("tltk_nmr")),
    )


def block_ids(rows: Iterable[Mapping[str, Any]]) -> List[str]:
    """Distinct NMR block identifiers referenced by joined rows, in row order."""

    ids = (row.get("nmr_data_block_id") for row in rows)
    return list(dict.fromkeys(str(block_id) for block_id in ids if block_id is not None))


def group_signals(signal_rows: Iterable[Mapping[str, Any]]) -> Dict[str, List[NMRSignal]]:
    grouped: Dict[str, List[NMRSignal]] = {}
    for row in sorted(signal_rows, key=lambda item: item.get("sort_order") or 0):
        grouped.setdefault(str(row["nmr_data_block_id"]), []).append(_signal_from_row(row))
    return grouped


def assemble_documents(
    rows: Iterable[Mapping[str, Any]],
    signals_by_block: Mapping[str, Sequence[NMRSignal]],
) -> List[CompoundDocument]:
    """Group joined rows by compound, keeping the row order of compounds and blocks."""

    assembled: Dict[str, Dict[str, Any]] = {}
    seen_blocks: set[str] = set()
    for row in rows:
        compound_id = str(row["id"])
        fields = assembled.get(compound_id)
        if fields is None:
            fields = _compound_fields(row)
            assembled[compound_id] = fields

        block_id = row.get("nmr_data_block_id")
        if block_id is None or str(block_id) in seen_blocks:
            continue
        seen_blocks.add(str(block_id))
        fields["nmrData"].append(_block_from_row(row, signals_by_block.get(str(block_id), ())))

    return [CompoundDocument(**fields) for fields in assembled.values()]


def merge_document(
    compound_id: str,
    payload: CompoundPayload,
    existing: Optional[CompoundDocument] = None,
) -> CompoundDocument:
    """Overlay the supplied payload fields on ``existing`` (or on empty defaults).

    A field left as ``None`` in the payload keeps the existing value. When the
    payload carries no ``nmrData`` the existing blocks are kept unchanged.
    """

    base = existing or CompoundDocument(id=compound_id)
    merged: Dict[str, Any] = {}
    for name in _MERGED_FIELDS:
        value = getattr(payload, name)
        merged[name] = value if value is not None else getattr(base, name)

    merged["sttHC"] = payload.sttHC if payload.sttHC is not None else base.sttHC
    merged["nmrData"] = list(payload.nmrData) if payload.nmrData is not None else list(base.nmrData)
    return base.model_copy(update=merged)


def compound_row_values(document: CompoundDocument) -> List[Any]:
    """Values for :data:`WRITE_COLUMNS`; JSON columns are encoded as text."""

    values: List[Any] = [getattr(document, name) for name, _ in TEXT_COLUMNS]
    values.append(json.dumps(document.uvSklm.model_dump()))
    values.append(bool(document.cauHinhTuyetDoi))
    values.append(json.dumps(document.pho.channels(), ensure_ascii=False))
    return values


def block_rows(blocks: Sequence[NMRDataBlock]) -> List[BlockRow]:
    """Fresh rows for every submitted block; signal order is the submitted order."""

    rows: List[BlockRow] = []
    for block in blocks:
        conditions = block.nmrConditions
        rows.append(
            BlockRow(
                id=str(uuid.uuid4()),
                dm_nmr=conditions.dmNMR,
                tan_so_13c=conditions.tanSo13C,
                tan_so_1h=conditions.tanSo1H,
                luu_y_nmr=block.luuYNMR,
                tltk_nmr=block.tltkNMR,
                signals=[
                    SignalRow(
                        id=str(uuid.uuid4()),
                        vi_tri=signal.viTri,
                        scab=signal.scab,
                        shac_j_hz=signal.shacJHz,
                        sort_order=position,
                    )
                    for position, signal in enumerate(block.signals)
                ],
            )
        )
    return rows


__all__ = [
    "BlockRow",
    "JSON_COLUMNS",
    "SignalRow",
    "StoredJson",
    "TEXT_COLUMNS",
    "WRITE_COLUMNS",
    "assemble_documents",
    "block_ids",
    "block_rows",
    "compound_row_values",
    "decode_stored_json",
    "group_signals",
    "merge_document",
    "spectral_from_stored",
    "uv_from_stored",
]
