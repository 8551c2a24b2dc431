"""Lay out one compound document as a multi-sheet ``.xlsx`` workbook.

Sheets: the main information sheet (with the structure image), one NMR table
sheet and one NMR details sheet per block, and one sheet holding every
spectral file. Missing values render as ``-``; unresolvable files as links.
"""
from __future__ import annotations

import io
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Protocol
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.styles import Alignment, Border, Font, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.page import PageMargins
from openpyxl.worksheet.worksheet import Worksheet

from compound_backend.features.compounds.schemas import SPECTRAL_CHANNELS, CompoundDocument, NMRDataBlock

from . import labels
from .formula import formula_rich_text
from .images import ResolvedImage, file_name

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MAIN_COLUMN_WIDTHS = (25, 20, 12, 8, 8, 8, 8, 8, 8, 8, 8, 8, 8, 8)
LAST_COLUMN = len(MAIN_COLUMN_WIDTHS)
STRUCTURE_IMAGE_ROWS = 10
STRUCTURE_IMAGE_PX = 250
SPECTRUM_IMAGE_WIDTH_PX = 400
SPECTRUM_IMAGE_HEIGHT_PX = 300

_THIN = Side(style="thin")
_BORDER = Border(top=_THIN, left=_THIN, bottom=_THIN, right=_THIN)
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")
_INVALID_FILENAME_CHARS = re.compile(r'[:*?"<>|/\\]')
_ASCII_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


class ExportGenerationError(Exception):
    """Raised when a workbook cannot be generated."""


class ImageSource(Protocol):
    def resolve(self, reference: str) -> Optional[ResolvedImage]:
        ...

    def link(self, reference: str) -> str:
        ...


def _or_dash(value: Any) -> Any:
    if value is None:
        return labels.NO
    if isinstance(value, str) and not value.strip():
        return labels.NO
    return value


def _style(cell, bold: bool = False, horizontal: str = "left", vertical: str = "top", size: int = 10) -> None:
    cell.font = Font(name="Arial", size=size, bold=bold)
    cell.alignment = Alignment(horizontal=horizontal, vertical=vertical, wrap_text=True)
    cell.border = _BORDER


def _put(
    ws: Worksheet,
    row: int,
    column: int,
    value: Any,
    end_column: Optional[int] = None,
    end_row: Optional[int] = None,
    **style: Any,
):
    cell = ws.cell(row=row, column=column)
    cell.value = value
    _style(cell, **style)
    if (end_column and end_column != column) or (end_row and end_row != row):
        ws.merge_cells(
            start_row=row,
            start_column=column,
            end_row=end_row or row,
            end_column=end_column or column,
        )
    return cell


def _merge_group_label(ws: Worksheet, start_row: int, end_row: int, text: str) -> None:
    _put(ws, start_row, 1, text, end_row=end_row, bold=True, vertical="center")


def _unique_title(workbook: Workbook, title: str) -> str:
    base = _INVALID_SHEET_CHARS.sub("_", title)[:31] or "Sheet"
    candidate = base
    suffix = 2
    while candidate in workbook.sheetnames:
        tail = f" ({suffix})"
        candidate = f"{base[: 31 - len(tail)]}{tail}"
        suffix += 1
    return candidate


def _embed(ws: Worksheet, image: ResolvedImage, anchor: str, width: int, height: int) -> None:
    picture = XLImage(io.BytesIO(image.data))
    picture.width = width
    picture.height = height
    ws.add_image(picture, anchor)


def _apply_page_setup(ws: Worksheet) -> None:
    ws.page_setup.paperSize = ws.PAPERSIZE_A4
    ws.page_setup.orientation = ws.ORIENTATION_PORTRAIT
    ws.page_setup.fitToWidth = 1
    ws.page_setup.fitToHeight = 0
    ws.sheet_properties.pageSetUpPr.fitToPage = True
    ws.page_margins = PageMargins(left=0.787, right=0.787, top=0.787, bottom=0.787, header=0.0, footer=0.0)


def _write_main_sheet(ws: Worksheet, compound: CompoundDocument, images: ImageSource) -> None:
    for index, width in enumerate(MAIN_COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width

    row = 1
    _put(ws, row, 1, compound.sttHC if compound.sttHC is not None else labels.NOT_AVAILABLE, vertical="center")
    _put(
        ws,
        row,
        2,
        compound.tenHC or labels.UNTITLED,
        end_column=LAST_COLUMN,
        bold=True,
        vertical="center",
        size=11,
    )
    ws.row_dimensions[row].height = 22
    row += 1

    _put(ws, row, 1, labels.MAIN["other_name"], bold=True)
    _put(ws, row, 2, _or_dash(compound.tenHCKhac), end_column=LAST_COLUMN)
    row += 1

    _put(ws, row, 1, labels.MAIN["type"], bold=True)
    _put(ws, row, 2, _or_dash(compound.loaiHC), end_column=10)
    _put(ws, row, 11, labels.MAIN["new"], bold=True)
    _put(ws, row, 12, labels.YES if compound.status == "Mới" else labels.NO, horizontal="center")
    _put(ws, row, 13, labels.MAIN["known"], bold=True)
    _put(ws, row, 14, labels.YES if compound.status == "Đã biết" else labels.NO, horizontal="center")
    row += 1

    source_start = row
    for label_key, value in (
        ("latin_name", compound.tenLatin),
        ("english_name", compound.tenTA),
        ("vietnamese_name", compound.tenTV),
        ("research_part", compound.bpnc),
        ("other_sources", compound.nguonKhac),
    ):
        _put(ws, row, 2, labels.MAIN[label_key], bold=True)
        _put(ws, row, 3, _or_dash(value), end_column=LAST_COLUMN)
        row += 1
    _merge_group_label(ws, source_start, row - 1, labels.MAIN["source"])

    physical_start = row
    _put(ws, row, 2, labels.MAIN["state"], bold=True)
    _put(ws, row, 3, _or_dash(compound.trangThai), end_column=LAST_COLUMN)
    row += 1
    _put(ws, row, 2, labels.MAIN["color"], bold=True)
    _put(ws, row, 3, _or_dash(compound.mau), end_column=LAST_COLUMN)
    row += 1
    _put(ws, row, 2, labels.MAIN["uv"], bold=True)
    _put(ws, row, 3, labels.MAIN["uv254"])
    _put(ws, row, 4, labels.YES if compound.uvSklm.nm254 else labels.NO, horizontal="center")
    _put(ws, row, 5, labels.MAIN["uv365"])
    _put(ws, row, 6, labels.YES if compound.uvSklm.nm365 else labels.NO, horizontal="center")
    _put(ws, row, 7, labels.MAIN["melting_point"], end_column=9, bold=True, horizontal="center", vertical="center")
    _put(ws, row, 10, _or_dash(compound.diemNongChay), end_column=LAST_COLUMN, horizontal="center", vertical="center")
    row += 1
    _put(ws, row, 2, labels.MAIN["solvent"], bold=True)
    _put(ws, row, 3, formula_rich_text(compound.dungMoiHoaTanTCVL, labels.NO), end_column=6)
    _put(ws, row, 7, labels.MAIN["optical_rotation"], end_column=9, bold=True, horizontal="center", vertical="center")
    _put(ws, row, 10, _or_dash(compound.alphaD), end_column=LAST_COLUMN, horizontal="center", vertical="center")
    _merge_group_label(ws, physical_start, row, labels.MAIN["physical"])
    row += 1

    structure_start = row
    _put(ws, row, 2, labels.MAIN["formula"], bold=True)
    _put(ws, row, 3, formula_rich_text(compound.ctpt, labels.NO), end_column=7)
    _put(ws, row, 8, labels.MAIN["weight"], bold=True)
    _put(ws, row, 9, _or_dash(compound.klpt), end_column=LAST_COLUMN)
    row += 1

    image_start = row
    for offset in range(STRUCTURE_IMAGE_ROWS):
        ws.row_dimensions[image_start + offset].height = 20
    _put(ws, image_start, 2, None, end_column=LAST_COLUMN, end_row=image_start + STRUCTURE_IMAGE_ROWS - 1)
    if compound.hinhCauTruc:
        structure = images.resolve(compound.hinhCauTruc)
        if structure is not None:
            _embed(ws, structure, f"B{image_start}", STRUCTURE_IMAGE_PX, STRUCTURE_IMAGE_PX)
        else:
            cell = ws.cell(row=image_start, column=2)
            cell.value = file_name(compound.hinhCauTruc)
            if not compound.hinhCauTruc.startswith("data:"):
                cell.hyperlink = images.link(compound.hinhCauTruc)
                cell.font = Font(name="Arial", size=10, color="FF0000FF", underline="single")
    row += STRUCTURE_IMAGE_ROWS

    _put(ws, row, 2, labels.MAIN["absolute_configuration"], bold=True)
    _put(ws, row, 3, labels.YES if compound.cauHinhTuyetDoi else labels.NO, end_column=LAST_COLUMN, horizontal="center")
    _merge_group_label(ws, structure_start, row, labels.MAIN["structure"])
    row += 1

    _put(ws, row, 1, labels.MAIN["smiles"], bold=True)
    _put(ws, row, 2, _or_dash(compound.smiles), end_column=LAST_COLUMN)
    row += 1

    spectra_start = row
    channels = compound.pho.channels()
    for index, channel in enumerate(SPECTRAL_CHANNELS):
        _put(ws, row, index + 2, labels.SPECTRAL_LABELS[channel], bold=True, horizontal="center")
        _put(ws, row + 1, index + 2, labels.YES if channels.get(channel) else labels.NO, horizontal="center")
    row += 1
    _merge_group_label(ws, spectra_start, row, labels.MAIN["spectra"])
    row += 1

    _put(ws, row, 1, labels.MAIN["nmr_solvent"], bold=True)
    _put(ws, row, 2, formula_rich_text(compound.dmNMRGeneral, labels.NO), end_column=LAST_COLUMN)
    row += 1

    cc_start = row
    _put(ws, row, 2, labels.MAIN["cart_coords"], end_column=5, bold=True, horizontal="center")
    _put(ws, row, 6, labels.MAIN["imaginary_freq"], end_column=9, bold=True, horizontal="center")
    _put(ws, row, 10, labels.MAIN["total_energy"], end_column=LAST_COLUMN, bold=True, horizontal="center")
    row += 1
    _put(ws, row, 2, _or_dash(compound.cartCoor), end_column=5, horizontal="center")
    _put(ws, row, 6, _or_dash(compound.imgFreq), end_column=9, horizontal="center")
    _put(ws, row, 10, _or_dash(compound.te), end_column=LAST_COLUMN, horizontal="center")
    _merge_group_label(ws, cc_start, row, labels.MAIN["cc_data"])


def _write_nmr_table_sheet(ws: Worksheet, block: NMRDataBlock, compound: CompoundDocument) -> None:
    for letter, width in zip("ABC", (15, 20, 40)):
        ws.column_dimensions[letter].width = width

    title = labels.NMR_TABLE["title"].format(
        table=block.sttBang or labels.NOT_AVAILABLE,
        compound=compound.sttHC if compound.sttHC is not None else labels.NOT_AVAILABLE,
    )
    _put(ws, 1, 1, title, end_column=3, bold=True, horizontal="center", vertical="center", size=11)
    _put(ws, 2, 1, labels.NMR_TABLE["position"], bold=True, horizontal="center", vertical="center")
    _put(ws, 2, 2, labels.NMR_TABLE["delta_c"], bold=True, horizontal="center", vertical="center")
    _put(ws, 2, 3, labels.NMR_TABLE["delta_h"], bold=True, horizontal="center", vertical="center")

    for row, signal in enumerate(block.signals, start=3):
        _put(ws, row, 1, _or_dash(signal.viTri))
        _put(ws, row, 2, _or_dash(signal.scab))
        _put(ws, row, 3, _or_dash(signal.shacJHz))


def _write_nmr_details_sheet(ws: Worksheet, block: NMRDataBlock) -> None:
    for letter, width in zip("ABCD", (25, 25, 20, 20)):
        ws.column_dimensions[letter].width = width

    _put(ws, 1, 1, labels.NMR_DETAILS["notes"], end_row=3, bold=True, vertical="center")
    _put(ws, 1, 2, labels.NMR_DETAILS["a"], bold=True, horizontal="center", vertical="center")
    _put(ws, 1, 3, labels.NMR_DETAILS["b"], bold=True, horizontal="center", vertical="center")
    _put(ws, 1, 4, labels.NMR_DETAILS["c"], bold=True, horizontal="center", vertical="center")

    conditions = block.nmrConditions
    _put(ws, 2, 2, formula_rich_text(conditions.dmNMR, labels.NO))
    _put(ws, 2, 3, _or_dash(conditions.tanSo13C))
    _put(ws, 2, 4, _or_dash(conditions.tanSo1H))
    _put(ws, 3, 2, _or_dash(block.luuYNMR), end_column=4)
    _put(ws, 4, 1, labels.NMR_DETAILS["references"], bold=True)
    _put(ws, 4, 2, _or_dash(block.tltkNMR), end_column=4)


def _write_spectra_sheet(ws: Worksheet, compound: CompoundDocument, images: ImageSource) -> int:
    """Lay every spectral file out along row 1. Returns the number of embedded images."""

    ws.column_dimensions["A"].width = 20
    _put(ws, 1, 1, labels.SPECTRA["title"], end_row=13, bold=True, horizontal="center", vertical="center")
    ws.row_dimensions[1].height = SPECTRUM_IMAGE_HEIGHT_PX * 0.75

    embedded = 0
    column = 2
    channels = compound.pho.channels()
    for channel in SPECTRAL_CHANNELS:
        references = channels.get(channel) or []
        if not references:
            continue
        channel_label = labels.SPECTRAL_LABELS[channel]
        _put(ws, 1, column, f"{channel_label}:", bold=True, horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(column)].width = 16
        column += 1

        for reference in references:
            letter = get_column_letter(column)
            ws.column_dimensions[letter].width = SPECTRUM_IMAGE_WIDTH_PX / 7
            resolved = images.resolve(reference)
            if resolved is not None:
                _embed(ws, resolved, f"{letter}1", SPECTRUM_IMAGE_WIDTH_PX, SPECTRUM_IMAGE_HEIGHT_PX)
                embedded += 1
            elif reference.startswith(("http://", "https://", "/")):
                link = images.link(reference)
                cell = _put(ws, 1, column, f"{labels.SPECTRA['external'].format(label=channel_label)} - {file_name(reference)}")
                cell.hyperlink = link
                cell.font = Font(name="Arial", size=10, color="FF0000FF", underline="single")
            else:
                _put(ws, 1, column, f"{labels.SPECTRA['unknown_format']} - {file_name(reference)}")
            column += 1

    if column == 2:
        _put(ws, 1, 2, labels.SPECTRA["empty"])
    return embedded


def build_compound_workbook(compound: CompoundDocument, images: ImageSource) -> bytes:
    """Return the ``.xlsx`` bytes for ``compound``."""

    workbook = Workbook()
    workbook.properties.creator = "CompoundChemistryDataManager"
    workbook.properties.lastModifiedBy = "CompoundChemistryDataManager"
    workbook.properties.created = datetime.now(timezone.utc).replace(tzinfo=None)

    main_sheet = workbook.active
    main_sheet.title = labels.SHEET_MAIN
    sheets: List[Worksheet] = [main_sheet]
    _write_main_sheet(main_sheet, compound, images)

    for index, block in enumerate(compound.nmrData):
        number = block.sttBang or str(index + 1)
        table_sheet = workbook.create_sheet(_unique_title(workbook, f"{labels.SHEET_NMR_TABLE}_{number}"))
        _write_nmr_table_sheet(table_sheet, block, compound)
        details_sheet = workbook.create_sheet(_unique_title(workbook, f"{labels.SHEET_NMR_DETAILS}_{number}"))
        _write_nmr_details_sheet(details_sheet, block)
        sheets.extend([table_sheet, details_sheet])

    spectra_sheet = workbook.create_sheet(_unique_title(workbook, labels.SHEET_SPECTRA))
    embedded = _write_spectra_sheet(spectra_sheet, compound, images)
    sheets.append(spectra_sheet)

    for sheet in sheets:
        _apply_page_setup(sheet)

    buffer = io.BytesIO()
    try:
        workbook.save(buffer)
    except (OSError, ValueError, TypeError) as exc:
        raise ExportGenerationError(f"Unable to write workbook: {exc}") from exc

    logger.info(
        "export.workbook id=%s blocks=%s spectra_images=%s bytes=%s",
        compound.id,
        len(compound.nmrData),
        embedded,
        buffer.tell(),
    )
    return buffer.getvalue()


def export_filename(compound: CompoundDocument) -> str:
    number = compound.sttHC if compound.sttHC is not None else "ID"
    name = _INVALID_FILENAME_CHARS.sub("_", compound.tenHC or "compound")
    return f"{number}_{name}.xlsx"


def content_disposition(filename: str) -> str:
    """``attachment`` header with an ASCII fallback and the UTF-8 name."""

    fallback = _ASCII_FILENAME.sub("_", filename).strip("_") or "compound.xlsx"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


__all__ = [
    "ExportGenerationError",
    "XLSX_MEDIA_TYPE",
    "build_compound_workbook",
    "content_disposition",
    "export_filename",
]
