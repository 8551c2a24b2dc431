"""Chemical formula markup: ``_x``/``_{xx}`` subscript and ``^x``/``^{xx}`` superscript."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.cell.text import InlineFont

SUBSCRIPT = "subscript"
SUPERSCRIPT = "superscript"

_MARKERS = {"_": SUBSCRIPT, "^": SUPERSCRIPT}
_NOT_SCRIPTABLE = {"{", "}", "_", "^"}


@dataclass(frozen=True)
class FormulaSegment:
    text: str
    script: Optional[str] = None


def parse_formula(formula: Optional[str]) -> List[FormulaSegment]:
    """Split ``formula`` into runs. Malformed markup is kept as literal text."""

    segments: List[FormulaSegment] = []
    current = ""
    text = formula or ""
    index = 0
    while index < len(text):
        char = text[index]
        script = _MARKERS.get(char)
        if script is None:
            current += char
            index += 1
            continue

        following = text[index + 1] if index + 1 < len(text) else ""
        if following == "{":
            closing = text.find("}", index + 2)
            if closing == -1:
                # unclosed group
                current += char + "{"
                index += 2
                continue
            content = text[index + 2 : closing]
            if not content:
                current += text[index : closing + 1]
                index = closing + 1
                continue
            next_index = closing + 1
        elif following and following not in _NOT_SCRIPTABLE:
            content = following
            next_index = index + 2
        else:
            current += char
            index += 1
            continue

        if current:
            segments.append(FormulaSegment(current))
            current = ""
        segments.append(FormulaSegment(content, script))
        index = next_index

    if current:
        segments.append(FormulaSegment(current))
    return segments


def formula_rich_text(
    formula: Optional[str],
    placeholder: str = "-",
    font_name: str = "Arial",
    size: int = 10,
) -> Union[CellRichText, str]:
    """Cell value for ``formula``; plain text when nothing is scripted."""

    if not formula or not formula.strip():
        return placeholder

    segments = parse_formula(formula)
    if all(segment.script is None for segment in segments):
        return "".join(segment.text for segment in segments)

    return CellRichText(
        [
            TextBlock(InlineFont(rFont=font_name, sz=size, vertAlign=segment.script), segment.text)
            for segment in segments
        ]
    )


__all__ = ["FormulaSegment", "SUBSCRIPT", "SUPERSCRIPT", "formula_rich_text", "parse_formula"]
