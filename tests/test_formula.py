from openpyxl.cell.rich_text import CellRichText

from compound_backend.features.export.formula import (
    SUBSCRIPT,
    SUPERSCRIPT,
    FormulaSegment,
    formula_rich_text,
    parse_formula,
)


def test_single_character_scripts():
    assert parse_formula("C_6H_1_2O_6") == [
        FormulaSegment("C"),
        FormulaSegment("6", SUBSCRIPT),
        FormulaSegment("H"),
        FormulaSegment("1", SUBSCRIPT),
        FormulaSegment("2", SUBSCRIPT),
        FormulaSegment("O"),
        FormulaSegment("6", SUBSCRIPT),
    ]


def test_grouped_scripts():
    assert parse_formula("C_{15}H_{10}O_7^{+}") == [
        FormulaSegment("C"),
        FormulaSegment("15", SUBSCRIPT),
        FormulaSegment("H"),
        FormulaSegment("10", SUBSCRIPT),
        FormulaSegment("O"),
        FormulaSegment("7", SUBSCRIPT),
        FormulaSegment("+", SUPERSCRIPT),
    ]


def test_malformed_markup_stays_literal():
    assert parse_formula("C_{12") == [FormulaSegment("C_{12")]
    assert parse_formula("A_{}B") == [FormulaSegment("A_{}B")]
    assert parse_formula("x_") == [FormulaSegment("x_")]
    assert parse_formula("a^^b") == [FormulaSegment("a^"), FormulaSegment("b", SUPERSCRIPT)]


def test_rich_text_values():
    assert formula_rich_text("") == "-"
    assert formula_rich_text(None, "N/A") == "N/A"
    assert formula_rich_text("CDCl3") == "CDCl3"

    rich = formula_rich_text("H_2O")
    assert isinstance(rich, CellRichText)
    assert str(rich) == "H2O"
    assert rich[1].font.vertAlign == SUBSCRIPT
