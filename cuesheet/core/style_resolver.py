"""Resolve the final cell style from row format rules and override rules.

Precedence:
  1. base style (no fill, regular, default font)
  2. the first RowFormatRule whose row_type equals the row's type value;
     every field applies, an empty bg_color meaning "no fill"
  3. the first CellConditionRule that matches; only its truthy fields
     apply, on top of whatever step 2 produced
"""

import re
from dataclasses import dataclass

from .models import DEFAULT_FONT_NAME, DEFAULT_FONT_SIZE, cell_text
from .time_utils import glob_match


HEX_RE = re.compile(r'^[0-9A-Fa-f]{6}$')
SHORT_HEX_RE = re.compile(r'^[0-9A-Fa-f]{3}$')


@dataclass(frozen=True)
class CellStyle:
    bg_color: str = ''   # normalized "RRGGBB" or "" for no fill
    bold: bool = False
    italic: bool = False
    underline: bool = False
    font_size: float = DEFAULT_FONT_SIZE
    font_name: str = DEFAULT_FONT_NAME


BASE_STYLE = CellStyle()


def resolve_style(row_type: str, row: dict, row_formats: list, cell_conditions: list,
                  column: str | None = None) -> CellStyle:
    """Resolve the style for a row (column=None) or for one cell of it.

    In row scope an override styles the whole line. In cell scope an
    override tied to a column only styles that column's cell; overrides
    with no column still look at every value in the row.
    """
    bg_color = BASE_STYLE.bg_color
    bold = BASE_STYLE.bold
    italic = BASE_STYLE.italic
    underline = BASE_STYLE.underline
    font_size = BASE_STYLE.font_size
    font_name = BASE_STYLE.font_name

    row_rule = find_row_format(row_type, row_formats)
    if row_rule is not None:
        bg_color = normalize_hex(row_rule.bg_color)
        bold = bool(row_rule.bold)
        italic = bool(row_rule.italic)
        underline = bool(row_rule.underline)
        font_size = row_rule.font_size if _positive(row_rule.font_size) else DEFAULT_FONT_SIZE
        font_name = row_rule.font_name or DEFAULT_FONT_NAME

    override = find_override(row, cell_conditions, column)
    if override is not None:
        if normalize_hex(override.bg_color):
            bg_color = normalize_hex(override.bg_color)
        if override.bold:
            bold = True
        if override.italic:
            italic = True
        if override.underline:
            underline = True
        if _positive(override.font_size):
            font_size = override.font_size
        if override.font_name:
            font_name = override.font_name

    return CellStyle(bg_color=bg_color, bold=bold, italic=italic,
                     underline=underline, font_size=font_size,
                     font_name=font_name)


def find_row_format(row_type: str, row_formats: list):
    for rule in row_formats:
        if rule.row_type == row_type:
            return rule
    return None


def find_override(row: dict, cell_conditions: list, column: str | None = None):
    """First override rule matching this row (or this cell when column is set)."""
    for rule in cell_conditions:
        if not rule.contains:
            continue
        if rule.column:
            if column is not None and rule.column != column:
                continue
            if glob_match(rule.contains, cell_text(row.get(rule.column))):
                return rule
        elif any(glob_match(rule.contains, cell_text(v)) for v in row.values()):
            return rule
    return None


# --- Colour helpers ---

def normalize_hex(color) -> str:
    """'#1f3864' -> '1F3864'; '#abc' -> 'AABBCC'; anything invalid -> ''."""
    if not color:
        return ''
    text = str(color).strip().lstrip('#')
    if SHORT_HEX_RE.match(text):
        text = ''.join(ch * 2 for ch in text)
    if not HEX_RE.match(text):
        return ''
    return text.upper()


def to_argb(color) -> str:
    """Opaque ARGB string for openpyxl, '' when there is no colour."""
    hex6 = normalize_hex(color)
    return 'FF' + hex6 if hex6 else ''


def hex_to_rgb(color):
    """(r, g, b) floats in 0..1 for PyMuPDF, or None when there is no colour."""
    hex6 = normalize_hex(color)
    if not hex6:
        return None
    return tuple(int(hex6[i:i + 2], 16) / 255 for i in (0, 2, 4))


def _positive(value) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False
