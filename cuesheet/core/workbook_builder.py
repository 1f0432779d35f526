"""Build the multi-tab .xlsx output for a cue list.

Workbook layout, in order:
  - Master: the first sheet of the uploaded file (or a plain rebuild of the
    parsed rows when the file cannot be reused)
  - one sheet per tab definition that has columns
  - Configuration: the persisted settings, merged with the uploaded file's
"""

import io
import logging

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.filters import AutoFilter

from .config_sheet import SHEET_NAME as CONFIG_SHEET_NAME
from .config_sheet import (
    find_config_sheet, find_data_sheet, read_config_rows, write_config_sheet,
)
from .gap_segmenter import filter_rows, is_separator, row_type_of, segment_rows
from .models import DEFAULT_FONT_NAME, DEFAULT_FONT_SIZE, strip_illegal
from .style_resolver import resolve_style, to_argb
from .title_block import apply_title_block

logger = logging.getLogger(__name__)

MASTER_SHEET_NAME = 'Master'
MIN_SOURCE_BYTES = 100

MAX_SHEET_NAME = 31
INVALID_SHEET_CHARS = '/\\?*[]:'

HEADER_FILL = 'FF2E4057'
HEADER_ROW_HEIGHT = 20
DATA_ROW_HEIGHT = 16
SEPARATOR_ROW_HEIGHT = 6

DEFAULT_COL_WIDTH = 18
MIN_COL_CHARS = 10
COL_PADDING = 4
MAX_COL_WIDTH = 60

_THIN = Side(style='thin')
THIN_BOX = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)


def build_workbook(rows: list[dict], columns: list[str], config, raw_bytes: bytes | None = None):
    """Build the output workbook.

    Args:
        rows: Parsed cue rows, keyed by column name.
        columns: All column names in header order.
        config: CueSheetConfig describing tabs, styling and title block.
        raw_bytes: The uploaded file, reused for the Master sheet and as the
                   merge base for the Configuration sheet.

    Returns:
        openpyxl.Workbook
    """
    source = _load_source(raw_bytes)
    existing_config_rows = None
    if source is not None:
        ws = find_config_sheet(source)
        if ws is not None:
            existing_config_rows = read_config_rows(ws)

    wb = None
    if config.include_master_sheet:
        if source is not None:
            try:
                wb = _master_from_source(source)
            except Exception as e:
                logger.warning('Could not reuse uploaded sheet as Master (%s); '
                               'rebuilding it from parsed rows', e)
                wb = None
        if wb is None:
            wb = _new_workbook()
            _add_plain_master(wb, rows, columns)
    else:
        wb = _new_workbook()

    for i, tab in enumerate(config.tabs):
        if not tab.columns:
            continue
        _add_tab_sheet(wb, tab, i, rows, config)

    write_config_sheet(wb, config, existing_config_rows)

    # Sheet creation can re-introduce names; make sure none dangle.
    _clear_defined_names(wb)
    return wb


def workbook_to_bytes(wb) -> bytes:
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# --- Master sheet ---

def _load_source(raw_bytes):
    if not raw_bytes or len(raw_bytes) <= MIN_SOURCE_BYTES:
        return None
    try:
        return load_workbook(io.BytesIO(raw_bytes))
    except Exception as e:
        logger.info('Uploaded file is not a reusable workbook: %s', e)
        return None


def _master_from_source(source):
    """Strip the uploaded workbook down to its data sheet, named Master."""
    data_ws = find_data_sheet(source)
    if data_ws is None:
        raise ValueError('no data sheet in the uploaded workbook')
    for ws in list(source.worksheets):
        if ws is not data_ws:
            source.remove(ws)
    data_ws.title = MASTER_SHEET_NAME
    data_ws.auto_filter = AutoFilter()
    data_ws.tables.clear()
    _clear_defined_names(source)

    # Save and reload so stale structure (filters, table parts) is dropped.
    return load_workbook(io.BytesIO(workbook_to_bytes(source)))


def _clear_defined_names(wb):
    wb.defined_names.clear()
    for ws in wb.worksheets:
        ws.defined_names.clear()


def _new_workbook():
    wb = Workbook()
    wb.remove(wb.active)
    return wb


def _add_plain_master(wb, rows, columns):
    ws = wb.create_sheet(MASTER_SHEET_NAME)
    header_font = Font(name=DEFAULT_FONT_NAME, size=DEFAULT_FONT_SIZE, bold=True)
    for ci, col in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=ci)
        _set_value(cell, col)
        cell.font = header_font
        cell.border = THIN_BOX
        ws.column_dimensions[get_column_letter(ci)].width = DEFAULT_COL_WIDTH
    for ri, row in enumerate(rows, start=2):
        for ci, col in enumerate(columns, start=1):
            _set_value(ws.cell(row=ri, column=ci), row.get(col, ''))
    _autofit_columns(ws, len(columns))
    return ws


# --- Output tabs ---

def sanitize_sheet_name(name: str) -> str:
    """Replace characters Excel forbids and cut to 31 characters.

    Excel also rejects names that start or end with an apostrophe.
    """
    text = strip_illegal(name or '')
    text = ''.join('-' if ch in INVALID_SHEET_CHARS else ch for ch in text)
    return text[:MAX_SHEET_NAME].strip().strip("'").strip()


def unique_sheet_name(name: str, position: int, taken) -> str:
    """Sanitized sheet name that does not collide (case-insensitively) with taken.

    Empty names become "Tab<position>"; collisions get " (2)", " (3)", ...
    """
    base = sanitize_sheet_name(name) or f'Tab{position}'
    used = {t.lower() for t in taken} | {CONFIG_SHEET_NAME.lower()}
    if base.lower() not in used:
        return base
    k = 2
    while True:
        suffix = f' ({k})'
        candidate = base[:MAX_SHEET_NAME - len(suffix)] + suffix
        if candidate.lower() not in used:
            return candidate
        k += 1


def _add_tab_sheet(wb, tab, index: int, rows, config):
    filtered = filter_rows(rows, config.type_column, tab.row_types)
    items = segment_rows(filtered, config.time_column, config.gap_threshold_seconds)

    title = unique_sheet_name(tab.name, index + 1, wb.sheetnames)
    ws = wb.create_sheet(title)
    columns = tab.columns
    for ci in range(1, len(columns) + 1):
        ws.column_dimensions[get_column_letter(ci)].width = DEFAULT_COL_WIDTH

    current_row = 1
    if config.title_block.enabled:
        current_row += apply_title_block(ws, config.title_block, tab.name, len(columns))

    header_row = current_row
    _write_header(ws, header_row, columns)
    ws.freeze_panes = f'A{header_row + 1}'
    current_row += 1

    styles = _StyleCache()
    for item in items:
        if is_separator(item):
            ws.row_dimensions[current_row].height = SEPARATOR_ROW_HEIGHT
            current_row += 1
            continue
        style = resolve_style(row_type_of(item, config.type_column), item,
                              config.row_formats, config.cell_conditions)
        ws.row_dimensions[current_row].height = DATA_ROW_HEIGHT
        for ci, col in enumerate(columns, start=1):
            cell = ws.cell(row=current_row, column=ci)
            _set_value(cell, item.get(col, ''))
            styles.apply(cell, style)
        current_row += 1

    _autofit_columns(ws, len(columns), first_row=header_row)
    return ws


def _write_header(ws, row: int, columns):
    font = Font(name=DEFAULT_FONT_NAME, size=DEFAULT_FONT_SIZE, bold=True, color='FFFFFFFF')
    fill = PatternFill(fill_type='solid', start_color=HEADER_FILL, end_color=HEADER_FILL)
    align = Alignment(horizontal='center', vertical='center')
    for ci, col in enumerate(columns, start=1):
        cell = ws.cell(row=row, column=ci)
        _set_value(cell, col)
        cell.font = font
        cell.fill = fill
        cell.alignment = align
        cell.border = THIN_BOX
    ws.row_dimensions[row].height = HEADER_ROW_HEIGHT


class _StyleCache:
    """openpyxl style objects per resolved CellStyle."""

    _ALIGN = Alignment(horizontal='center', vertical='center', wrap_text=False)
    _NO_FILL = PatternFill(fill_type=None)

    def __init__(self):
        self._cache = {}

    def apply(self, cell, style):
        font, fill = self._get(style)
        cell.font = font
        cell.fill = fill
        cell.alignment = self._ALIGN
        cell.border = THIN_BOX

    def _get(self, style):
        if style not in self._cache:
            font = Font(name=style.font_name, size=style.font_size,
                        bold=style.bold, italic=style.italic,
                        underline='single' if style.underline else None,
                        color='FF000000')
            argb = to_argb(style.bg_color)
            if argb:
                fill = PatternFill(fill_type='solid', start_color=argb, end_color=argb)
            else:
                fill = self._NO_FILL
            self._cache[style] = (font, fill)
        return self._cache[style]


# --- Cell helpers ---

def _set_value(cell, value):
    """Write a scalar, keeping text that starts with '=' as text."""
    if value is None or value == '':
        cell.value = None
        return
    if isinstance(value, str):
        value = strip_illegal(value)
    try:
        cell.value = value
    except (ValueError, TypeError):
        cell.value = strip_illegal(str(value))
    if isinstance(value, str) and value.startswith('='):
        cell.data_type = 's'


def _autofit_columns(ws, col_count: int, first_row: int = 1):
    """Width = longest value + padding, at least 10 chars, capped at 60."""
    widths = [MIN_COL_CHARS] * col_count
    for row in ws.iter_rows(min_row=first_row, max_row=ws.max_row,
                            min_col=1, max_col=col_count, values_only=True):
        for ci, value in enumerate(row):
            if value is None:
                continue
            length = len(str(value))
            if length > widths[ci]:
                widths[ci] = length
    for ci, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(ci)].width = min(width + COL_PADDING, MAX_COL_WIDTH)
