"""Proportional masthead laid out above each output tab.

Layout for n columns:

  LEFT ~22%       | MIDDLE (remainder)                | RIGHT ~20%
  ----------------+-----------------------------------+-------------
  Lighting        | {Company}'s {Show}                | image,
  Designer        | {Tab} Master Cue List  (largest)  | merged over
  (merged over    | Version: {version}                | all content
  all rows)       | Note 1                            | rows
                  | Note 2 (only when set)            |
  ----------------------- spacer row -----------------------------

The masthead has fixed colours and typography; user style rules do not
apply to it.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass

from openpyxl.drawing.image import Image as XLImage
from openpyxl.drawing.spreadsheet_drawing import AnchorMarker, TwoCellAnchor
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from .models import DEFAULT_FONT_NAME, strip_illegal

logger = logging.getLogger(__name__)

LEFT_SHARE = 0.22
RIGHT_SHARE = 0.20
MIN_LAYOUT_COLS = 3

TITLE_SUFFIX = ' Master Cue List'

# Fixed masthead palette (hex RRGGBB)
HEADER_FILL = '1F3864'
TITLE_FILL = '2E5496'
LEFT_FILL = 'D6E4F0'
RIGHT_FILL = 'E9F0FB'
NOTE_FILL = 'EEF3FB'
WHITE = 'FFFFFF'
VERSION_TEXT = '333333'
NOTE_TEXT = '444444'

SPACER_HEIGHT = 8

DATA_URL_RE = re.compile(r'^data:image/(png|jpe?g|gif);base64,(.*)$', re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class MastheadRow:
    """One content row of the middle region."""
    text: str
    fill: str
    color: str
    font_size: float
    bold: bool = False
    italic: bool = False
    align: str = 'center'
    height: float = 18


@dataclass(frozen=True)
class TitleBlockLayout:
    col_count: int
    left_cols: int
    right_cols: int
    middle_cols: int
    designer_text: str
    rows: tuple
    image_data_url: str = ''

    @property
    def middle_start(self) -> int:
        """1-based first column of the middle region."""
        return self.left_cols + 1

    @property
    def middle_end(self) -> int:
        return self.left_cols + self.middle_cols

    @property
    def right_start(self) -> int:
        return self.col_count - self.right_cols + 1

    @property
    def content_rows(self) -> int:
        return len(self.rows)

    @property
    def rows_consumed(self) -> int:
        """Content rows plus the trailing spacer."""
        return len(self.rows) + 1


def region_widths(col_count: int) -> tuple[int, int, int]:
    """(left, middle, right) column counts for a tab with col_count columns."""
    n = max(col_count, MIN_LAYOUT_COLS)
    left = max(1, int(n * LEFT_SHARE))
    right = max(1, int(n * RIGHT_SHARE))
    return left, n - left - right, right


def full_title(title_block) -> str:
    """"{Company}'s {Show}", skipping whichever part is blank."""
    parts = [s.strip() for s in (title_block.company_name, title_block.show_name)]
    return "'s ".join(p for p in parts if p)


def compute_layout(title_block, tab_name: str, col_count: int) -> TitleBlockLayout:
    left, middle, right = region_widths(col_count)

    designer = title_block.lighting_designer
    designer_text = f'Lighting Designer:\n{designer}' if designer else 'Lighting Designer:'

    rows = [
        MastheadRow(full_title(title_block), HEADER_FILL, WHITE, 13, bold=True, height=22),
        MastheadRow(f'{tab_name}{TITLE_SUFFIX}', TITLE_FILL, WHITE, 18, bold=True, height=40),
        MastheadRow(f'Version: {title_block.version}' if title_block.version else '',
                    NOTE_FILL, VERSION_TEXT, 10),
        MastheadRow(title_block.note1 or '', NOTE_FILL, NOTE_TEXT, 10,
                    italic=True, align='left'),
    ]
    if title_block.note2.strip():
        rows.append(MastheadRow(title_block.note2, NOTE_FILL, NOTE_TEXT, 10,
                                italic=True, align='left'))

    return TitleBlockLayout(
        col_count=left + middle + right,
        left_cols=left,
        right_cols=right,
        middle_cols=middle,
        designer_text=designer_text,
        rows=tuple(rows),
        image_data_url=title_block.image_data_url or '',
    )


def decode_image_data_url(data_url: str):
    """Return (image bytes, extension) for a base64 image data URL, else None."""
    if not data_url:
        return None
    m = DATA_URL_RE.match(data_url.strip())
    if not m:
        return None
    ext = m.group(1).lower()
    if ext == 'jpg':
        ext = 'jpeg'
    try:
        data = base64.b64decode(m.group(2), validate=False)
    except (binascii.Error, ValueError):
        return None
    if not data:
        return None
    return data, ext


# --- openpyxl rendering ---

_THICK = Side(style='medium')
_THICK_BOX = Border(left=_THICK, right=_THICK, top=_THICK, bottom=_THICK)


def _fill(hex6: str) -> PatternFill:
    return PatternFill(fill_type='solid', start_color='FF' + hex6, end_color='FF' + hex6)


def apply_title_block(ws, title_block, tab_name: str, col_count: int) -> int:
    """Render the masthead at the top of ws. Returns the rows consumed."""
    layout = compute_layout(title_block, tab_name, col_count)
    last_row = layout.content_rows

    # Left: lighting designer, merged over every content row
    ws.merge_cells(start_row=1, start_column=1, end_row=last_row, end_column=layout.left_cols)
    cell = ws.cell(row=1, column=1, value=strip_illegal(layout.designer_text))
    cell.font = Font(name=DEFAULT_FONT_NAME, size=10, bold=True, color='FF' + HEADER_FILL)
    cell.fill = _fill(LEFT_FILL)
    cell.alignment = Alignment(horizontal='left', vertical='top', wrap_text=True)
    cell.border = _THICK_BOX

    # Right: image area, merged over every content row
    ws.merge_cells(start_row=1, start_column=layout.right_start,
                   end_row=last_row, end_column=layout.col_count)
    cell = ws.cell(row=1, column=layout.right_start)
    cell.fill = _fill(RIGHT_FILL)
    cell.border = _THICK_BOX
    cell.alignment = Alignment(horizontal='center', vertical='center')

    # Middle: one merged band per content row
    for r, row in enumerate(layout.rows, start=1):
        if layout.middle_end > layout.middle_start:
            ws.merge_cells(start_row=r, start_column=layout.middle_start,
                           end_row=r, end_column=layout.middle_end)
        cell = ws.cell(row=r, column=layout.middle_start, value=strip_illegal(row.text) or None)
        cell.font = Font(name=DEFAULT_FONT_NAME, size=row.font_size, bold=row.bold,
                         italic=row.italic, color='FF' + row.color)
        cell.fill = _fill(row.fill)
        cell.alignment = Alignment(horizontal=row.align, vertical='center', wrap_text=True)
        cell.border = _THICK_BOX
        ws.row_dimensions[r].height = row.height

    ws.row_dimensions[last_row + 1].height = SPACER_HEIGHT

    _embed_image(ws, layout)
    return layout.rows_consumed


def _embed_image(ws, layout: TitleBlockLayout):
    decoded = decode_image_data_url(layout.image_data_url)
    if decoded is None:
        return
    data, _ext = decoded
    try:
        img = XLImage(io.BytesIO(data))
    except (OSError, ValueError) as e:
        logger.warning('Skipping title block image: %s', e)
        return
    img.anchor = TwoCellAnchor(
        editAs='oneCell',
        _from=AnchorMarker(col=layout.right_start - 1, row=0),
        to=AnchorMarker(col=layout.col_count, row=layout.content_rows),
    )
    ws.add_image(img)
