"""Paginated PDF output for a cue list.

Generates one section per output tab:
- Title block masthead on the first page of each section
- Grid table with the header band repeated on every page
- Row format / override styling per cell
- Short blank rows where the cue times jump past the gap threshold
- Footer with show name, page number and version on every page
"""

import logging

import fitz  # PyMuPDF

from .gap_segmenter import filter_rows, is_separator, row_type_of, segment_rows
from .models import cell_text
from .style_resolver import hex_to_rgb, resolve_style
from .title_block import compute_layout, decode_image_data_url

logger = logging.getLogger(__name__)

# --- Page layout constants (A4 portrait: 595 x 842 pt) ---
PAGE_W = 595
PAGE_H = 842
MM = 72 / 25.4

MARGIN = 10 * MM
BOTTOM_MARGIN = 16 * MM
CONTENT_W = PAGE_W - 2 * MARGIN
FOOTER_Y = PAGE_H - 6 * MM

# Title block proportions and row heights
TB_LEFT_SHARE = 0.22
TB_MIDDLE_SHARE = 0.58
TB_ROW_HEIGHTS = (11 * MM, 14 * MM, 7 * MM, 7 * MM, 7 * MM)
TB_GAP = 4 * MM
TB_SCALE = 0.8          # masthead font sizes relative to the workbook's
TB_DESIGNER_SIZE = 8

# Table
BODY_SIZE = 9
HEADER_SIZE = 9
FOOTER_SIZE = 8
CELL_PAD = 4
LINE_HEIGHT_RATIO = 1.2
SEPARATOR_H = 6
GRID_WIDTH = 0.5

# Colors
BLACK = (0, 0, 0)
WHITE = (1, 1, 1)
GRID = (180 / 255, 180 / 255, 180 / 255)
HEAD_FILL = (46 / 255, 64 / 255, 87 / 255)
TB_BORDER = (31 / 255, 56 / 255, 100 / 255)
FOOTER_GRAY = (100 / 255, 100 / 255, 100 / 255)

FONT_REGULAR = 'Times-Roman'
FONT_BOLD = 'Times-Bold'
FONT_ITALIC = 'Times-Italic'
FONT_BOLD_ITALIC = 'Times-BoldItalic'


def build_pdf(rows: list[dict], columns: list[str], config,
              file_base_name: str = 'cue-sheet'):
    """Build the paginated document.

    Args:
        rows: Parsed cue rows, keyed by column name.
        columns: All column names (unused; each tab names its own columns).
        config: CueSheetConfig.
        file_base_name: Footer fallback when the title block has no show name.

    Returns:
        fitz.Document (caller saves/closes it).
    """
    tb = config.title_block
    footer_left = tb.show_name or file_base_name
    version = tb.version or ''

    doc = fitz.open()
    for tab in config.tabs:
        if not tab.columns:
            continue
        filtered = filter_rows(rows, config.type_column, tab.row_types)
        items = segment_rows(filtered, config.time_column, config.gap_threshold_seconds)
        _draw_tab_section(doc, tab, items, config)

    if doc.page_count == 0:
        doc.new_page(width=PAGE_W, height=PAGE_H)

    for number, page in enumerate(doc, start=1):
        _draw_footer(page, footer_left, number, version)

    return doc


def pdf_to_bytes(doc) -> bytes:
    return doc.tobytes()


# --- Section layout ---

def _draw_tab_section(doc, tab, items, config):
    """Lay out one tab, starting on a fresh page."""
    columns = tab.columns
    widths = _column_widths(columns, items)

    page = doc.new_page(width=PAGE_W, height=PAGE_H)
    y = MARGIN + TB_GAP
    if config.title_block.enabled:
        y = _draw_title_block(page, config.title_block, tab.name, len(columns))
    y = _draw_header_band(page, y, columns, widths)

    bottom = PAGE_H - BOTTOM_MARGIN
    for item in items:
        if is_separator(item):
            if y + SEPARATOR_H > bottom:
                continue  # a gap at a page break is the page break itself
            y += SEPARATOR_H
            continue

        row_type = row_type_of(item, config.type_column)
        texts = [cell_text(item.get(col)) for col in columns]
        styles = [resolve_style(row_type, item, config.row_formats,
                                config.cell_conditions, column=col)
                  for col in columns]
        height = _row_height(texts, styles, widths)

        if y + height > bottom:
            page = doc.new_page(width=PAGE_W, height=PAGE_H)
            y = _draw_header_band(page, MARGIN, columns, widths)

        x = MARGIN
        for text, style, w in zip(texts, styles, widths):
            rect = fitz.Rect(x, y, x + w, y + height)
            fill = hex_to_rgb(style.bg_color)
            page.draw_rect(rect, color=GRID, fill=fill, width=GRID_WIDTH)
            _draw_text_lines(page, rect, text, _font_for(style), BODY_SIZE, BLACK,
                             align='center', underline=style.underline)
            x += w
        y += height


def _draw_header_band(page, y, columns, widths):
    """Draw the column header row at y. Returns the y below it."""
    height = max(
        _text_block_height(_wrap_text(col, FONT_BOLD, HEADER_SIZE, w - 2 * CELL_PAD), HEADER_SIZE)
        for col, w in zip(columns, widths)
    )
    x = MARGIN
    for col, w in zip(columns, widths):
        rect = fitz.Rect(x, y, x + w, y + height)
        page.draw_rect(rect, color=GRID, fill=HEAD_FILL, width=GRID_WIDTH)
        _draw_text_lines(page, rect, col, FONT_BOLD, HEADER_SIZE, WHITE, align='center')
        x += w
    return y + height


def _column_widths(columns, items):
    """Share the content width in proportion to each column's widest text."""
    natural = []
    for col in columns:
        widest = fitz.get_text_length(col, fontname=FONT_BOLD, fontsize=HEADER_SIZE)
        for item in items:
            if is_separator(item):
                continue
            for line in cell_text(item.get(col)).split('\n'):
                widest = max(widest, fitz.get_text_length(line, fontname=FONT_BOLD,
                                                          fontsize=BODY_SIZE))
        natural.append(widest + 2 * CELL_PAD)
    total = sum(natural)
    return [w * CONTENT_W / total for w in natural]


def _row_height(texts, styles, widths):
    return max(
        _text_block_height(_wrap_text(text, _font_for(style), BODY_SIZE, w - 2 * CELL_PAD),
                           BODY_SIZE)
        for text, style, w in zip(texts, styles, widths)
    )


def _font_for(style):
    if style.bold and style.italic:
        return FONT_BOLD_ITALIC
    if style.bold:
        return FONT_BOLD
    if style.italic:
        return FONT_ITALIC
    return FONT_REGULAR


# --- Title block ---

def _draw_title_block(page, title_block, tab_name, col_count):
    """Draw the masthead at the top margin. Returns the y below it."""
    layout = compute_layout(title_block, tab_name, col_count)
    left_w = CONTENT_W * TB_LEFT_SHARE
    mid_w = CONTENT_W * TB_MIDDLE_SHARE
    right_w = CONTENT_W - left_w - mid_w
    x = MARGIN
    y = MARGIN
    heights = TB_ROW_HEIGHTS[:layout.content_rows]
    total_h = sum(heights)

    page.draw_rect(fitz.Rect(x, y, x + left_w, y + total_h),
                   color=None, fill=hex_to_rgb('D6E4F0'))
    page.draw_rect(fitz.Rect(x + left_w + mid_w, y, x + CONTENT_W, y + total_h),
                   color=None, fill=hex_to_rgb('E9F0FB'))

    row_y = y
    for row, h in zip(layout.rows, heights):
        rect = fitz.Rect(x + left_w, row_y, x + left_w + mid_w, row_y + h)
        page.draw_rect(rect, color=None, fill=hex_to_rgb(row.fill))
        font = FONT_BOLD if row.bold else (FONT_ITALIC if row.italic else FONT_REGULAR)
        _draw_text_lines(page, rect, row.text, font, row.font_size * TB_SCALE,
                         hex_to_rgb(row.color), align=row.align)
        row_y += h

    # Outer border and the two dividers
    page.draw_rect(fitz.Rect(x, y, x + CONTENT_W, y + total_h), color=TB_BORDER, width=1.4)
    page.draw_line(fitz.Point(x + left_w, y), fitz.Point(x + left_w, y + total_h),
                   color=TB_BORDER, width=1.4)
    page.draw_line(fitz.Point(x + left_w + mid_w, y), fitz.Point(x + left_w + mid_w, y + total_h),
                   color=TB_BORDER, width=1.4)

    _draw_text_lines(page, fitz.Rect(x, y, x + left_w, y + total_h), layout.designer_text,
                     FONT_BOLD, TB_DESIGNER_SIZE, TB_BORDER, align='left', valign='top')

    decoded = decode_image_data_url(layout.image_data_url)
    if decoded is not None:
        pad = 1.5 * MM
        rect = fitz.Rect(x + left_w + mid_w + pad, y + pad,
                         x + CONTENT_W - pad, y + total_h - pad)
        try:
            page.insert_image(rect, stream=decoded[0], keep_proportion=False)
        except (ValueError, RuntimeError) as e:
            logger.warning('Skipping title block image: %s', e)

    return y + total_h + TB_GAP


# --- Text helpers ---

def _wrap_text(text, fontname, fontsize, width):
    """Greedy word wrap. Words wider than the column are broken by character."""
    lines = []
    for paragraph in (text or '').split('\n'):
        current = ''
        for word in paragraph.split(' '):
            candidate = f'{current} {word}' if current else word
            if fitz.get_text_length(candidate, fontname=fontname, fontsize=fontsize) <= width:
                current = candidate
                continue
            if current:
                lines.append(current)
            current = ''
            for ch in word:
                if current and fitz.get_text_length(current + ch, fontname=fontname,
                                                    fontsize=fontsize) > width:
                    lines.append(current)
                    current = ch
                else:
                    current += ch
        lines.append(current)
    return lines or ['']


def _text_block_height(lines, fontsize):
    return len(lines) * fontsize * LINE_HEIGHT_RATIO + 2 * CELL_PAD


def _draw_text_lines(page, rect, text, fontname, fontsize, color,
                     align='center', valign='middle', underline=False):
    """Wrap text into rect and draw the lines that fit."""
    if not text:
        return
    line_h = fontsize * LINE_HEIGHT_RATIO
    lines = _wrap_text(text, fontname, fontsize, rect.width - 2 * CELL_PAD)
    fit = max(1, int((rect.height - 2 * CELL_PAD + 0.01) // line_h))
    lines = lines[:fit]

    block_h = len(lines) * line_h
    if valign == 'top':
        top = rect.y0 + CELL_PAD
    else:
        top = rect.y0 + (rect.height - block_h) / 2

    for i, line in enumerate(lines):
        tw = fitz.get_text_length(line, fontname=fontname, fontsize=fontsize)
        if align == 'left':
            x = rect.x0 + CELL_PAD
        else:
            x = rect.x0 + (rect.width - tw) / 2
        baseline = top + i * line_h + fontsize
        page.insert_text(fitz.Point(x, baseline), line,
                         fontname=fontname, fontsize=fontsize, color=color)
        if underline and line:
            page.draw_line(fitz.Point(x, baseline + 1), fitz.Point(x + tw, baseline + 1),
                           color=color, width=0.5)


def _draw_footer(page, show_name, page_number, version):
    """Show name on the left, page number centered, version on the right."""
    page.insert_text(fitz.Point(MARGIN, FOOTER_Y), show_name,
                     fontname=FONT_REGULAR, fontsize=FOOTER_SIZE, color=FOOTER_GRAY)
    number = str(page_number)
    tw = fitz.get_text_length(number, fontname=FONT_REGULAR, fontsize=FOOTER_SIZE)
    page.insert_text(fitz.Point(PAGE_W / 2 - tw / 2, FOOTER_Y), number,
                     fontname=FONT_REGULAR, fontsize=FOOTER_SIZE, color=FOOTER_GRAY)
    if version:
        label = f'Version: {version}'
        tw = fitz.get_text_length(label, fontname=FONT_REGULAR, fontsize=FOOTER_SIZE)
        page.insert_text(fitz.Point(PAGE_W - MARGIN - tw, FOOTER_Y), label,
                         fontname=FONT_REGULAR, fontsize=FOOTER_SIZE, color=FOOTER_GRAY)
