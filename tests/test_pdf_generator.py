"""Tests for the paginated PDF output."""

import base64
import io
import os
import sys

import pytest
from PIL import Image

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cuesheet.core.models import CueSheetConfig, TitleBlock, make_tab
from cuesheet.core.pdf_generator import (
    PAGE_H, PAGE_W, _wrap_text, build_pdf, pdf_to_bytes,
)
from conftest import SHOW_COLUMNS, make_show_rows


@pytest.fixture
def titled_config(show_config):
    show_config.title_block = TitleBlock(enabled=True, show_name='Hamlet',
                                         company_name='Globe', version='3')
    return show_config


class TestBuildPdf:
    def test_a4_pages(self, show_rows, show_config):
        doc = build_pdf(show_rows, SHOW_COLUMNS, show_config)
        page = doc[0]
        assert (round(page.rect.width), round(page.rect.height)) == (PAGE_W, PAGE_H)

    def test_long_tab_paginates_with_repeated_header(self, show_config):
        rows = make_show_rows(300)
        doc = build_pdf(rows, SHOW_COLUMNS, show_config)
        assert doc.page_count > 1
        for page in doc:
            assert 'CUE #' in page.get_text()

    def test_footer_on_every_page(self, titled_config):
        doc = build_pdf(make_show_rows(300), SHOW_COLUMNS, titled_config)
        for number, page in enumerate(doc, start=1):
            text = page.get_text()
            assert 'Hamlet' in text
            assert 'Version: 3' in text
            assert str(number) in text

    def test_footer_falls_back_to_file_name(self, show_rows, show_config):
        doc = build_pdf(show_rows, SHOW_COLUMNS, show_config, file_base_name='act1')
        assert 'act1' in doc[0].get_text()

    def test_each_tab_starts_a_page(self, show_rows, titled_config):
        show_rows = show_rows[:20]
        titled_config.tabs.append(make_tab('Sound', ['SQ'], ['CUE #', 'NOTE']))
        doc = build_pdf(show_rows, SHOW_COLUMNS, titled_config)
        assert doc.page_count == 2
        assert 'Cues Master Cue List' in doc[0].get_text()
        assert 'Sound Master Cue List' in doc[1].get_text()
        assert 'Sound Master Cue List' not in doc[0].get_text()

    def test_only_filtered_rows(self, show_rows, show_config):
        show_config.tabs = [make_tab('Sound', ['SQ'], ['NOTE'])]
        text = build_pdf(show_rows, SHOW_COLUMNS, show_config)[0].get_text()
        assert 'Cue 2' in text
        assert 'Cue 3\n' not in text

    def test_no_tabs_gives_one_blank_page(self, show_rows):
        doc = build_pdf(show_rows, SHOW_COLUMNS, CueSheetConfig())
        assert doc.page_count == 1

    def test_tabs_without_columns_skipped(self, show_rows, show_config):
        show_config.tabs.append(make_tab('Empty', [], []))
        assert build_pdf(show_rows, SHOW_COLUMNS, show_config).page_count == 1

    def test_title_block_image(self, show_rows, titled_config):
        buf = io.BytesIO()
        Image.new('RGB', (8, 8), 'blue').save(buf, 'PNG')
        titled_config.title_block.image_data_url = (
            'data:image/png;base64,' + base64.b64encode(buf.getvalue()).decode('ascii'))
        doc = build_pdf(show_rows, SHOW_COLUMNS, titled_config)
        assert len(doc[0].get_images()) == 1

    def test_bytes(self, show_rows, show_config):
        data = pdf_to_bytes(build_pdf(show_rows, SHOW_COLUMNS, show_config))
        assert data.startswith(b'%PDF')


class TestWrapText:
    def test_short_text_one_line(self):
        assert _wrap_text('GO', 'Times-Roman', 9, 100) == ['GO']

    def test_wraps_on_words(self):
        lines = _wrap_text('one two three four five six', 'Times-Roman', 9, 40)
        assert len(lines) > 1
        assert ' '.join(lines) == 'one two three four five six'

    def test_breaks_long_words(self):
        lines = _wrap_text('x' * 200, 'Times-Roman', 9, 50)
        assert len(lines) > 1
        assert ''.join(lines) == 'x' * 200

    def test_keeps_newlines(self):
        assert _wrap_text('a\nb', 'Times-Roman', 9, 100) == ['a', 'b']
