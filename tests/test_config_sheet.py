"""Tests for the Configuration sheet codec.

Covers decoding (including legacy key spellings), the additive merge when
writing over an existing sheet, and round trips through a real workbook.
"""

import os
import sys

import pytest
from openpyxl import Workbook

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cuesheet.core.config_sheet import (
    SHEET_NAME, decode_config_rows, encode_config_rows, find_config_sheet,
    load_saved_config, read_config_rows, write_config_sheet,
)
from cuesheet.core.models import (
    CellConditionRule, CueSheetConfig, RowFormatRule, TitleBlock, make_tab,
)


@pytest.fixture
def config():
    return CueSheetConfig(
        type_column='TYPE',
        time_column='TIME',
        gap_threshold_seconds=75,
        include_master_sheet=False,
        title_block=TitleBlock(enabled=True, show_name='Hamlet', company_name='Globe',
                               lighting_designer='Jane Doe', version='3',
                               note1='Preview', note2=''),
        tabs=[make_tab('Lights', ['LX', 'FOLLOW'], ['CUE', 'TIME', 'NOTE'])],
        row_formats=[RowFormatRule(row_type='LX', bg_color='#112233', bold=True,
                                   underline=True, font_size=14, font_name='Arial')],
        cell_conditions=[CellConditionRule(column='NOTE', contains='*HOLD*',
                                           italic=True, bg_color='#FFFF00')],
    )


def _keys(rows):
    return [key for key, _ in rows]


def _value(rows, key):
    for k, v in rows:
        if k == key:
            return v
    raise KeyError(key)


class TestDecode:
    ROWS = [
        ['Column Mapping', ''],
        ['Type Column', 'TYPE'],
        ['', ''],
        ['Gap Threshold', ''],
        ['Gap Time', '0:05'],
        ['Time Column', 'TIME'],
        ['Title Block', ''],
        ['Include Title Block', 'yes'],
        ['Show Name', 'Hamlet'],
        ['Output Tabs', ''],
        ['Tab Name', 'Lights'],
        ['Row Types', 'LX, FOLLOW'],
        ['Columns', 'CUE, TIME'],
        ['Row Formats', ''],
        ['Row Name', 'LX'],
        ['Row Colour', '#FF0000'],
        ['Row Style', 'bold, underline'],
        ['Row Font Size', '14'],
        ['Override Rules', ''],
        ['Override Column', ''],
        ['Override Value', '*HOLD*'],
        ['Override Bold', 'true'],
        ['Mystery Key', 'x'],
    ]

    def test_singletons_and_legacy_aliases(self):
        partial = decode_config_rows(self.ROWS)
        assert partial['type_column'] == 'TYPE'
        assert partial['time_column'] == 'TIME'
        assert partial['gap_threshold_seconds'] == 5
        assert partial['title_block'].enabled is True
        assert partial['title_block'].show_name == 'Hamlet'
        assert 'include_master_sheet' not in partial

    def test_tab_group(self):
        tab, = decode_config_rows(self.ROWS)['tabs']
        assert tab.name == 'Lights'
        assert tab.row_types == ['LX', 'FOLLOW']
        assert tab.columns == ['CUE', 'TIME']

    def test_row_format_group_with_legacy_style(self):
        rule, = decode_config_rows(self.ROWS)['row_formats']
        assert rule.row_type == 'LX'
        assert rule.bg_color == '#FF0000'
        assert (rule.bold, rule.italic, rule.underline) == (True, False, True)
        assert rule.font_size == 14

    def test_override_group(self):
        rule, = decode_config_rows(self.ROWS)['cell_conditions']
        assert rule.column == ''
        assert rule.contains == '*HOLD*'
        assert rule.bold is True

    def test_keys_are_case_insensitive(self):
        partial = decode_config_rows([['TYPE COLUMN', 'Kind'], ['include master sheet', 'NO']])
        assert partial == {'type_column': 'Kind', 'include_master_sheet': False}

    def test_section_header_closes_group(self):
        rows = [['Tab Name', 'A'], ['Row Formats', ''], ['Tab Columns', 'CUE']]
        tab, = decode_config_rows(rows)['tabs']
        assert tab.columns == []

    def test_bad_font_size_ignored(self):
        rows = [['Row Name', 'LX'], ['Row Font Size', 'big']]
        assert decode_config_rows(rows)['row_formats'][0].font_size == 11

    def test_nothing_recognizable(self):
        assert decode_config_rows([]) is None
        assert decode_config_rows([['Hello', 'world'], ['', '']]) is None


class TestRoundTrip:
    def test_decode_of_encode(self, config):
        partial = decode_config_rows(encode_config_rows(config))
        assert partial['type_column'] == 'TYPE'
        assert partial['time_column'] == 'TIME'
        assert partial['gap_threshold_seconds'] == 75
        assert partial['include_master_sheet'] is False
        assert partial['title_block'] == config.title_block

        tab, = partial['tabs']
        assert (tab.name, tab.row_types, tab.columns) == ('Lights', ['LX', 'FOLLOW'],
                                                          ['CUE', 'TIME', 'NOTE'])

        rule, = partial['row_formats']
        expected = config.row_formats[0]
        for attr in ('row_type', 'bg_color', 'bold', 'italic', 'underline',
                     'font_size', 'font_name'):
            assert getattr(rule, attr) == getattr(expected, attr)

        cond, = partial['cell_conditions']
        expected = config.cell_conditions[0]
        for attr in ('column', 'contains', 'bg_color', 'bold', 'italic',
                     'underline', 'font_size', 'font_name'):
            assert getattr(cond, attr) == getattr(expected, attr)

    def test_gap_zero_written_blank(self, config):
        config.gap_threshold_seconds = 0
        rows = encode_config_rows(config)
        assert _value(rows, 'Gap Threshold (MM:SS)') == ''
        assert decode_config_rows(rows)['gap_threshold_seconds'] == 0

    def test_oversized_image_not_persisted(self, config):
        config.title_block.image_data_url = 'data:image/png;base64,' + 'A' * 40000
        assert 'Image' not in _keys(encode_config_rows(config))

    def test_oversized_image_clears_saved_image(self, config):
        config.title_block.image_data_url = 'data:image/png;base64,' + 'A' * 40000
        existing = [['Title Block', ''], ['Image', 'data:image/png;base64,OLD']]
        rows = encode_config_rows(config, existing)
        assert rows[1] == ['Image', '']
        assert _keys(rows).count('Image') == 1
        assert decode_config_rows(rows)['title_block'].image_data_url == ''

    def test_new_image_replaces_saved_image(self, config):
        config.title_block.image_data_url = 'data:image/png;base64,NEW'
        existing = [['Title Block', ''], ['Image', 'data:image/png;base64,OLD']]
        partial = decode_config_rows(encode_config_rows(config, existing))
        assert partial['title_block'].image_data_url == 'data:image/png;base64,NEW'

    def test_through_workbook(self, config):
        wb = Workbook()
        write_config_sheet(wb, config)
        partial = load_saved_config(wb)
        assert partial['tabs'][0].name == 'Lights'
        assert partial['title_block'].show_name == 'Hamlet'


class TestMerge:
    def test_encode_is_idempotent(self, config):
        once = encode_config_rows(config)
        assert encode_config_rows(config, once) == once

    def test_idempotent_over_foreign_rows(self, config):
        existing = [['Notes', 'hand written'], ['Row Formats', ''], ['Row Name', 'OLD'],
                    ['Row Bold', 'true'], ['Row Custom', 'zzz']]
        once = encode_config_rows(config, existing)
        assert encode_config_rows(config, once) == once

    def test_unmentioned_groups_are_kept(self, config):
        existing = [['Row Formats', ''], ['Row Name', 'OLD'],
                    ['Row Bold', 'true'], ['Row Custom', 'zzz']]
        rows = encode_config_rows(config, existing)
        partial = decode_config_rows(rows)
        names = [r.row_type for r in partial['row_formats']]
        assert names == ['OLD', 'LX']
        assert partial['row_formats'][0].bold is True
        # the unknown row stays inside its group
        assert rows.index(['Row Custom', 'zzz']) == rows.index(['Row Name', 'OLD']) + 2

    def test_unknown_rows_survive(self, config):
        existing = [['Mystery', '42'], ['', ''], ['Column Mapping', ''], ['Type Column', 'OLD']]
        rows = encode_config_rows(config, existing)
        assert rows[0] == ['Mystery', '42']
        assert rows[1] == ['', '']
        assert _value(rows, 'Type Column') == 'TYPE'

    def test_existing_group_updated_in_place(self, config):
        existing = [['Output Tabs', ''], ['Tab Name', 'Lights'],
                    ['Tab Row Types', 'LX'], ['Tab Columns', 'CUE']]
        rows = encode_config_rows(config, existing)
        assert _keys(rows).count('Tab Name') == 1
        assert rows[2] == ['Tab Row Types', 'LX, FOLLOW']
        assert rows[3] == ['Tab Columns', 'CUE, TIME, NOTE']

    def test_legacy_alias_updated_in_place(self, config):
        existing = [['Gap Threshold', ''], ['Gap Time', '0:05']]
        rows = encode_config_rows(config, existing)
        assert rows[1] == ['Gap Time', '1:15']
        assert 'Gap Threshold (MM:SS)' not in _keys(rows)

    def test_legacy_style_row_rewritten(self, config):
        existing = [['Row Formats', ''], ['Row Name', 'LX'], ['Row Style', 'italic']]
        rows = encode_config_rows(config, existing)
        assert rows[2] == ['Row Style', 'bold, underline']
        rule, = decode_config_rows(rows)['row_formats']
        assert (rule.bold, rule.italic, rule.underline) == (True, False, True)

    def test_missing_subkeys_inserted_into_group(self, config):
        existing = [['Row Formats', ''], ['Row Name', 'LX'], ['Row Bold', 'false'],
                    ['Row Name', 'SQ']]
        rows = encode_config_rows(config, existing)
        lx = rows.index(['Row Name', 'LX'])
        sq = rows.index(['Row Name', 'SQ'])
        group_keys = _keys(rows[lx + 1:sq])
        assert 'Row Underline' in group_keys
        assert 'Row Font Name' in group_keys
        assert decode_config_rows(rows)['row_formats'][0].underline is True

    def test_singleton_inserted_into_its_section(self, config):
        existing = [['Column Mapping', ''], ['Type Column', 'TYPE'], ['', ''],
                    ['Title Block', ''], ['Show Name', 'Old Show']]
        rows = encode_config_rows(config, existing)
        assert rows[2] == ['Include Master Sheet', 'no']
        assert rows[3] == ['', '']
        assert _value(rows, 'Show Name') == 'Hamlet'

    def test_override_identity_includes_value(self, config):
        existing = [['Override Rules', ''], ['Override Column', 'NOTE'],
                    ['Override Value', '*STANDBY*'], ['Override Bold', 'true']]
        rows = encode_config_rows(config, existing)
        conds = decode_config_rows(rows)['cell_conditions']
        assert [c.contains for c in conds] == ['*STANDBY*', '*HOLD*']

    def test_input_rows_not_modified(self, config):
        existing = [['Column Mapping', ''], ['Type Column', 'OLD']]
        encode_config_rows(config, existing)
        assert existing == [['Column Mapping', ''], ['Type Column', 'OLD']]


class TestWriteSheet:
    def test_sheet_is_last_and_styled(self, config):
        wb = Workbook()
        ws = write_config_sheet(wb, config)
        assert wb.sheetnames[-1] == SHEET_NAME
        assert ws['A1'].value == 'Column Mapping'
        assert ws['A1'].font.b is True
        assert ws['A1'].fill.fgColor.rgb == 'FFD9E1F2'
        assert ws.column_dimensions['A'].width == 30
        assert ws.column_dimensions['B'].width == 50

    def test_replaces_existing_sheet(self, config):
        wb = Workbook()
        old = wb.create_sheet('configuration')
        old.append(['Mystery', 'keep me'])
        wb.create_sheet('Notes')
        write_config_sheet(wb, config)
        assert wb.sheetnames == ['Sheet', 'Notes', SHEET_NAME]
        rows = read_config_rows(find_config_sheet(wb))
        assert rows[0] == ['Mystery', 'keep me']

    def test_existing_rows_used_as_merge_base(self, config):
        wb = Workbook()
        write_config_sheet(wb, config, [['Mystery', 'from upload']])
        rows = read_config_rows(wb[SHEET_NAME])
        assert rows[0] == ['Mystery', 'from upload']

    def test_control_characters_dropped(self, config):
        config.title_block.note1 = 'Line\x0bone'
        config.tabs[0].name = 'Lights\x01'
        wb = Workbook()
        write_config_sheet(wb, config)
        rows = read_config_rows(wb[SHEET_NAME])
        assert ['Note 1', 'Lineone'] in rows
        assert ['Tab Name', 'Lights'] in rows

    def test_formula_like_text_kept_as_text(self, config):
        config.title_block.note1 = '=SUM(A1:A2)'
        wb = Workbook()
        ws = write_config_sheet(wb, config)
        cell = next(c for c in ws['B'] if c.value == '=SUM(A1:A2)')
        assert cell.data_type == 's'

    def test_written_sheet_reads_back_identically(self, config):
        wb = Workbook()
        write_config_sheet(wb, config)
        rows = read_config_rows(wb[SHEET_NAME])
        assert rows == encode_config_rows(config)
