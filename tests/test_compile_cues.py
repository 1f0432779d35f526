"""Tests for the compile_cues command line front end."""

import json
import os
import sys

import fitz
import pytest
from openpyxl import load_workbook

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cuesheet import compile_cues
from cuesheet.adapters.xlsx_adapter import XlsxAdapter
from conftest import SHOW_COLUMNS, make_show_rows


@pytest.fixture
def show_csv(tmp_path):
    lines = [','.join(SHOW_COLUMNS)]
    for row in make_show_rows(40):
        lines.append(','.join(str(row[c]) for c in SHOW_COLUMNS))
    path = tmp_path / 'show.csv'
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return path


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, 'argv', ['compile_cues.py', *argv])
    compile_cues.main()


class TestParseTabSpec:
    def test_parse(self):
        tab = compile_cues.parse_tab_spec('Lights | LX, FOLLOW | CUE,TIME')
        assert tab.name == 'Lights'
        assert tab.row_types == ['LX', 'FOLLOW']
        assert tab.columns == ['CUE', 'TIME']

    def test_empty_types(self):
        assert compile_cues.parse_tab_spec('All||CUE').row_types == []

    def test_malformed(self):
        with pytest.raises(ValueError):
            compile_cues.parse_tab_spec('Lights|LX')

    def test_detect_source(self):
        assert compile_cues.detect_source('a.CSV') == 'csv'
        assert compile_cues.detect_source('a.xlsm') == 'xlsx'


class TestMain:
    def test_writes_both_outputs(self, monkeypatch, show_csv, tmp_path):
        out = tmp_path / 'out'
        _run(monkeypatch, '--data', str(show_csv), '--output', str(out),
             '--time-column', 'TIME', '--tab', 'Cues|CUE|CUE #,TIME')
        wb = load_workbook(str(out / 'show-output.xlsx'))
        assert wb.sheetnames == ['Master', 'Cues', 'Configuration']
        doc = fitz.open(str(out / 'show-output.pdf'))
        assert doc.page_count >= 1
        assert 'show' in doc[0].get_text()

    def test_type_column_guessed_and_rules_synced(self, monkeypatch, show_csv, tmp_path):
        out = tmp_path / 'out'
        _run(monkeypatch, '--data', str(show_csv), '--output', str(out), '--no-pdf',
             '--tab', 'Cues|CUE|CUE #', '--tab', 'Sound|SQ|NOTE')
        assert not (out / 'show-output.pdf').exists()
        saved = XlsxAdapter().parse(str(out / 'show-output.xlsx')).saved_config
        assert saved['type_column'] == 'TYPE'
        assert [r.row_type for r in saved['row_formats']] == ['CUE', 'SQ']

    def test_saved_configuration_is_restored(self, monkeypatch, show_csv, tmp_path):
        first = tmp_path / 'first'
        _run(monkeypatch, '--data', str(show_csv), '--output', str(first), '--no-pdf',
             '--time-column', 'TIME', '--gap', '0:03', '--tab', 'Cues|CUE|CUE #,TIME')
        second = tmp_path / 'second'
        _run(monkeypatch, '--data', str(first / 'show-output.xlsx'), '--output', str(second),
             '--no-pdf', '--base-name', 'again')
        saved = XlsxAdapter().parse(str(second / 'again-output.xlsx')).saved_config
        assert saved['gap_threshold_seconds'] == 3
        assert saved['time_column'] == 'TIME'
        assert [t.name for t in saved['tabs']] == ['Cues']

    def test_json_config(self, monkeypatch, show_csv, tmp_path):
        config_path = tmp_path / 'config.json'
        config_path.write_text(json.dumps({
            'include_master_sheet': False,
            'tabs': [{'name': 'Everything', 'columns': ['CUE #', 'NOTE']}],
        }), encoding='utf-8')
        out = tmp_path / 'out'
        _run(monkeypatch, '--data', str(show_csv), '--output', str(out), '--no-pdf',
             '--config', str(config_path))
        wb = load_workbook(str(out / 'show-output.xlsx'))
        assert wb.sheetnames == ['Everything', 'Configuration']

    def test_missing_file_exits(self, monkeypatch, tmp_path):
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch, '--data', str(tmp_path / 'nope.csv'), '--output', str(tmp_path))
        assert exc.value.code == 1

    def test_bad_tab_spec_exits(self, monkeypatch, show_csv, tmp_path):
        with pytest.raises(SystemExit):
            _run(monkeypatch, '--data', str(show_csv), '--output', str(tmp_path),
                 '--tab', 'broken')
