"""Shared fixtures: a synthetic 100-cue show."""

import os
import sys

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from cuesheet.core.models import CueSheetConfig, make_tab


def make_show_rows(count=100):
    """Alternating CUE/SQ rows; the clock jumps 5 s at every tenth row."""
    rows = []
    t = 0
    for i in range(count):
        t += 5 if i % 10 == 0 else 1
        rows.append({
            'CUE #': i + 1,
            'TYPE': 'CUE' if i % 2 == 0 else 'SQ',
            'TIME': f'{t // 60:02d}:{t % 60:02d}',
            'NOTE': 'Hold for GO' if i == 4 else f'Cue {i + 1}',
        })
    return rows


SHOW_COLUMNS = ['CUE #', 'TYPE', 'TIME', 'NOTE']


@pytest.fixture
def show_rows():
    return make_show_rows()


@pytest.fixture
def show_config():
    return CueSheetConfig(
        type_column='TYPE',
        time_column='TIME',
        gap_threshold_seconds=2,
        tabs=[make_tab('Cues', ['CUE'], ['CUE #', 'TIME'])],
    )
