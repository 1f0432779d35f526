"""Read and write the reserved "Configuration" sheet.

The sheet is a two-column key/value list grouped under section headers:

    Column Mapping
    Type Column            | TYPE
    Include Master Sheet   | yes

    Gap Threshold
    Gap Threshold (MM:SS)  | 0:02
    Time Column            | TIME

    Title Block
    Title Block Enabled    | yes
    ...

    Output Tabs
    Tab Name               | Lights       <- group anchor
    Tab Row Types          | LX, FOLLOW
    Tab Columns            | CUE, TIME, NOTE

    Row Formats
    Row Name               | LX           <- group anchor
    Row Bold               | true
    ...

    Override Rules
    Override Column        | NOTE         <- group anchor
    Override Value         | *HOLD*
    ...

Singleton booleans are written yes/no while group booleans are true/false;
files in the wild use both, so both stay.

Writing merges into whatever sheet was there before: recognized values are
updated in place, unknown rows and groups the current configuration does not
mention are kept exactly as they were.
"""

import enum
import logging
from dataclasses import dataclass, field

from openpyxl.styles import Font, PatternFill

from .models import (
    CellConditionRule, RowFormatRule, TabDefinition, TitleBlock, cell_text,
    strip_illegal,
)
from .time_utils import format_mmss, parse_mmss_input

logger = logging.getLogger(__name__)


SHEET_NAME = 'Configuration'

SECTION_COLUMN_MAPPING = 'Column Mapping'
SECTION_GAP = 'Gap Threshold'
SECTION_TITLE_BLOCK = 'Title Block'
SECTION_TABS = 'Output Tabs'
SECTION_ROW_FORMATS = 'Row Formats'
SECTION_OVERRIDES = 'Override Rules'

SECTION_HEADERS = {h.lower(): h for h in (
    SECTION_COLUMN_MAPPING, SECTION_GAP, SECTION_TITLE_BLOCK,
    SECTION_TABS, SECTION_ROW_FORMATS, SECTION_OVERRIDES,
)}

HEADER_FILL = 'FFD9E1F2'
KEY_WIDTH = 30
VALUE_WIDTH = 50

# Excel refuses longer cell text
MAX_CELL_CHARS = 32767


# --- Key tables ---

@dataclass(frozen=True)
class _Singleton:
    label: str
    section: str
    aliases: tuple = ()

    @property
    def key(self):
        return self.label.lower()


SINGLETONS = (
    _Singleton('Type Column', SECTION_COLUMN_MAPPING),
    _Singleton('Include Master Sheet', SECTION_COLUMN_MAPPING),
    _Singleton('Gap Threshold (MM:SS)', SECTION_GAP, ('Gap Time',)),
    _Singleton('Time Column', SECTION_GAP),
    _Singleton('Title Block Enabled', SECTION_TITLE_BLOCK, ('Include Title Block',)),
    _Singleton('Company Name', SECTION_TITLE_BLOCK),
    _Singleton('Show Name', SECTION_TITLE_BLOCK),
    _Singleton('Lighting Designer', SECTION_TITLE_BLOCK),
    _Singleton('Version', SECTION_TITLE_BLOCK),
    _Singleton('Note 1', SECTION_TITLE_BLOCK),
    _Singleton('Note 2', SECTION_TITLE_BLOCK),
    _Singleton('Image', SECTION_TITLE_BLOCK),
)

_SINGLETON_BY_KEY = {}
for _s in SINGLETONS:
    _SINGLETON_BY_KEY[_s.key] = _s
    for _alias in _s.aliases:
        _SINGLETON_BY_KEY[_alias.lower()] = _s

TITLE_BLOCK_FIELDS = {
    'company name': 'company_name',
    'show name': 'show_name',
    'lighting designer': 'lighting_designer',
    'version': 'version',
    'note 1': 'note1',
    'note 2': 'note2',
    'image': 'image_data_url',
}


@dataclass(frozen=True)
class _SubKey:
    label: str
    attr: str
    kind: str   # 'list', 'bool', 'text', 'size' or 'font'
    aliases: tuple = ()

    @property
    def key(self):
        return self.label.lower()


@dataclass(frozen=True)
class _GroupSpec:
    name: str
    section: str
    anchor_label: str
    anchor_attr: str
    subkeys: tuple
    style_label: str = ''   # legacy "bold, italic, underline" row
    _lookup: dict = field(default_factory=dict, compare=False)

    def __post_init__(self):
        for sk in self.subkeys:
            self._lookup[sk.key] = sk
            for alias in sk.aliases:
                self._lookup[alias.lower()] = sk

    @property
    def anchor_key(self):
        return self.anchor_label.lower()

    def subkey(self, key: str):
        return self._lookup.get(key)

    def is_style_key(self, key: str) -> bool:
        return bool(self.style_label) and key == self.style_label.lower()

    def make_record(self, anchor_value: str):
        if self.name == 'tab':
            return TabDefinition(name=anchor_value)
        if self.name == 'row_format':
            return RowFormatRule(row_type=anchor_value)
        return CellConditionRule(column=anchor_value)

    def identity(self, record):
        if self.name == 'override':
            return (record.column.strip(), record.contains.strip())
        return getattr(record, self.anchor_attr).strip()


def _style_subkeys(prefix: str) -> tuple:
    return (
        _SubKey(f'{prefix} Bold', 'bold', 'bool'),
        _SubKey(f'{prefix} Italic', 'italic', 'bool'),
        _SubKey(f'{prefix} Underline', 'underline', 'bool'),
        _SubKey(f'{prefix} BG Color', 'bg_color', 'text', (f'{prefix} Colour',)),
        _SubKey(f'{prefix} Font Size', 'font_size', 'size'),
        _SubKey(f'{prefix} Font Name', 'font_name', 'font', (f'{prefix} Font',)),
    )


TAB_GROUP = _GroupSpec(
    'tab', SECTION_TABS, 'Tab Name', 'name',
    (
        _SubKey('Tab Row Types', 'row_types', 'list', ('Row Types',)),
        _SubKey('Tab Columns', 'columns', 'list', ('Columns',)),
    ),
)
ROW_FORMAT_GROUP = _GroupSpec(
    'row_format', SECTION_ROW_FORMATS, 'Row Name', 'row_type',
    _style_subkeys('Row'), style_label='Row Style',
)
OVERRIDE_GROUP = _GroupSpec(
    'override', SECTION_OVERRIDES, 'Override Column', 'column',
    (_SubKey('Override Value', 'contains', 'text'),) + _style_subkeys('Override'),
    style_label='Override Style',
)

GROUPS = (TAB_GROUP, ROW_FORMAT_GROUP, OVERRIDE_GROUP)
_GROUP_BY_ANCHOR = {g.anchor_key: g for g in GROUPS}


def _norm(key) -> str:
    return cell_text(key).strip().lower()


def _is_blank(row) -> bool:
    return not str(row[0]).strip() and not str(row[1]).strip()


# --- Reading the sheet ---

def find_config_sheet(wb):
    """The worksheet named "configuration" (any case), or None."""
    for ws in wb.worksheets:
        if is_config_sheet(ws):
            return ws
    return None


def is_config_sheet(ws) -> bool:
    return ws.title.strip().lower() == SHEET_NAME.lower()


def find_data_sheet(wb):
    """The first worksheet that is not the Configuration sheet, or None."""
    for ws in wb.worksheets:
        if not is_config_sheet(ws):
            return ws
    return None


def read_config_rows(ws) -> list[list[str]]:
    """All (key, value) rows of the sheet as strings, blank rows included."""
    rows = []
    for key, value in ws.iter_rows(min_row=1, max_row=ws.max_row,
                                   min_col=1, max_col=2, values_only=True):
        rows.append([cell_text(key), cell_text(value)])
    return rows


def load_saved_config(wb) -> dict | None:
    ws = find_config_sheet(wb)
    if ws is None:
        return None
    return decode_config_rows(read_config_rows(ws))


# --- Decoding ---

class _State(enum.Enum):
    NO_GROUP = 'no-group'
    BUILDING_TAB = 'building-tab'
    BUILDING_ROW_FORMAT = 'building-row-format'
    BUILDING_OVERRIDE = 'building-override'


_STATE_FOR_GROUP = {
    'tab': _State.BUILDING_TAB,
    'row_format': _State.BUILDING_ROW_FORMAT,
    'override': _State.BUILDING_OVERRIDE,
}


class _Decoder:
    """Small state machine turning key/value rows into a partial config.

    Anchor keys start a new record; section headers and anchors close the
    record in progress, which is then appended to its list.
    """

    def __init__(self):
        self.config = {}
        self.title_block = {}
        self.lists = {'tab': [], 'row_format': [], 'override': []}
        self.state = _State.NO_GROUP
        self.group = None
        self.record = None

    def feed(self, key: str, value: str):
        key_l = key.lower()
        if key_l in SECTION_HEADERS:
            self._close()
            return

        group = _GROUP_BY_ANCHOR.get(key_l)
        if group is not None:
            self._close()
            self.state = _STATE_FOR_GROUP[group.name]
            self.group = group
            self.record = group.make_record(value)
            return

        singleton = _SINGLETON_BY_KEY.get(key_l)
        if singleton is not None:
            self._set_singleton(singleton, key_l, value)
            return

        if self.state is _State.NO_GROUP:
            return  # unrecognized: ignored, kept on write
        sk = self.group.subkey(key_l)
        if sk is not None:
            _decode_into(self.record, sk, value)
        elif self.group.is_style_key(key_l):
            flags = [p.strip() for p in value.lower().split(',')]
            self.record.bold = 'bold' in flags
            self.record.italic = 'italic' in flags
            self.record.underline = 'underline' in flags

    def finish(self) -> dict | None:
        self._close()
        config = dict(self.config)
        if self.title_block:
            config['title_block'] = TitleBlock(**self.title_block)
        if self.lists['tab']:
            config['tabs'] = self.lists['tab']
        if self.lists['row_format']:
            config['row_formats'] = self.lists['row_format']
        if self.lists['override']:
            config['cell_conditions'] = self.lists['override']
        return config or None

    def _close(self):
        if self.record is not None:
            self.lists[self.group.name].append(self.record)
        self.state = _State.NO_GROUP
        self.group = None
        self.record = None

    def _set_singleton(self, singleton: _Singleton, key_l: str, value: str):
        canon = singleton.key
        if canon == 'type column':
            self.config['type_column'] = value
        elif canon == 'time column':
            self.config['time_column'] = value
        elif canon == 'gap threshold (mm:ss)':
            self.config['gap_threshold_seconds'] = parse_mmss_input(value)
        elif canon == 'include master sheet':
            self.config['include_master_sheet'] = value.lower() == 'yes'
        elif canon == 'title block enabled':
            self.title_block['enabled'] = value.lower() == 'yes'
        else:
            self.title_block[TITLE_BLOCK_FIELDS[canon]] = value


def _decode_into(record, sk: _SubKey, value: str):
    if sk.kind == 'list':
        setattr(record, sk.attr, [s.strip() for s in value.split(',') if s.strip()])
    elif sk.kind == 'bool':
        setattr(record, sk.attr, value.lower() == 'true')
    elif sk.kind == 'size':
        try:
            number = float(value)
        except ValueError:
            return
        if number > 0:
            setattr(record, sk.attr, int(number) if number.is_integer() else number)
    elif sk.kind == 'font':
        if value:
            setattr(record, sk.attr, value)
    else:
        setattr(record, sk.attr, value)


def decode_config_rows(rows) -> dict | None:
    """Turn (key, value) rows into a partial configuration dict.

    Keys of the dict are CueSheetConfig field names. Returns None when the
    rows hold nothing recognizable.
    """
    if not rows:
        return None
    decoder = _Decoder()
    for row in rows:
        key = cell_text(row[0]).strip() if len(row) > 0 else ''
        value = cell_text(row[1]).strip() if len(row) > 1 else ''
        if key:
            decoder.feed(key, value)
    return decoder.finish()


# --- Encoding ---

def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _encode_value(kind: str, value) -> str:
    if kind == 'list':
        return ', '.join(value)
    if kind == 'bool':
        return 'true' if value else 'false'
    if kind == 'size':
        return _format_number(value)
    return '' if value is None else str(value)


def _style_text(record) -> str:
    return ', '.join(name for name in ('bold', 'italic', 'underline')
                     if getattr(record, name))


def _singleton_values(config) -> list:
    """(singleton, value, may_append) triples in writing order.

    An image too large for a cell blanks any saved Image row and is never
    appended.
    """
    tb = config.title_block
    gap = config.gap_threshold_seconds
    values = {
        'type column': config.type_column,
        'include master sheet': 'yes' if config.include_master_sheet else 'no',
        'gap threshold (mm:ss)': format_mmss(gap) if gap and gap > 0 else '',
        'time column': config.time_column,
        'title block enabled': 'yes' if tb.enabled else 'no',
        'company name': tb.company_name,
        'show name': tb.show_name,
        'lighting designer': tb.lighting_designer,
        'version': tb.version,
        'note 1': tb.note1,
        'note 2': tb.note2,
        'image': tb.image_data_url,
    }
    pairs = []
    for singleton in SINGLETONS:
        value = values[singleton.key] or ''
        if singleton.key == 'image' and len(value) > MAX_CELL_CHARS:
            logger.warning('Title block image is too large to save (%d characters); '
                           'it will not be restored from this file', len(value))
            pairs.append((singleton, '', False))
            continue
        pairs.append((singleton, value, True))
    return pairs


class _SnapshotIndex:
    """Positions of sections, singletons and groups in a snapshot.

    Rebuilt after every structural change to the snapshot; never kept
    between encode calls.
    """

    def __init__(self, snapshot):
        self.sections = {}
        self.singletons = {}
        self.groups = {g.name: {} for g in GROUPS}
        for i, (key, value) in enumerate(snapshot):
            key_l = _norm(key)
            if key_l in SECTION_HEADERS:
                self.sections.setdefault(key_l, i)
            elif key_l in _SINGLETON_BY_KEY:
                self.singletons.setdefault(_SINGLETON_BY_KEY[key_l].key, i)
            elif key_l in _GROUP_BY_ANCHOR:
                group = _GROUP_BY_ANCHOR[key_l]
                self.groups[group.name].setdefault(_snapshot_identity(snapshot, group, i), i)


def _group_end(snapshot, anchor_idx: int) -> int:
    """Index just past the group starting at anchor_idx."""
    j = anchor_idx + 1
    while j < len(snapshot):
        key_l = _norm(snapshot[j][0])
        if key_l in SECTION_HEADERS or key_l in _GROUP_BY_ANCHOR:
            break
        j += 1
    return j


def _snapshot_identity(snapshot, group: _GroupSpec, anchor_idx: int):
    anchor_value = cell_text(snapshot[anchor_idx][1]).strip()
    if group.name != 'override':
        return anchor_value
    contains = ''
    for j in range(anchor_idx + 1, _group_end(snapshot, anchor_idx)):
        if _norm(snapshot[j][0]) == 'override value':
            contains = cell_text(snapshot[j][1]).strip()
            break
    return (anchor_value, contains)


def _section_end(snapshot, header_idx: int) -> int:
    """Index just past the last non-blank row of the section at header_idx."""
    last = header_idx
    j = header_idx + 1
    while j < len(snapshot):
        if _norm(snapshot[j][0]) in SECTION_HEADERS:
            break
        if not _is_blank(snapshot[j]):
            last = j
        j += 1
    return last + 1


def _insert_into_section(snapshot, index: _SnapshotIndex, section: str, new_rows: list):
    """Put new_rows at the end of section, creating the section if needed."""
    header_idx = index.sections.get(section.lower())
    if header_idx is None:
        if snapshot:
            snapshot.append(['', ''])
        snapshot.append([section, ''])
        snapshot.extend(new_rows)
    else:
        at = _section_end(snapshot, header_idx)
        snapshot[at:at] = new_rows


def _group_rows(group: _GroupSpec, record) -> list:
    rows = [[group.anchor_label, getattr(record, group.anchor_attr)]]
    for sk in group.subkeys:
        rows.append([sk.label, _encode_value(sk.kind, getattr(record, sk.attr))])
    return rows


def _patch_group(snapshot, group: _GroupSpec, anchor_idx: int, record) -> None:
    """Update known sub-keys of an existing group in place.

    Unknown rows inside the group are left alone. Known sub-keys the group
    lacks are inserted after its last recognized row.
    """
    end = _group_end(snapshot, anchor_idx)
    seen = set()
    last_known = anchor_idx
    for j in range(anchor_idx + 1, end):
        key_l = _norm(snapshot[j][0])
        sk = group.subkey(key_l)
        if sk is not None:
            snapshot[j][1] = _encode_value(sk.kind, getattr(record, sk.attr))
            seen.add(sk.key)
            last_known = j
        elif group.is_style_key(key_l):
            snapshot[j][1] = _style_text(record)
            last_known = j
    missing = [[sk.label, _encode_value(sk.kind, getattr(record, sk.attr))]
               for sk in group.subkeys if sk.key not in seen]
    if missing:
        snapshot[last_known + 1:last_known + 1] = missing


def encode_config_rows(config, existing_rows=None) -> list[list[str]]:
    """Merge config into existing (key, value) rows and return the result.

    The input rows are not modified.
    """
    snapshot = [[cell_text(r[0]) if len(r) > 0 else '',
                 cell_text(r[1]) if len(r) > 1 else '']
                for r in (existing_rows or [])]

    for singleton, value, may_append in _singleton_values(config):
        index = _SnapshotIndex(snapshot)
        pos = index.singletons.get(singleton.key)
        if pos is not None:
            snapshot[pos][1] = value
        elif may_append:
            _insert_into_section(snapshot, index, singleton.section,
                                 [[singleton.label, value]])

    for group, records in ((TAB_GROUP, config.tabs),
                           (ROW_FORMAT_GROUP, config.row_formats),
                           (OVERRIDE_GROUP, config.cell_conditions)):
        for record in records:
            index = _SnapshotIndex(snapshot)
            pos = index.groups[group.name].get(group.identity(record))
            if pos is not None:
                _patch_group(snapshot, group, pos, record)
            else:
                _insert_into_section(snapshot, index, group.section,
                                     _group_rows(group, record))

    return snapshot


# --- Writing the sheet ---

def _set_text(cell, value: str):
    value = strip_illegal(value or '')
    cell.value = value or None
    if value and value.startswith('='):
        cell.data_type = 's'


def write_config_sheet(wb, config, existing_rows=None):
    """Replace (or create) the Configuration sheet as the last sheet of wb.

    The merge base is the Configuration sheet already in wb, or else
    existing_rows (e.g. the sheet of the originally uploaded file).
    """
    ws = find_config_sheet(wb)
    if ws is not None:
        existing_rows = read_config_rows(ws)
        wb.remove(ws)

    rows = encode_config_rows(config, existing_rows)

    ws = wb.create_sheet(SHEET_NAME)
    header_font = Font(bold=True)
    header_fill = PatternFill(fill_type='solid', start_color=HEADER_FILL, end_color=HEADER_FILL)
    for r, (key, value) in enumerate(rows, start=1):
        if not key and not value:
            continue
        key_cell = ws.cell(row=r, column=1)
        _set_text(key_cell, key)
        _set_text(ws.cell(row=r, column=2), value)
        if _norm(key) in SECTION_HEADERS:
            key_cell.font = header_font
            key_cell.fill = header_fill
    ws.column_dimensions['A'].width = KEY_WIDTH
    ws.column_dimensions['B'].width = VALUE_WIDTH
    return ws
