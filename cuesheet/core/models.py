"""Data models for the cue sheet compiler."""

import dataclasses
import re
import uuid
from dataclasses import dataclass, field

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE


DEFAULT_FONT_NAME = 'Times New Roman'
DEFAULT_FONT_SIZE = 11
DEFAULT_GAP_SECONDS = 2

TYPE_COLUMN_PATTERN = re.compile(r'type|category|cue.?type', re.IGNORECASE)


def new_id(prefix: str) -> str:
    """Opaque identifier, e.g. 'tab-3f9c2a1b'."""
    return f'{prefix}-{uuid.uuid4().hex[:8]}'


@dataclass
class TitleBlock:
    """Masthead content rendered above each tab's header row."""
    enabled: bool = False
    show_name: str = ''
    company_name: str = ''
    lighting_designer: str = ''
    version: str = ''
    note1: str = ''
    note2: str = ''
    image_data_url: str = ''  # "data:image/png;base64,..." or ""


@dataclass
class TabDefinition:
    id: str = field(default_factory=lambda: new_id('tab'))
    name: str = ''
    row_types: list = field(default_factory=list)   # [] = all rows
    columns: list = field(default_factory=list)     # [] = tab skipped


@dataclass
class RowFormatRule:
    """Style applied to every row whose type value equals row_type."""
    id: str = field(default_factory=lambda: new_id('rfr'))
    row_type: str = ''
    bg_color: str = ''        # "#RRGGBB"; "" = no fill
    bold: bool = False
    italic: bool = False
    underline: bool = False
    font_size: float = DEFAULT_FONT_SIZE
    font_name: str = DEFAULT_FONT_NAME


@dataclass
class CellConditionRule:
    """Override applied when a cell value glob-matches `contains`."""
    id: str = field(default_factory=lambda: new_id('ccr'))
    column: str = ''          # "" = any column
    contains: str = ''        # case-insensitive glob; "" never matches
    bg_color: str = ''
    bold: bool = False
    italic: bool = False
    underline: bool = False
    font_size: float = DEFAULT_FONT_SIZE
    font_name: str = DEFAULT_FONT_NAME


@dataclass
class CueSheetConfig:
    """Everything needed to turn a cue list into output documents."""
    type_column: str = ''
    time_column: str = ''
    gap_threshold_seconds: int = DEFAULT_GAP_SECONDS  # 0 disables gaps
    title_block: TitleBlock = field(default_factory=TitleBlock)
    tabs: list = field(default_factory=list)
    include_master_sheet: bool = True
    row_formats: list = field(default_factory=list)
    cell_conditions: list = field(default_factory=list)


def make_tab(name: str, row_types=None, columns=None) -> TabDefinition:
    return TabDefinition(name=name, row_types=list(row_types or []),
                         columns=list(columns or []))


def make_row_format_rule(row_type: str) -> RowFormatRule:
    return RowFormatRule(row_type=row_type)


def make_cell_condition_rule(column: str = '', contains: str = '') -> CellConditionRule:
    return CellConditionRule(column=column, contains=contains)


# --- Helpers used by the command line front end ---

def unique_types(rows: list[dict], type_column: str) -> list[str]:
    """Sorted distinct non-empty values of the type column."""
    if not type_column:
        return []
    seen = set()
    for row in rows:
        value = cell_text(row.get(type_column)).strip()
        if value:
            seen.add(value)
    return sorted(seen)


def guess_type_column(columns: list[str]) -> str:
    """Pick the first column that looks like it classifies cues."""
    for col in columns:
        if TYPE_COLUMN_PATTERN.search(col):
            return col
    return ''


def sync_row_formats(config: CueSheetConfig) -> CueSheetConfig:
    """Make sure every row type used by a tab has a format rule.

    Existing rules are kept as they are; missing ones are appended with
    default styling in sorted order.
    """
    used = set()
    for tab in config.tabs:
        used.update(tab.row_types)
    known = {rule.row_type for rule in config.row_formats}
    missing = sorted(rt for rt in used if rt not in known)
    if not missing:
        return config
    rules = list(config.row_formats) + [make_row_format_rule(rt) for rt in missing]
    return dataclasses.replace(config, row_formats=rules)


def apply_saved_config(config: CueSheetConfig, partial: dict | None) -> CueSheetConfig:
    """Overlay a partial configuration (as decoded from a Configuration sheet)."""
    if not partial:
        return config
    known = {f.name for f in dataclasses.fields(CueSheetConfig)}
    updates = {k: v for k, v in partial.items() if k in known}
    return dataclasses.replace(config, **updates)


# --- JSON conversion ---

def config_to_dict(config: CueSheetConfig) -> dict:
    return dataclasses.asdict(config)


def config_from_dict(data: dict) -> CueSheetConfig:
    """Build a configuration from a JSON-style dict, ignoring unknown keys."""
    data = dict(data or {})
    kwargs = _known_kwargs(CueSheetConfig, data)
    if isinstance(data.get('title_block'), dict):
        kwargs['title_block'] = TitleBlock(**_known_kwargs(TitleBlock, data['title_block']))
    for key, cls in (('tabs', TabDefinition),
                     ('row_formats', RowFormatRule),
                     ('cell_conditions', CellConditionRule)):
        if key in data:
            kwargs[key] = [cls(**_known_kwargs(cls, item)) for item in data[key] or []]
    return CueSheetConfig(**kwargs)


def _known_kwargs(cls, data: dict) -> dict:
    names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def cell_text(value) -> str:
    """Stringify a cell value the way it reads on screen."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def strip_illegal(text: str) -> str:
    """Drop control characters that worksheets cannot store."""
    return ILLEGAL_CHARACTERS_RE.sub('', text)
