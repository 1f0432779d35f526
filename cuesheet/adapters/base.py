"""Abstract base adapter for reading a cue list file into rows."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ParsedSheet:
    """What the builders need from an uploaded file."""
    rows: list = field(default_factory=list)       # [{column: value}]
    columns: list = field(default_factory=list)    # header order
    raw_bytes: bytes | None = None                 # original file contents
    saved_config: dict | None = None               # decoded Configuration sheet


class BaseAdapter(ABC):
    @abstractmethod
    def parse(self, data_path: str) -> ParsedSheet:
        """Parse the first sheet of a cue list file.

        Rows are dicts keyed by trimmed column name; missing cells are "".
        Raises ValueError when the file holds no usable sheet.
        """
        pass


def dedupe_headers(headers: list[str]) -> list[str]:
    """Suffix repeated header names: ['CUE', 'CUE'] -> ['CUE', 'CUE_1']."""
    seen = {}
    result = []
    for name in headers:
        if name in seen:
            seen[name] += 1
            candidate = f'{name}_{seen[name]}'
            while candidate in seen:
                seen[name] += 1
                candidate = f'{name}_{seen[name]}'
            seen[candidate] = 0
            result.append(candidate)
        else:
            seen[name] = 0
            result.append(name)
    return result


def rows_from_table(header: list, body: list) -> tuple[list[dict], list[str]]:
    """Turn a header row and body rows into (row dicts, column names).

    Blank header cells are dropped, fully blank rows are skipped.
    """
    positions = []
    names = []
    for i, value in enumerate(header):
        name = '' if value is None else str(value).strip()
        if name:
            positions.append(i)
            names.append(name)
    names = dedupe_headers(names)

    rows = []
    for values in body:
        row = {}
        blank = True
        for i, name in zip(positions, names):
            value = values[i] if i < len(values) else None
            if value is None:
                value = ''
            if value != '':
                blank = False
            row[name] = value
        if not blank:
            rows.append(row)
    return rows, names
