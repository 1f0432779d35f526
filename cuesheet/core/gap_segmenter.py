"""Row filtering and time-gap segmentation for output tabs."""

from .models import cell_text
from .time_utils import parse_time_to_seconds, has_gap


class _Separator:
    """Marker inserted between rows separated by a time gap."""

    def __repr__(self):
        return 'SEPARATOR'


SEPARATOR = _Separator()


def is_separator(item) -> bool:
    return item is SEPARATOR


def row_type_of(row: dict, type_column: str) -> str:
    if not type_column:
        return ''
    return cell_text(row.get(type_column)).strip()


def filter_rows(rows: list[dict], type_column: str, row_types: list[str]) -> list[dict]:
    """Keep rows whose type value is one of row_types.

    No filtering happens when row_types is empty or no type column is set.
    """
    if not row_types or not type_column:
        return list(rows)
    accepted = set(row_types)
    return [row for row in rows if row_type_of(row, type_column) in accepted]


def segment_rows(rows: list, time_column: str, threshold_seconds: int) -> list:
    """Insert SEPARATOR before rows that follow the previous timed row by more
    than threshold_seconds.

    Rows without a parseable time pass through untouched and do not move the
    reference point. Existing separators are passed through and ignored, so
    segmenting twice gives the same result.
    """
    if not time_column or threshold_seconds <= 0:
        return list(rows)

    output = []
    prev_secs = None
    for item in rows:
        if is_separator(item):
            output.append(item)
            continue
        secs = parse_time_to_seconds(item.get(time_column))
        if secs is not None:
            if prev_secs is not None and has_gap(prev_secs, secs, threshold_seconds):
                if not (output and is_separator(output[-1])):
                    output.append(SEPARATOR)
            prev_secs = secs
        output.append(item)
    return output
