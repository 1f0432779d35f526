"""Time parsing, gap arithmetic and glob matching for cue list cells."""

import datetime
import math
import re


SECONDS_PER_DAY = 86400

HMS_RE = re.compile(r'^(\d+):(\d{1,2}):(\d{1,2})$')
MS_RE = re.compile(r'^(\d{1,2}):(\d{2})$')
MMSS_INPUT_RE = re.compile(r'^(\d+):(\d{2})$')


def parse_time_to_seconds(value) -> int | None:
    """Parse a cell value into whole seconds.

    Handles:
      - spreadsheet day fractions (0 < v < 1, e.g. 0.5 = 12:00:00)
      - numbers >= 1, taken as seconds already
      - "H:MM:SS" and "MM:SS" strings
      - numeric strings, parsed and run through the numeric rules
      - datetime.time / datetime.timedelta (time-formatted xlsx cells)

    Returns None for empty or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        if value < 1:
            return int(math.floor(value * SECONDS_PER_DAY + 0.5))
        return int(math.floor(value + 0.5))

    if isinstance(value, datetime.time):
        return value.hour * 3600 + value.minute * 60 + value.second

    if isinstance(value, datetime.timedelta):
        return parse_time_to_seconds(value.total_seconds())

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        m = HMS_RE.match(text)
        if m:
            return int(m.group(1)) * 3600 + int(m.group(2)) * 60 + int(m.group(3))
        m = MS_RE.match(text)
        if m:
            return int(m.group(1)) * 60 + int(m.group(2))
        try:
            number = float(text)
        except ValueError:
            return None
        return parse_time_to_seconds(number)

    return None


def has_gap(prev_seconds: int, seconds: int, threshold_seconds: int) -> bool:
    if threshold_seconds <= 0:
        return False
    return seconds - prev_seconds > threshold_seconds


def parse_mmss_input(text) -> int:
    """Parse an "MM:SS" threshold into seconds. Returns 0 on failure."""
    m = MMSS_INPUT_RE.match(str(text if text is not None else '').strip())
    if not m:
        return 0
    return int(m.group(1)) * 60 + int(m.group(2))


def format_mmss(seconds: int) -> str:
    """Format seconds as "M:SS" (minutes unbounded)."""
    seconds = int(seconds)
    return f'{seconds // 60}:{seconds % 60:02d}'


def glob_match(pattern: str, value: str) -> bool:
    """Case-insensitive glob match where only `*` is special.

    "P*" matches "PLAY" but not "STOP"; "*P" matches "STOP".
    Without a `*` the match is exact. An empty pattern never matches.
    """
    if not pattern:
        return False
    regex = '.*'.join(re.escape(part) for part in pattern.split('*'))
    return re.fullmatch(regex, value, re.IGNORECASE | re.DOTALL) is not None
