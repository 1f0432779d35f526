"""Adapter for comma-separated cue lists."""

import csv
import io

from .base import BaseAdapter, ParsedSheet, rows_from_table


class CsvAdapter(BaseAdapter):
    """Parse a CSV file whose first row is the header.

    Values stay as text; time cells such as "1:30" are parsed later by the
    gap detection. CSV files carry no saved configuration.
    """

    def __init__(self, delimiter: str = ','):
        self.delimiter = delimiter

    def parse(self, data_path: str) -> ParsedSheet:
        with open(data_path, 'rb') as f:
            raw = f.read()
        return self.parse_bytes(raw)

    def parse_bytes(self, raw: bytes) -> ParsedSheet:
        text = raw.decode('utf-8-sig', errors='replace')
        table = [r for r in csv.reader(io.StringIO(text), delimiter=self.delimiter)]
        if not table:
            raise ValueError('The first sheet appears to be empty.')
        rows, columns = rows_from_table(table[0], table[1:])
        if not rows:
            raise ValueError('The first sheet appears to be empty.')
        return ParsedSheet(rows=rows, columns=columns, raw_bytes=raw)
