"""Adapter for .xlsx/.xlsm cue lists (first sheet + saved Configuration)."""

import io
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from cuesheet.core.config_sheet import find_data_sheet, load_saved_config
from .base import BaseAdapter, ParsedSheet, rows_from_table


class XlsxAdapter(BaseAdapter):
    """Read the first worksheet of an Excel workbook, skipping Configuration.

    Cached formula results are used (data_only), so exported sheets read
    back as the values they display. A "Configuration" sheet, when present,
    is decoded into saved_config.
    """

    def parse(self, data_path: str) -> ParsedSheet:
        with open(data_path, 'rb') as f:
            raw = f.read()
        return self.parse_bytes(raw)

    def parse_bytes(self, raw: bytes) -> ParsedSheet:
        try:
            wb = load_workbook(io.BytesIO(raw), data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise ValueError(f'Could not read the file as a workbook: {e}') from e

        ws = find_data_sheet(wb)
        if ws is None:
            raise ValueError('No sheets found in the file.')

        table = [list(r) for r in ws.iter_rows(values_only=True)]
        if not table:
            raise ValueError('The first sheet appears to be empty.')
        rows, columns = rows_from_table(table[0], table[1:])
        if not rows:
            raise ValueError('The first sheet appears to be empty.')

        return ParsedSheet(
            rows=rows,
            columns=columns,
            raw_bytes=raw,
            saved_config=load_saved_config(wb),
        )
