#!/usr/bin/env python3
"""CLI entry point for compiling a cue list into workbook and PDF outputs.

Usage:
    python compile_cues.py --data show_cues.xlsx --output ./output/ \\
        --type-column TYPE --time-column TIME --gap 0:02 \\
        --tab "Lights|LX,FOLLOW|CUE,TIME,NOTE" --tab "Sound|SQ|CUE,NOTE"
"""

import argparse
import dataclasses
import json
import logging
import os
import sys

# Add parent directory to path for imports (skip when frozen by PyInstaller)
if not getattr(sys, 'frozen', False):
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cuesheet.core.models import (
    CueSheetConfig, apply_saved_config, config_from_dict, guess_type_column,
    make_tab, sync_row_formats, unique_types,
)
from cuesheet.core.time_utils import parse_mmss_input
from cuesheet.core.workbook_builder import build_workbook
from cuesheet.core.pdf_generator import build_pdf
from cuesheet.adapters.xlsx_adapter import XlsxAdapter
from cuesheet.adapters.csv_adapter import CsvAdapter


def parse_tab_spec(spec: str):
    """'Name|TYPE1,TYPE2|Col1,Col2' -> TabDefinition."""
    parts = spec.split('|')
    if len(parts) != 3:
        raise ValueError(f'Tab spec must look like "Name|TYPES|COLUMNS": {spec!r}')
    name, types, cols = parts

    def split(text):
        return [s.strip() for s in text.split(',') if s.strip()]

    return make_tab(name.strip(), split(types), split(cols))


def detect_source(data_path: str) -> str:
    ext = os.path.splitext(data_path)[1].lower()
    return 'csv' if ext in ('.csv', '.txt') else 'xlsx'


def main():
    parser = argparse.ArgumentParser(description='Compile a cue list into styled outputs')
    parser.add_argument('--data', required=True, help='Input cue list (.xlsx, .xlsm or .csv)')
    parser.add_argument('--source', default=None, choices=['xlsx', 'csv'],
                        help='Input format (default: from the file extension)')
    parser.add_argument('--output', required=True, help='Output directory for generated files')
    parser.add_argument('--config', default=None,
                        help='JSON file with configuration (overrides the saved Configuration sheet)')
    parser.add_argument('--type-column', default=None, help='Column that classifies each cue')
    parser.add_argument('--time-column', default=None, help='Column used for gap detection')
    parser.add_argument('--gap', default=None,
                        help='Gap threshold as MM:SS; "0" or "" turns gaps off')
    parser.add_argument('--tab', action='append', default=[],
                        help='Output tab as "Name|TYPE1,TYPE2|Col1,Col2" (repeatable; replaces configured tabs)')
    parser.add_argument('--no-master', action='store_true', help='Leave out the Master sheet')
    parser.add_argument('--no-xlsx', action='store_true', help='Skip the workbook output')
    parser.add_argument('--no-pdf', action='store_true', help='Skip the PDF output')
    parser.add_argument('--base-name', default=None,
                        help='Output file name prefix (default: input file name)')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s: %(message)s')

    # Select adapter
    source = args.source or detect_source(args.data)
    if source == 'csv':
        adapter = CsvAdapter()
    elif source == 'xlsx':
        adapter = XlsxAdapter()
    else:
        print(f"Unknown source type: {source}")
        sys.exit(1)

    print(f"Parsing {args.data}...")
    try:
        sheet = adapter.parse(args.data)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Parsed {len(sheet.rows)} rows, {len(sheet.columns)} columns")

    # Build configuration: defaults < saved sheet < --config < flags
    config = CueSheetConfig(type_column=guess_type_column(sheet.columns))
    if sheet.saved_config:
        config = apply_saved_config(config, sheet.saved_config)
        print("Restored configuration from the Configuration sheet")

    if args.config:
        try:
            with open(args.config, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            print(f"Error: Config file not found: {args.config}")
            sys.exit(1)
        except json.JSONDecodeError as e:
            print(f"Error: Invalid JSON in config file: {e}")
            sys.exit(1)
        loaded = config_from_dict(data)
        config = apply_saved_config(config, {k: getattr(loaded, k) for k in data
                                             if hasattr(loaded, k)})

    updates = {}
    if args.type_column is not None:
        updates['type_column'] = args.type_column
    if args.time_column is not None:
        updates['time_column'] = args.time_column
    if args.gap is not None:
        updates['gap_threshold_seconds'] = parse_mmss_input(args.gap)
    if args.no_master:
        updates['include_master_sheet'] = False
    if args.tab:
        try:
            updates['tabs'] = [parse_tab_spec(spec) for spec in args.tab]
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)
    config = sync_row_formats(dataclasses.replace(config, **updates))

    for col in (config.type_column, config.time_column):
        if col and col not in sheet.columns:
            print(f"Warning: column {col!r} not found in {args.data}")

    types = unique_types(sheet.rows, config.type_column)
    print(f"Type column {config.type_column!r}: {len(types)} types {types}")
    if not config.tabs:
        print("Warning: no output tabs configured; only the Master and "
              "Configuration sheets will be written")

    os.makedirs(args.output, exist_ok=True)
    base = args.base_name or os.path.splitext(os.path.basename(args.data))[0]

    if not args.no_xlsx:
        xlsx_path = os.path.join(args.output, f'{base}-output.xlsx')
        wb = build_workbook(sheet.rows, sheet.columns, config, sheet.raw_bytes)
        wb.save(xlsx_path)
        print(f"Generated {xlsx_path}")

    if not args.no_pdf:
        pdf_path = os.path.join(args.output, f'{base}-output.pdf')
        doc = build_pdf(sheet.rows, sheet.columns, config, file_base_name=base)
        doc.save(pdf_path)
        doc.close()
        print(f"Generated {pdf_path}")

    print("\nDone!")


if __name__ == '__main__':
    main()
