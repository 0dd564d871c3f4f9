"""
Sheet Reader - worksheet rows as header-keyed dictionaries.

Cells are rendered as display text so every downstream coercion starts from
the same representation regardless of how the cell was typed in Excel.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Any, Dict, Iterator, List, Optional

import openpyxl
from openpyxl.workbook.workbook import Workbook

from services.errors import SheetNotFoundError

logger = logging.getLogger(__name__)

DATE_DISPLAY_FORMAT = '%d/%m/%Y'
DATETIME_DISPLAY_FORMAT = '%d/%m/%Y %H:%M:%S'

# Worksheet row 1 is the header row
FIRST_DATA_ROW = 2


class SheetRow(dict):
    """Header-keyed cell text for one worksheet row, plus its row number."""

    def __init__(self, values: Dict[str, Optional[str]], row_number: int):
        super().__init__(values)
        self.row_number = row_number


@contextmanager
def open_workbook(file_path: str) -> Iterator[Workbook]:
    """
    Open a workbook for reading; the handle is closed on exit, including on error.

    Formulas are read as their cached values.
    """
    logger.info(f"Opening workbook: {file_path}")
    workbook = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    try:
        yield workbook
    finally:
        workbook.close()


def cell_to_text(value: Any) -> Optional[str]:
    """Render a cell value the way it is displayed in the sheet."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime) and value.time() != time.min:
        return value.strftime(DATETIME_DISPLAY_FORMAT)
    if isinstance(value, (datetime, date)):
        return value.strftime(DATE_DISPLAY_FORMAT)
    text = str(value)
    return text if text != '' else None


def read_sheet(workbook: Workbook, sheet_name: Optional[str] = None) -> List[SheetRow]:
    """
    Read data rows from a worksheet.

    The first row is the header row. Columns with an empty header are
    ignored, cells missing from a row are None and rows with no values at
    all are skipped. Each row keeps its worksheet row number, so blank rows
    never shift the numbers of the rows after them.

    Args:
        workbook: Open workbook
        sheet_name: Worksheet to read (default: first sheet)

    Returns:
        SheetRow per non-empty data row, keyed by header text

    Raises:
        SheetNotFoundError: if ``sheet_name`` is not in the workbook
    """
    if sheet_name:
        if sheet_name not in workbook.sheetnames:
            raise SheetNotFoundError(sheet_name)
        worksheet = workbook[sheet_name]
    else:
        worksheet = workbook.worksheets[0]

    rows = worksheet.iter_rows(values_only=True)
    header_row = next(rows, None)
    if header_row is None:
        logger.info(f"Sheet '{worksheet.title}' is empty")
        return []

    headers = [cell_to_text(h) for h in header_row]

    data = []
    for row_number, values in enumerate(rows, start=FIRST_DATA_ROW):
        record = {}
        for index, header in enumerate(headers):
            if header is None:
                continue
            record[header] = cell_to_text(values[index]) if index < len(values) else None
        if any(v is not None for v in record.values()):
            data.append(SheetRow(record, row_number))

    logger.info(f"Read {len(data)} rows from sheet '{worksheet.title}'")
    return data


def read_excel_sheet(file_path: str, sheet_name: Optional[str] = None) -> List[SheetRow]:
    """Open ``file_path``, read one sheet and close the workbook."""
    with open_workbook(file_path) as workbook:
        return read_sheet(workbook, sheet_name)
