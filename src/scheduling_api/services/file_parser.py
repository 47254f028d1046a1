"""Parse CSV and Excel user sheets into normalized row dictionaries."""

import csv
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence

import openpyxl
import xlrd

logger = logging.getLogger(__name__)

USER_FIELDS = ("first_name", "last_name", "email", "password", "role", "phone", "department")

HEADER_ALIASES = {
    "firstname": "first_name",
    "first name": "first_name",
    "first_name": "first_name",
    "lastname": "last_name",
    "last name": "last_name",
    "last_name": "last_name",
    "email": "email",
    "password": "password",
    "role": "role",
    "phone": "phone",
    "phone number": "phone",
    "phone_number": "phone",
    "department": "department",
    "dept": "department",
}


class FileParseError(Exception):
    """The file as a whole could not be read."""


def normalize_header(header: Any) -> Optional[str]:
    """Map a raw header cell to a user field name, or None if it is not one."""
    if header is None:
        return None
    return HEADER_ALIASES.get(str(header).strip().lower())


def cell_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def rows_to_records(headers: Sequence[Any], rows: Iterable[Sequence[Any]]) -> List[Dict[str, str]]:
    """
    Turn a header row and data rows into dictionaries keyed by user field.

    Unknown columns are ignored, completely blank rows are skipped and the
    first column mapped to a field wins when aliases repeat.
    """
    fields = [normalize_header(header) for header in headers]
    records = []
    for row in rows:
        values = [cell_to_text(value) for value in row]
        if not any(values):
            continue
        record = {name: "" for name in USER_FIELDS}
        seen = set()
        for index, name in enumerate(fields):
            if name is None or name in seen or index >= len(values):
                continue
            seen.add(name)
            record[name] = values[index]
        records.append(record)
    return records


def parse_csv(path: str) -> List[Dict[str, str]]:
    try:
        with open(path, newline="", encoding="utf-8-sig") as handle:
            reader = csv.reader(handle)
            headers = next(reader, None)
            if headers is None:
                return []
            return rows_to_records(headers, reader)
    except (csv.Error, UnicodeDecodeError) as e:
        raise FileParseError(f"Error parsing CSV file: {e}") from e


def parse_xlsx(path: str) -> List[Dict[str, str]]:
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as e:
        raise FileParseError(f"Error parsing Excel file: {e}") from e
    try:
        sheet = workbook.worksheets[0]
        rows = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()
    rows = [row for row in rows if any(cell is not None and str(cell).strip() for cell in row)]
    if not rows:
        raise FileParseError("Excel file is empty")
    return rows_to_records(rows[0], rows[1:])


def parse_xls(path: str) -> List[Dict[str, str]]:
    try:
        workbook = xlrd.open_workbook(path)
    except xlrd.XLRDError as e:
        raise FileParseError(f"Error parsing Excel file: {e}") from e
    sheet = workbook.sheet_by_index(0)
    if sheet.nrows == 0:
        raise FileParseError("Excel file is empty")
    rows = [sheet.row_values(index) for index in range(sheet.nrows)]
    return rows_to_records(rows[0], rows[1:])


PARSERS = {
    ".csv": parse_csv,
    ".xlsx": parse_xlsx,
    ".xls": parse_xls,
}


def parse_user_file(path: str) -> List[Dict[str, str]]:
    """
    Parse an uploaded user sheet by extension.

    Raises:
        FileParseError: unsupported extension, unreadable or empty spreadsheet
    """
    extension = os.path.splitext(path)[1].lower()
    parser = PARSERS.get(extension)
    if parser is None:
        raise FileParseError("Unsupported file format")
    records = parser(path)
    logger.debug(f"Parsed {len(records)} rows from {os.path.basename(path)}")
    return records
