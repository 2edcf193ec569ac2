"""
Spreadsheet decoding and template generation.

Only the first sheet of a workbook is read. Cells are rendered to the text a
spreadsheet displays, so "1001" stays an item code rather than becoming the
float 1001.0; numeric coercion happens later in the field mapper.
"""
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from ..entities import CellValue, RowMap
from ..errors import ParseError

logger = logging.getLogger(__name__)

# Excel refuses sheet titles longer than this.
MAX_SHEET_TITLE_LENGTH = 31


@dataclass
class ParsedSpreadsheet:
    rows: List[RowMap]
    row_count: int
    columns: List[str] = field(default_factory=list)


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    # repr() switches to exponent notation for very small or large values.
    return format(Decimal(repr(value)), "f")


def _cell_to_text(value: Any) -> CellValue:
    """Render one cell the way the workbook displays it; empty cells become None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return None
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalars
        value = value.item()
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isnan(value):
            return None
        return _format_number(value)
    if isinstance(value, int):
        return str(value)
    text = str(value)
    return text if text.strip() != "" else None


def parse_spreadsheet(file_content: bytes) -> ParsedSpreadsheet:
    """
    Decode the first sheet of an Excel workbook into ordered row-maps.

    The header row provides the keys. Every row carries every column and
    empty cells are None, so callers can tell an absent column from an
    empty value. Rows with no value at all are dropped.

    Raises:
        ParseError: when the bytes are not a workbook or it has no sheets.
    """
    if not file_content:
        raise ParseError("Uploaded file is empty")

    try:
        workbook = pd.ExcelFile(io.BytesIO(file_content), engine="openpyxl")
    except Exception as exc:
        raise ParseError(f"Could not read Excel file: {exc}") from exc

    with workbook:
        if not workbook.sheet_names:
            raise ParseError("Workbook contains no sheets")

        first_sheet = workbook.sheet_names[0]
        try:
            df = workbook.parse(sheet_name=first_sheet, dtype=object)
        except Exception as exc:
            raise ParseError(f"Could not read sheet '{first_sheet}': {exc}") from exc

    columns = [str(column).strip() for column in df.columns]
    df.columns = columns

    rows: List[RowMap] = []
    for record in df.to_dict("records"):
        row = {column: _cell_to_text(record[column]) for column in columns}
        if all(value is None for value in row.values()):
            continue
        rows.append(row)

    logger.info(
        "Parsed sheet '%s': %d rows, columns: %s",
        first_sheet,
        len(rows),
        columns,
    )
    return ParsedSpreadsheet(rows=rows, row_count=len(rows), columns=columns)


def generate_template(
    entity_type: str,
    columns: Sequence[str],
    sample_rows: Optional[Sequence[Dict[str, Any]]] = None,
) -> bytes:
    """
    Build a single-sheet workbook whose header row is exactly ``columns``.

    Sample rows are written in column order; keys outside ``columns`` are dropped.
    """
    df = pd.DataFrame(list(sample_rows or []), columns=list(columns))

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=entity_type[:MAX_SHEET_TITLE_LENGTH], index=False)
    return buffer.getvalue()
