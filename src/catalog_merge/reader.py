"""Row extraction from supplier workbooks.

``iter_workbook_rows`` yields every row of every sheet as a list of cell
strings, trailing empty cells removed. Anything that prevents the workbook
from being read is reported as ``SpreadsheetReadError`` so the caller can skip
the file.
"""

from __future__ import annotations

import logging
import zipfile
from collections.abc import Callable, Iterable, Iterator
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from catalog_merge.exceptions import SpreadsheetReadError

logger = logging.getLogger(__name__)

RowSource = Callable[[Path], Iterable[list[str]]]


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        # Article codes typed as numbers come back as 100.0
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _trim_trailing_empty(cells: list[str]) -> list[str]:
    end = len(cells)
    while end and cells[end - 1] == "":
        end -= 1
    return cells[:end]


def iter_workbook_rows(path: Path) -> Iterator[list[str]]:
    try:
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetReadError(
            f"Cannot open workbook {path}: {exc}", path=str(path), reason="unreadable"
        ) from exc
    try:
        if not wb.sheetnames:
            raise SpreadsheetReadError(
                f"Workbook {path} contains no sheets", path=str(path), reason="no_sheets"
            )
        for ws in wb.worksheets:
            logger.debug("Reading sheet %s of %s", ws.title, path.name)
            try:
                for row in ws.iter_rows(values_only=True):
                    yield _trim_trailing_empty([cell_text(value) for value in row])
            except (KeyError, ValueError, zipfile.BadZipFile) as exc:
                raise SpreadsheetReadError(
                    f"Cannot read sheet {ws.title} of {path}: {exc}",
                    path=str(path),
                    reason="unreadable_sheet",
                ) from exc
    finally:
        wb.close()
