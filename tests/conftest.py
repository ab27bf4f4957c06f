"""
Shared pytest fixtures for catalog-merge tests.

Provides:
- SQLite record stores in a temporary directory
- In-memory row sources standing in for spreadsheet parsing
- Real .xlsx workbooks written with openpyxl
- Run configuration files
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Generator, Iterable
from pathlib import Path
from typing import Any

import pytest
import yaml

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

from catalog_merge.store.sql import SqlRecordStore  # noqa: E402


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def store(tmp_path: Path) -> Generator[SqlRecordStore, None, None]:
    """A schema-initialised SQLite store backed by a temp file."""
    db = SqlRecordStore.from_dsn(f"sqlite:///{tmp_path / 'catalog.db'}")
    db.ensure_schema()
    yield db
    db.close()


# =============================================================================
# Row source fixtures
# =============================================================================


class StaticRowSource:
    """Row source keyed by file name; unknown files raise like an unreadable workbook."""

    def __init__(self, rows_by_file: dict[str, list[list[str]]]) -> None:
        self.rows_by_file = rows_by_file

    def __call__(self, path: Path) -> Iterable[list[str]]:
        from catalog_merge.exceptions import SpreadsheetReadError

        if path.name not in self.rows_by_file:
            raise SpreadsheetReadError(f"Cannot open workbook {path}", path=str(path), reason="unreadable")
        return iter(self.rows_by_file[path.name])


@pytest.fixture
def row_source() -> Callable[[dict[str, list[list[str]]]], StaticRowSource]:
    return StaticRowSource


# =============================================================================
# Workbook and config fixtures
# =============================================================================


@pytest.fixture
def write_workbook() -> Callable[[Path, dict[str, list[list[Any]]]], Path]:
    """Write an .xlsx file with one worksheet per mapping entry."""
    import openpyxl

    def _write(path: Path, sheets: dict[str, list[list[Any]]]) -> Path:
        wb = openpyxl.Workbook()
        wb.remove(wb.active)
        for title, rows in sheets.items():
            ws = wb.create_sheet(title)
            for row in rows:
                ws.append(row)
        path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(path)
        return path

    return _write


@pytest.fixture
def catalog_config(tmp_path: Path) -> dict[str, Any]:
    """Minimal run configuration rooted at tmp_path."""
    return {
        "schema_version": "1.0",
        "input": {"directory": "prices"},
        "files": [
            {"filename": "supplier_a.xlsx", "columns": {"brand": 0, "article": 1, "name": 2}},
            {"filename": "supplier_b.xlsx", "columns": {"brand": 2, "article": 0, "name": 1}},
        ],
        "store": {"dsn": "sqlite:///catalog.db"},
        "merge": {"workers": 2},
        "export": {"path": "output.sql", "page_size": 2},
    }


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    def _write(content: dict[str, Any], name: str = "config.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(content), encoding="utf-8")
        return path

    return _write
