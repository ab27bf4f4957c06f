"""Dump the canonical catalog as SQL statements.

The store is read page by page (ordered by id) so memory stays bounded by the
page size. The ``CREATE TABLE`` header documents the record shape for whoever
loads the dump; it is not generated from the live schema.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TextIO

from catalog_merge.exceptions import ExportError
from catalog_merge.store.base import RecordStore
from catalog_merge.store.types import CanonicalRecord
from catalog_merge.utils.io import atomic_text_writer

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


def escape_sql(value: str) -> str:
    # Backslashes first: doubling quotes first would leave "\'" sequences that
    # the backslash pass then corrupts.
    return value.replace("\\", "\\\\").replace("'", "''")


def iter_pages(store: RecordStore, page_size: int = DEFAULT_PAGE_SIZE) -> Iterator[list[CanonicalRecord]]:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    offset = 0
    while True:
        page = store.fetch_page(page_size, offset)
        if not page:
            return
        yield page
        offset += page_size


def schema_header(table: str, *, include_fingerprint: bool = False) -> str:
    columns = [
        "`id` INT AUTO_INCREMENT PRIMARY KEY",
        "`article` VARCHAR(255) NOT NULL",
        "`brand` VARCHAR(255) NOT NULL",
        "`name` VARCHAR(255) NOT NULL",
    ]
    if include_fingerprint:
        columns.append("`fingerprint` VARCHAR(64) NOT NULL UNIQUE")
    body = ",\n".join(columns)
    return f"CREATE TABLE IF NOT EXISTS `{table}` (\n{body}\n);\n\n"


def insert_statement(table: str, record: CanonicalRecord, *, include_fingerprint: bool = False) -> str:
    columns = ["article", "brand", "name"]
    values = [record.article, record.brand, record.name]
    if include_fingerprint:
        columns.append("fingerprint")
        values.append(record.fingerprint)
    column_sql = ", ".join(f"`{col}`" for col in columns)
    value_sql = ", ".join(f"'{escape_sql(value)}'" for value in values)
    return f"INSERT INTO `{table}` ({column_sql}) VALUES ({value_sql});\n"


def write_dump(
    store: RecordStore,
    out: TextIO,
    *,
    table: str = "products",
    page_size: int = DEFAULT_PAGE_SIZE,
    include_fingerprint: bool = False,
) -> int:
    out.write(schema_header(table, include_fingerprint=include_fingerprint))
    written = 0
    for page in iter_pages(store, page_size):
        for record in page:
            out.write(insert_statement(table, record, include_fingerprint=include_fingerprint))
        written += len(page)
    return written


def export_catalog(
    store: RecordStore,
    path: Path,
    *,
    table: str = "products",
    page_size: int = DEFAULT_PAGE_SIZE,
    include_fingerprint: bool = False,
) -> int:
    """Write the dump to ``path`` (``.gz``/``.zst`` compress) and return the INSERT count."""
    try:
        with atomic_text_writer(path) as out:
            written = write_dump(
                store,
                out,
                table=table,
                page_size=page_size,
                include_fingerprint=include_fingerprint,
            )
    except OSError as exc:
        raise ExportError(
            f"Cannot write dump {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    logger.info("Exported %d records to %s", written, path)
    return written
