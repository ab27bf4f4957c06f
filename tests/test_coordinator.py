from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from catalog_merge.config import ColumnMapping
from catalog_merge.coordinator import STATUS_ERROR, STATUS_OK, IngestionCoordinator, process_file
from catalog_merge.discovery import FileJob
from catalog_merge.exceptions import StoreError
from catalog_merge.fingerprint import fingerprint
from catalog_merge.resolver import MODES, ConflictResolver
from catalog_merge.store.sql import SqlRecordStore

STANDARD = ColumnMapping(brand=0, article=1, name=2)


def job(name: str, columns: ColumnMapping = STANDARD) -> FileJob:
    return FileJob(path=Path("/prices") / name, columns=columns)


def test_process_file_counts_actions_and_skips(store: SqlRecordStore, row_source: Callable) -> None:
    source = row_source(
        {
            "a.xlsx": [
                ["Brand", "Article", "Name"],
                ["Acme", "X-100", "Widget"],
                ["ACME", "x100", "Widget Deluxe Edition"],
                ["Acme", "X-100", "Short"],
                ["Acme", "X-200"],
                ["", "X-300", "No brand"],
                ["Acme", " - ", "No article"],
            ]
        }
    )
    result = process_file(job("a.xlsx"), ConflictResolver(store), source)
    assert result.status == STATUS_OK
    assert result.rows == 7
    # header row is data too: brand "brand", article "article"
    assert result.inserted == 2
    assert result.updated == 1
    assert result.unchanged == 1
    assert result.skipped_rows == 3


def test_rows_shorter_than_highest_mapped_column_are_skipped(
    store: SqlRecordStore, row_source: Callable
) -> None:
    columns = ColumnMapping(brand=3, article=0, name=1)
    source = row_source({"wide.xlsx": [["X-100", "Widget", "9.99"], ["X-100", "Widget", "9.99", "Acme"]]})
    result = process_file(job("wide.xlsx", columns), ConflictResolver(store), source)
    assert (result.inserted, result.skipped_rows) == (1, 1)
    stored = store.find_by_fingerprint(fingerprint("x100", "acme"))
    assert stored is not None and stored.name == "Widget"


def test_unreadable_file_is_isolated(store: SqlRecordStore, row_source: Callable) -> None:
    source = row_source({"good.xlsx": [["Acme", "X-100", "Widget"]]})
    coordinator = IngestionCoordinator(ConflictResolver(store), workers=2, row_source=source)
    summary = coordinator.run([job("missing.xlsx"), job("good.xlsx")])
    statuses = {r.file: r.status for r in summary.results}
    assert statuses == {"missing.xlsx": STATUS_ERROR, "good.xlsx": STATUS_OK}
    assert [r.file for r in summary.failed] == ["missing.xlsx"]
    assert summary.totals()["inserted"] == 1
    assert summary.totals()["files_error"] == 1
    assert store.count() == 1


def test_store_failure_marks_only_that_file(store: SqlRecordStore, row_source: Callable) -> None:
    class FlakyResolver(ConflictResolver):
        def resolve(self, row):  # type: ignore[no-untyped-def]
            if row.brand == "broken":
                raise StoreError("upsert_by_fingerprint failed: disk I/O error")
            return super().resolve(row)

    source = row_source(
        {
            "bad.xlsx": [["Acme", "X-1", "One"], ["broken", "X-2", "Two"], ["Acme", "X-3", "Three"]],
            "good.xlsx": [["Bolt", "B-1", "Bolt"]],
        }
    )
    coordinator = IngestionCoordinator(FlakyResolver(store), workers=2, row_source=source)
    summary = coordinator.run([job("bad.xlsx"), job("good.xlsx")])
    bad, good = summary.results
    assert bad.status == STATUS_ERROR
    assert bad.inserted == 1
    assert "disk I/O error" in (bad.error or "")
    assert good.status == STATUS_OK
    assert store.count() == 2


def test_unexpected_exception_is_reported(store: SqlRecordStore) -> None:
    def exploding(path: Path):
        raise RuntimeError("parser bug")

    coordinator = IngestionCoordinator(ConflictResolver(store), row_source=exploding)
    summary = coordinator.run([job("a.xlsx")])
    (result,) = summary.results
    assert result.status == STATUS_ERROR
    assert "parser bug" in (result.error or "")


def test_submit_then_wait_preserves_submission_order(store: SqlRecordStore, row_source: Callable) -> None:
    files = {f"f{idx}.xlsx": [["Acme", f"A-{idx}", "Item"]] for idx in range(6)}
    coordinator = IngestionCoordinator(ConflictResolver(store), workers=3, row_source=row_source(files))
    for name in files:
        coordinator.submit(job(name))
    summary = coordinator.wait()
    assert [r.file for r in summary.results] == list(files)
    assert store.count() == 6
    assert coordinator.wait().results == []


@pytest.mark.parametrize("mode", MODES)
def test_same_product_across_files_merges_to_one_record(
    store: SqlRecordStore, row_source: Callable, mode: str
) -> None:
    other = ColumnMapping(brand=2, article=0, name=1)
    source = row_source(
        {
            "a.xlsx": [["Acme", "X-100", "Widget"]] * 20,
            "b.xlsx": [["x100", "Widget Deluxe Edition", "ACME"]] * 20,
            "c.xlsx": [["acme ", "X 100", "Widget Plus"]] * 20,
        }
    )
    coordinator = IngestionCoordinator(ConflictResolver(store, mode=mode), workers=3, row_source=source)
    summary = coordinator.run([job("a.xlsx"), job("b.xlsx", other), job("c.xlsx")])
    assert summary.totals()["inserted"] == 1
    (record,) = store.fetch_page(10, 0)
    assert (record.article, record.brand, record.name) == ("x100", "acme", "Widget Deluxe Edition")
