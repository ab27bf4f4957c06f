"""Concurrent ingestion of supplier spreadsheets.

Each file is one unit of work on a thread pool. Rows inside a file go through
the resolver in the order the reader yields them; files run in no particular
order relative to each other. A failing file is recorded and logged, and the
remaining files carry on.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from catalog_merge.discovery import FileJob
from catalog_merge.exceptions import CatalogError
from catalog_merge.logging_config import LogContext
from catalog_merge.normalize import normalize_row
from catalog_merge.reader import RowSource, iter_workbook_rows
from catalog_merge.resolver import ConflictResolver
from catalog_merge.store.types import UpsertOutcome
from catalog_merge.utils.logging import log_event

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_ERROR = "error"


@dataclasses.dataclass
class FileResult:
    file: str
    status: str = STATUS_OK
    rows: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped_rows: int = 0
    soft_conflicts: int = 0
    error: str | None = None

    def record(self, action: UpsertOutcome, conflicts: int) -> None:
        if action is UpsertOutcome.INSERTED:
            self.inserted += 1
        elif action is UpsertOutcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1
        self.soft_conflicts += conflicts

    def as_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class IngestSummary:
    results: list[FileResult]

    def totals(self) -> dict[str, int]:
        totals = Counter()
        for result in self.results:
            for key in ("rows", "inserted", "updated", "unchanged", "skipped_rows", "soft_conflicts"):
                totals[key] += getattr(result, key)
        totals.update(f"files_{result.status}" for result in self.results)
        totals["files"] = len(self.results)
        return dict(totals)

    @property
    def failed(self) -> list[FileResult]:
        return [result for result in self.results if result.status == STATUS_ERROR]


def process_file(
    job: FileJob,
    resolver: ConflictResolver,
    row_source: RowSource = iter_workbook_rows,
) -> FileResult:
    result = FileResult(file=job.path.name)
    columns = job.columns
    with LogContext(file=job.path.name):
        logger.info("Processing %s", job.path.name)
        try:
            for cells in row_source(job.path):
                result.rows += 1
                if len(cells) <= columns.max_index:
                    result.skipped_rows += 1
                    continue
                row = normalize_row(cells[columns.brand], cells[columns.article], cells[columns.name])
                if not row.is_keyed:
                    result.skipped_rows += 1
                    continue
                resolution = resolver.resolve(row)
                result.record(resolution.action, len(resolution.soft_conflicts))
        except CatalogError as exc:
            result.status = STATUS_ERROR
            result.error = exc.message
            log_event(
                logger,
                "file skipped",
                level=logging.ERROR,
                file=str(job.path),
                rows_processed=result.rows,
                **exc.as_log_fields(),
            )
            return result
        log_event(
            logger,
            "file done",
            file=job.path.name,
            rows=result.rows,
            inserted=result.inserted,
            updated=result.updated,
            unchanged=result.unchanged,
            skipped_rows=result.skipped_rows,
            soft_conflicts=result.soft_conflicts,
        )
    return result


class IngestionCoordinator:
    """Fan spreadsheet jobs out over worker threads sharing one resolver.

    ``submit`` may be called any number of times; ``wait`` blocks until every
    submitted file has finished and returns results in submission order.
    """

    def __init__(
        self,
        resolver: ConflictResolver,
        *,
        workers: int = 4,
        row_source: RowSource = iter_workbook_rows,
    ) -> None:
        self.resolver = resolver
        self.workers = max(1, workers)
        self.row_source = row_source
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._pending: list[tuple[FileJob, Future[FileResult]]] = []

    def submit(self, job: FileJob) -> None:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix="ingest"
                )
            fut = self._executor.submit(process_file, job, self.resolver, self.row_source)
            self._pending.append((job, fut))

    def wait(self) -> IngestSummary:
        with self._lock:
            pending, self._pending = self._pending, []
            executor, self._executor = self._executor, None
        results: list[FileResult] = []
        for job, fut in pending:
            try:
                results.append(fut.result())
            except Exception as e:
                logger.exception("Unexpected failure while processing %s", job.path)
                results.append(FileResult(file=job.path.name, status=STATUS_ERROR, error=repr(e)))
        if executor is not None:
            executor.shutdown(wait=True)
        return IngestSummary(results=results)

    def run(self, jobs: list[FileJob]) -> IngestSummary:
        for job in jobs:
            self.submit(job)
        return self.wait()
