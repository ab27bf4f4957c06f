from __future__ import annotations

import logging
import time
from typing import Any

from catalog_merge.__version__ import __version__ as VERSION
from catalog_merge.config import CatalogConfig
from catalog_merge.coordinator import IngestionCoordinator
from catalog_merge.discovery import discover_jobs
from catalog_merge.export import export_catalog
from catalog_merge.locks import KeyedLock
from catalog_merge.reader import RowSource, iter_workbook_rows
from catalog_merge.resolver import ConflictResolver
from catalog_merge.store.sql import SqlRecordStore
from catalog_merge.utils.logging import log_event, utc_now

logger = logging.getLogger(__name__)


def open_store(cfg: CatalogConfig) -> SqlRecordStore:
    return SqlRecordStore.from_dsn(
        cfg.store.dsn.reveal(),
        base_dir=cfg.base_dir,
        table=cfg.store.table,
        pool=cfg.store.pool,
    )


def run_catalog(cfg: CatalogConfig, *, row_source: RowSource = iter_workbook_rows) -> dict[str, Any]:
    """Ingest every configured spreadsheet, then export the deduplicated catalog.

    Setup failures (store, input directory, dump file) propagate as
    CatalogError subclasses; per-file failures end up in the summary.
    """
    started = time.monotonic()
    summary: dict[str, Any] = {
        "run_at_utc": utc_now(),
        "version": VERSION,
        "mode": cfg.merge.mode,
        "workers": cfg.merge.workers,
    }
    store = open_store(cfg)
    try:
        store.ensure_schema()
        if cfg.store.reset:
            store.reset()
        jobs, skipped = discover_jobs(cfg.input, cfg.files)
        resolver = ConflictResolver(
            store,
            mode=cfg.merge.mode,
            lock=KeyedLock(cfg.merge.lock_shards),
            detect_drift=cfg.merge.detect_drift,
        )
        coordinator = IngestionCoordinator(
            resolver, workers=cfg.merge.workers, row_source=row_source
        )
        ingest = coordinator.run(jobs)
        summary["results"] = [result.as_dict() for result in ingest.results]
        summary["skipped_files"] = [
            {"file": skip.path.name, "reason": skip.reason} for skip in skipped
        ]
        summary["totals"] = ingest.totals()
        summary["exported"] = export_catalog(
            store,
            cfg.export.path,
            table=cfg.store.table,
            page_size=cfg.export.page_size,
            include_fingerprint=cfg.export.include_fingerprint,
        )
        summary["export_path"] = str(cfg.export.path)
    finally:
        store.close()
    summary["elapsed_seconds"] = round(time.monotonic() - started, 3)
    log_event(logger, "catalog run finished", **summary["totals"], exported=summary["exported"])
    return summary


def export_only(cfg: CatalogConfig) -> dict[str, Any]:
    started = time.monotonic()
    store = open_store(cfg)
    try:
        store.ensure_schema()
        exported = export_catalog(
            store,
            cfg.export.path,
            table=cfg.store.table,
            page_size=cfg.export.page_size,
            include_fingerprint=cfg.export.include_fingerprint,
        )
    finally:
        store.close()
    return {
        "run_at_utc": utc_now(),
        "version": VERSION,
        "exported": exported,
        "export_path": str(cfg.export.path),
        "elapsed_seconds": round(time.monotonic() - started, 3),
    }
