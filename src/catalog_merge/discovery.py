from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from pathlib import Path

from catalog_merge.config import ColumnMapping, InputConfig
from catalog_merge.exceptions import InputDirectoryError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class FileJob:
    """One spreadsheet and the column layout used to read it."""

    path: Path
    columns: ColumnMapping


@dataclasses.dataclass(frozen=True)
class DiscoverySkip:
    path: Path
    reason: str


def discover_jobs(
    input_cfg: InputConfig,
    mappings: Mapping[str, ColumnMapping],
) -> tuple[list[FileJob], list[DiscoverySkip]]:
    """Pair every spreadsheet in the input directory with its column mapping.

    Raises InputDirectoryError when the directory itself cannot be listed.
    Files without a mapping are returned as skips, not errors.
    """
    directory = input_cfg.directory
    try:
        entries = sorted(directory.iterdir())
    except OSError as exc:
        raise InputDirectoryError(
            f"Cannot read input directory {directory}: {exc}",
            context={"directory": str(directory), "error": str(exc)},
        ) from exc

    extensions = {ext.lower() for ext in input_cfg.extensions}
    jobs: list[FileJob] = []
    skipped: list[DiscoverySkip] = []
    for path in entries:
        if path.suffix.lower() not in extensions:
            continue
        if not path.is_file():
            logger.warning("Skipping %s: not a regular file", path)
            skipped.append(DiscoverySkip(path, "not_a_file"))
            continue
        columns = mappings.get(path.name)
        if columns is None:
            logger.warning("Skipping %s: no column mapping configured", path.name)
            skipped.append(DiscoverySkip(path, "no_mapping"))
            continue
        jobs.append(FileJob(path=path, columns=columns))
    logger.info("Discovered %d spreadsheets in %s (%d skipped)", len(jobs), directory, len(skipped))
    return jobs, skipped
