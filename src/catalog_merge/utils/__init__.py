"""Shared utility functions for catalog-merge."""

from catalog_merge.utils.hash import sha256_bytes, sha256_text
from catalog_merge.utils.io import (
    atomic_text_writer,
    ensure_dir,
    open_text_writer,
    write_json,
)
from catalog_merge.utils.logging import log_event, utc_now

__all__ = [
    "utc_now",
    "ensure_dir",
    "sha256_bytes",
    "sha256_text",
    "write_json",
    "open_text_writer",
    "atomic_text_writer",
    "log_event",
]
