"""Supplier price-list deduplication and catalog merge."""

from catalog_merge.__version__ import __version__
from catalog_merge.fingerprint import fingerprint
from catalog_merge.normalize import (
    NormalizedRow,
    deep_clean,
    normalize_article,
    normalize_brand,
    normalize_name,
    normalize_row,
)

__all__ = [
    "__version__",
    "fingerprint",
    "NormalizedRow",
    "deep_clean",
    "normalize_article",
    "normalize_brand",
    "normalize_name",
    "normalize_row",
]
