from __future__ import annotations

from catalog_merge.normalize import deep_clean
from catalog_merge.utils.hash import sha256_text

FINGERPRINT_LENGTH = 64


def fingerprint_input(article: str, brand: str) -> str:
    # No separator: ("ab", "c") and ("a", "bc") collide. Changing this would
    # invalidate every fingerprint already stored.
    return deep_clean(article) + deep_clean(brand)


def fingerprint(article: str, brand: str) -> str:
    """Return the lowercase hex SHA-256 content key of an (article, brand) pair."""
    return sha256_text(fingerprint_input(article, brand))
