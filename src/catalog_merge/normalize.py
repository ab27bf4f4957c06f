"""Text canonicalization for supplier article codes, brands and display names.

Every function here is pure and total: any string (including the empty one)
is accepted and nothing raises. Rejecting rows with empty keys is the
caller's decision.
"""

from __future__ import annotations

import dataclasses
import re

# Characters stripped from article codes. Each is simply deleted, so order is irrelevant.
ARTICLE_SEPARATORS = "-_./+ ,"

_ARTICLE_TRANSLATION = str.maketrans("", "", ARTICLE_SEPARATORS)
_WHITESPACE_TRANSLATION = str.maketrans("", "", " \t\n\r")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_article(raw: str) -> str:
    """Trim, lowercase and drop separator characters: ``" X-100/B "`` -> ``"x100b"``."""
    return (raw or "").strip().lower().translate(_ARTICLE_TRANSLATION)


def normalize_brand(raw: str) -> str:
    return (raw or "").strip().lower()


def normalize_name(raw: str) -> str:
    return (raw or "").strip()


def deep_clean(raw: str) -> str:
    """Aggressive canonical form used only as fingerprint input, never stored.

    Removes all whitespace, lowercases, then deletes everything outside
    ``[a-z0-9]`` (non-Latin letters included).
    """
    value = (raw or "").strip().translate(_WHITESPACE_TRANSLATION).lower()
    return _NON_ALNUM_RE.sub("", value)


@dataclasses.dataclass(frozen=True)
class NormalizedRow:
    article: str
    brand: str
    name: str

    @property
    def is_keyed(self) -> bool:
        return bool(self.article) and bool(self.brand)


def normalize_row(brand: str, article: str, name: str) -> NormalizedRow:
    return NormalizedRow(
        article=normalize_article(article),
        brand=normalize_brand(brand),
        name=normalize_name(name),
    )
