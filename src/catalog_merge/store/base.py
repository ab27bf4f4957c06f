from __future__ import annotations

import abc

from catalog_merge.store.types import CanonicalRecord, UpsertOutcome


class RecordStore(abc.ABC):
    """Keyed storage of canonical records, unique by fingerprint.

    Implementations must be safe to call from several worker threads at once.
    ``upsert_by_fingerprint`` is a single atomic operation; the
    ``create_if_absent``/``update_name`` pair is not, and callers using it hold
    a per-fingerprint lock across both calls.
    """

    @abc.abstractmethod
    def ensure_schema(self) -> None: ...

    @abc.abstractmethod
    def reset(self) -> None:
        """Delete every record. Only called before a run starts."""

    @abc.abstractmethod
    def find_by_fingerprint(self, fingerprint: str) -> CanonicalRecord | None: ...

    @abc.abstractmethod
    def find_by_article_brand(self, article: str, brand: str) -> list[CanonicalRecord]: ...

    @abc.abstractmethod
    def upsert_by_fingerprint(self, record: CanonicalRecord) -> UpsertOutcome:
        """Insert ``record`` or, if its fingerprint exists, replace the stored
        name when ``record.name`` is strictly longer. Never raises on a
        unique-constraint conflict."""

    @abc.abstractmethod
    def create_if_absent(self, record: CanonicalRecord) -> bool:
        """Insert ``record``; return False if the fingerprint already exists."""

    @abc.abstractmethod
    def update_name(self, fingerprint: str, name: str) -> bool: ...

    @abc.abstractmethod
    def fetch_page(self, limit: int, offset: int) -> list[CanonicalRecord]: ...

    @abc.abstractmethod
    def count(self) -> int: ...

    @abc.abstractmethod
    def close(self) -> None: ...

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
