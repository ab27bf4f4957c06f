"""Record store interface and its SQLAlchemy implementation."""

from catalog_merge.store.base import RecordStore
from catalog_merge.store.sql import SqlRecordStore, create_store_engine, pool_options, resolve_store_url
from catalog_merge.store.types import CanonicalRecord, PoolConfig, UpsertOutcome

__all__ = [
    "CanonicalRecord",
    "PoolConfig",
    "RecordStore",
    "SqlRecordStore",
    "UpsertOutcome",
    "create_store_engine",
    "pool_options",
    "resolve_store_url",
]
