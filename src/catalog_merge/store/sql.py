"""Relational implementation of the record store on a SQLAlchemy engine.

Any database SQLAlchemy can reach by URL works as long as its dialect has an
upsert: SQLite and PostgreSQL (``ON CONFLICT``) or MySQL/MariaDB
(``ON DUPLICATE KEY UPDATE``). ``fingerprint`` carries the ``UNIQUE``
constraint that decides whether a record exists.

On SQLite every write transaction starts with ``BEGIN IMMEDIATE`` so the
read-then-upsert inside ``upsert_by_fingerprint`` is serialized across
connections.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    func,
    select,
    text,
    update,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import QueuePool

from catalog_merge.exceptions import StoreConnectionError, StoreError
from catalog_merge.store.base import RecordStore
from catalog_merge.store.types import CanonicalRecord, PoolConfig, UpsertOutcome
from catalog_merge.utils.io import ensure_dir

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "products"
DEFAULT_BUSY_TIMEOUT = 30.0

SUPPORTED_DIALECTS = ("sqlite", "postgresql", "mysql", "mariadb")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_WRITE_OPTION = "catalog_write"


def resolve_store_url(dsn: str, *, base_dir: Path | None = None) -> URL:
    """Parse a store DSN; relative SQLite database paths resolve against ``base_dir``."""
    try:
        url = make_url((dsn or "").strip())
    except ArgumentError as exc:
        raise StoreConnectionError(f"Cannot parse store DSN: {exc}") from exc
    if url.get_backend_name() != "sqlite":
        return url
    if not url.database or url.database == ":memory:":
        raise StoreConnectionError("sqlite DSN must name a database file, e.g. sqlite:///catalog.db")
    path = Path(url.database).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    path = path.resolve()
    try:
        ensure_dir(path.parent)
    except OSError as exc:
        raise StoreConnectionError(
            f"Cannot create directory for {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    return url.set(database=str(path))


def pool_options(cfg: PoolConfig) -> dict[str, Any]:
    """Map pool limits onto ``QueuePool`` arguments.

    ``max_idle`` connections stay open (``pool_size``); up to ``max_open`` may be
    checked out at once, the rest being overflow that is closed on return.
    """
    if cfg.max_open < 1:
        raise ValueError("max_open must be >= 1.")
    pool_size = max(1, min(cfg.max_idle, cfg.max_open))
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": cfg.max_open - pool_size,
        "pool_timeout": cfg.timeout_seconds,
        "pool_recycle": cfg.max_lifetime_seconds if cfg.max_lifetime_seconds > 0 else -1,
    }


def _sqlite_on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    # Hand transaction control to the "begin" listener below.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def _sqlite_on_begin(conn: Connection) -> None:
    if conn.get_execution_options().get(_WRITE_OPTION):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


def create_store_engine(
    dsn: str,
    *,
    base_dir: Path | None = None,
    pool: PoolConfig | None = None,
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
) -> Engine:
    url = resolve_store_url(dsn, base_dir=base_dir)
    backend = url.get_backend_name()
    if backend not in SUPPORTED_DIALECTS:
        raise StoreConnectionError(
            f"Unsupported store backend '{backend}'; expected one of {', '.join(SUPPORTED_DIALECTS)}.",
            context={"backend": backend},
        )
    kwargs = pool_options(pool or PoolConfig())
    if backend == "sqlite":
        kwargs["connect_args"] = {"timeout": busy_timeout, "check_same_thread": False}
    else:
        kwargs["pool_pre_ping"] = True
    try:
        engine = create_engine(url, **kwargs)
    except (ArgumentError, ImportError) as exc:
        raise StoreConnectionError(
            f"Cannot create store engine for {url.render_as_string(hide_password=True)}: {exc}",
            context={"backend": backend, "error": str(exc)},
        ) from exc
    if backend == "sqlite":
        event.listen(engine, "connect", _sqlite_on_connect)
        event.listen(engine, "begin", _sqlite_on_begin)
    return engine


def build_table(metadata: MetaData, name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("article", String(255), nullable=False),
        Column("brand", String(255), nullable=False),
        Column("name", Text, nullable=False),
        Column("fingerprint", String(64), nullable=False, unique=True),
        Index(f"ix_{name}_article_brand", "article", "brand"),
        sqlite_autoincrement=True,
    )


def _values(record: CanonicalRecord) -> dict[str, str]:
    return {
        "article": record.article,
        "brand": record.brand,
        "name": record.name,
        "fingerprint": record.fingerprint,
    }


def upsert_statement(table: Table, dialect_name: str, record: CanonicalRecord) -> Any:
    """Insert, or replace the stored name only when the new one is strictly longer."""
    if dialect_name in ("mysql", "mariadb"):
        stmt = mysql.insert(table).values(**_values(record))
        longer = func.char_length(stmt.inserted.name) > func.char_length(table.c.name)
        return stmt.on_duplicate_key_update(
            name=case((longer, stmt.inserted.name), else_=table.c.name)
        )
    insert = postgresql.insert if dialect_name == "postgresql" else sqlite.insert
    stmt = insert(table).values(**_values(record))
    return stmt.on_conflict_do_update(
        index_elements=["fingerprint"],
        set_={"name": stmt.excluded.name},
        where=func.length(stmt.excluded.name) > func.length(table.c.name),
    )


def insert_ignore_statement(table: Table, dialect_name: str, record: CanonicalRecord) -> Any:
    if dialect_name in ("mysql", "mariadb"):
        return mysql.insert(table).values(**_values(record)).prefix_with("IGNORE")
    insert = postgresql.insert if dialect_name == "postgresql" else sqlite.insert
    return insert(table).values(**_values(record)).on_conflict_do_nothing(index_elements=["fingerprint"])


def _row_to_record(row: Any) -> CanonicalRecord:
    return CanonicalRecord(
        id=int(row.id),
        article=row.article,
        brand=row.brand,
        name=row.name,
        fingerprint=row.fingerprint,
    )


class SqlRecordStore(RecordStore):
    def __init__(self, engine: Engine, *, table: str = DEFAULT_TABLE) -> None:
        if not _IDENTIFIER_RE.match(table):
            raise StoreError(f"Invalid table name: {table!r}", context={"table": table})
        if engine.dialect.name not in SUPPORTED_DIALECTS:
            raise StoreConnectionError(
                f"Unsupported store dialect '{engine.dialect.name}'.",
                context={"dialect": engine.dialect.name},
            )
        self.engine = engine
        self.dialect = engine.dialect.name
        self.metadata = MetaData()
        self.table = build_table(self.metadata, table)
        self._closed = False

    @classmethod
    def from_dsn(
        cls,
        dsn: str,
        *,
        base_dir: Path | None = None,
        table: str = DEFAULT_TABLE,
        pool: PoolConfig | None = None,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ) -> SqlRecordStore:
        engine = create_store_engine(dsn, base_dir=base_dir, pool=pool, busy_timeout=busy_timeout)
        return cls(engine, table=table)

    @property
    def location(self) -> str:
        return self.engine.url.render_as_string(hide_password=True)

    @contextmanager
    def _transaction(self, operation: str, *, write: bool = False) -> Iterator[Connection]:
        if self._closed:
            raise StoreError("Record store is closed.", context={"operation": operation})
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as exc:
            raise StoreConnectionError(
                f"Cannot open store connection to {self.location}: {exc}",
                context={"operation": operation, "error": str(exc)},
            ) from exc
        with conn:
            if write:
                conn.execution_options(**{_WRITE_OPTION: True})
            try:
                with conn.begin():
                    yield conn
            except SQLAlchemyError as exc:
                raise StoreError(
                    f"{operation} failed: {exc}", context={"operation": operation}
                ) from exc

    def ensure_schema(self) -> None:
        with self._transaction("ensure_schema", write=True) as conn:
            self.metadata.create_all(conn)
        logger.info("Store schema ready: %s (table %s)", self.location, self.table.name)

    def reset(self) -> None:
        quoted = self.engine.dialect.identifier_preparer.quote(self.table.name)
        with self._transaction("reset", write=True) as conn:
            if self.dialect == "sqlite":
                conn.execute(self.table.delete())
                # Restart ids like TRUNCATE would.
                conn.execute(
                    text("DELETE FROM sqlite_sequence WHERE name = :name"),
                    {"name": self.table.name},
                )
            elif self.dialect == "postgresql":
                conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY"))
            else:
                conn.execute(text(f"TRUNCATE TABLE {quoted}"))
        logger.info("Cleared all records from %s", self.table.name)

    def find_by_fingerprint(self, fingerprint: str) -> CanonicalRecord | None:
        with self._transaction("find_by_fingerprint") as conn:
            row = conn.execute(
                select(self.table).where(self.table.c.fingerprint == fingerprint)
            ).first()
        return _row_to_record(row) if row else None

    def find_by_article_brand(self, article: str, brand: str) -> list[CanonicalRecord]:
        query = (
            select(self.table)
            .where(self.table.c.article == article, self.table.c.brand == brand)
            .order_by(self.table.c.id)
        )
        with self._transaction("find_by_article_brand") as conn:
            rows = conn.execute(query).all()
        return [_row_to_record(row) for row in rows]

    def upsert_by_fingerprint(self, record: CanonicalRecord) -> UpsertOutcome:
        """Single-statement upsert; the outcome is read from the name stored before it.

        On SQLite the write lock is held from the read onwards, so the outcome
        is exact. Elsewhere a concurrent insert between the two statements is
        reported as INSERTED although the upsert took its update branch; the
        stored data is correct either way.
        """
        with self._transaction("upsert_by_fingerprint", write=True) as conn:
            previous = conn.execute(
                select(self.table.c.name)
                .where(self.table.c.fingerprint == record.fingerprint)
                .with_for_update()
            ).scalar_one_or_none()
            conn.execute(upsert_statement(self.table, self.dialect, record))
        if previous is None:
            return UpsertOutcome.INSERTED
        if len(record.name) > len(previous):
            return UpsertOutcome.UPDATED
        return UpsertOutcome.UNCHANGED

    def create_if_absent(self, record: CanonicalRecord) -> bool:
        with self._transaction("create_if_absent", write=True) as conn:
            result = conn.execute(insert_ignore_statement(self.table, self.dialect, record))
        return result.rowcount == 1

    def update_name(self, fingerprint: str, name: str) -> bool:
        with self._transaction("update_name", write=True) as conn:
            result = conn.execute(
                update(self.table).where(self.table.c.fingerprint == fingerprint).values(name=name)
            )
        return result.rowcount == 1

    def fetch_page(self, limit: int, offset: int) -> list[CanonicalRecord]:
        if limit < 1:
            raise ValueError("fetch_page requires limit >= 1.")
        query = select(self.table).order_by(self.table.c.id).limit(limit).offset(offset)
        with self._transaction("fetch_page") as conn:
            rows = conn.execute(query).all()
        return [_row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._transaction("count") as conn:
            total = conn.execute(select(func.count()).select_from(self.table)).scalar_one()
        return int(total)

    def close(self) -> None:
        self._closed = True
        self.engine.dispose()
