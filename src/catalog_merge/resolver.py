"""Decide how a freshly parsed row changes the canonical catalog.

Policy ("most complete wins"): the first sighting of a fingerprint creates the
record; a later sighting replaces the stored name only when its name is
strictly longer. Equal length keeps the stored name, so replaying the same
input is a no-op. Length is a character count, nothing smarter.

Two ways of making the lookup/decide/write sequence safe under concurrent
workers:

- ``atomic``: the write goes through the store's single-statement upsert,
  which re-applies the length rule inside the store. No application lock.
- ``locked``: the two-step create/update protocol runs while holding the
  fingerprint's ``KeyedLock`` shard.
"""

from __future__ import annotations

import dataclasses
import logging

from catalog_merge.fingerprint import fingerprint
from catalog_merge.locks import KeyedLock
from catalog_merge.logging_config import LogContext
from catalog_merge.normalize import NormalizedRow
from catalog_merge.store.base import RecordStore
from catalog_merge.store.types import CanonicalRecord, UpsertOutcome
from catalog_merge.utils.logging import log_event

logger = logging.getLogger(__name__)

MODE_ATOMIC = "atomic"
MODE_LOCKED = "locked"
MODES = (MODE_ATOMIC, MODE_LOCKED)


@dataclasses.dataclass(frozen=True)
class SoftConflict:
    """A stored record sharing (article, brand) with a row but keyed by another fingerprint."""

    existing_id: int | None
    stored_fingerprint: str
    expected_fingerprint: str
    article: str
    brand: str


@dataclasses.dataclass(frozen=True)
class Resolution:
    fingerprint: str
    action: UpsertOutcome
    soft_conflicts: tuple[SoftConflict, ...] = ()


def is_more_complete(candidate: str, stored: str) -> bool:
    return len(candidate) > len(stored)


class ConflictResolver:
    def __init__(
        self,
        store: RecordStore,
        *,
        mode: str = MODE_ATOMIC,
        lock: KeyedLock | None = None,
        detect_drift: bool = True,
    ) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown merge mode {mode!r}; expected one of {MODES}.")
        self.store = store
        self.mode = mode
        self.lock = lock if lock is not None else KeyedLock()
        self.detect_drift = detect_drift

    def resolve(self, row: NormalizedRow) -> Resolution:
        fp = fingerprint(row.article, row.brand)
        candidate = CanonicalRecord(
            article=row.article,
            brand=row.brand,
            name=row.name,
            fingerprint=fp,
        )
        with LogContext(fingerprint=fp):
            if self.mode == MODE_LOCKED:
                with self.lock.hold(fp):
                    return self._resolve_two_step(candidate)
            return self._resolve_atomic(candidate)

    def _resolve_atomic(self, candidate: CanonicalRecord) -> Resolution:
        existing = self.store.find_by_fingerprint(candidate.fingerprint)
        conflicts: tuple[SoftConflict, ...] = ()
        if existing is None:
            conflicts = self._detect_drift(candidate)
        elif not is_more_complete(candidate.name, existing.name):
            # Stored names only grow, so a stale read cannot hide a needed update.
            return Resolution(candidate.fingerprint, UpsertOutcome.UNCHANGED)
        outcome = self.store.upsert_by_fingerprint(candidate)
        return Resolution(candidate.fingerprint, outcome, conflicts)

    def _resolve_two_step(self, candidate: CanonicalRecord) -> Resolution:
        existing = self.store.find_by_fingerprint(candidate.fingerprint)
        if existing is None:
            conflicts = self._detect_drift(candidate)
            if self.store.create_if_absent(candidate):
                return Resolution(candidate.fingerprint, UpsertOutcome.INSERTED, conflicts)
            # Lost an insert race to a writer outside this process.
            existing = self.store.find_by_fingerprint(candidate.fingerprint)
            log_event(
                logger,
                "insert race on fingerprint",
                level=logging.WARNING,
                fingerprint=candidate.fingerprint,
                existing_id=existing.id if existing else None,
                article=candidate.article,
                brand=candidate.brand,
            )
            if existing is None:
                return Resolution(candidate.fingerprint, UpsertOutcome.UNCHANGED, conflicts)
            return self._apply_name_rule(candidate, existing, conflicts)
        return self._apply_name_rule(candidate, existing, ())

    def _apply_name_rule(
        self,
        candidate: CanonicalRecord,
        existing: CanonicalRecord,
        conflicts: tuple[SoftConflict, ...],
    ) -> Resolution:
        if is_more_complete(candidate.name, existing.name) and self.store.update_name(
            candidate.fingerprint, candidate.name
        ):
            return Resolution(candidate.fingerprint, UpsertOutcome.UPDATED, conflicts)
        return Resolution(candidate.fingerprint, UpsertOutcome.UNCHANGED, conflicts)

    def _detect_drift(self, candidate: CanonicalRecord) -> tuple[SoftConflict, ...]:
        if not self.detect_drift:
            return ()
        conflicts = []
        for duplicate in self.store.find_by_article_brand(candidate.article, candidate.brand):
            if duplicate.fingerprint == candidate.fingerprint:
                continue
            conflict = SoftConflict(
                existing_id=duplicate.id,
                stored_fingerprint=duplicate.fingerprint,
                expected_fingerprint=candidate.fingerprint,
                article=candidate.article,
                brand=candidate.brand,
            )
            log_event(
                logger,
                "record with same article and brand has a different fingerprint",
                level=logging.WARNING,
                **dataclasses.asdict(conflict),
            )
            conflicts.append(conflict)
        return tuple(conflicts)
