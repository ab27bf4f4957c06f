from __future__ import annotations

import dataclasses
import enum


@dataclasses.dataclass(frozen=True)
class CanonicalRecord:
    article: str
    brand: str
    name: str
    fingerprint: str
    id: int | None = None


class UpsertOutcome(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclasses.dataclass(frozen=True)
class PoolConfig:
    max_open: int = 50
    max_idle: int = 20
    max_lifetime_seconds: float = 300.0
    timeout_seconds: float = 30.0
