from __future__ import annotations

import hashlib


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    """Compute SHA-256 hash of the UTF-8 encoding of ``text`` (no normalization)."""
    return sha256_bytes((text or "").encode("utf-8"))
