from __future__ import annotations

import gzip
import io
import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import zstandard as zstd


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def write_json(path: Path, obj: dict[str, Any], *, indent: int = 2) -> None:
    """Write dict to JSON file atomically."""
    ensure_dir(path.parent)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        f.write(json.dumps(obj, indent=indent, ensure_ascii=False) + "\n")
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


def open_text_writer(path: Path) -> io.TextIOBase:
    """Open a text stream for writing, compressing ``.gz`` and ``.zst`` by suffix."""
    if path.name.endswith((".gz", ".gz.tmp")):
        return gzip.open(path, "wt", encoding="utf-8")
    if path.name.endswith((".zst", ".zst.tmp")):
        try:
            stream = zstd.ZstdCompressor().stream_writer(path.open("wb"))
            return io.TextIOWrapper(stream, encoding="utf-8")
        except zstd.ZstdError as e:
            raise OSError(f"Failed to open zstd file {path}: {e}") from e
    return open(path, "w", encoding="utf-8", newline="\n")


@contextmanager
def atomic_text_writer(path: Path) -> Iterator[io.TextIOBase]:
    """Yield a text stream for ``path``; the file only appears once the block succeeds."""
    ensure_dir(path.parent)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open_text_writer(tmp_path) as f:
            yield f
        tmp_path.replace(path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
