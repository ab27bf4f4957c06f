"""Log output for catalog runs.

Ingestion workers tag their lines through ``LogContext``: the coordinator sets
``file`` for the spreadsheet being read and the resolver sets ``fingerprint``
for the row being merged. Both formatters surface those two fields first and
pass every message through the secret redaction in ``catalog_merge.secrets``.
"""

from __future__ import annotations

import contextvars
import json
import logging
import time
from typing import Any

from catalog_merge.secrets import redact_string, redact_structure

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
FORMATS = ("text", "json")

# Fields promoted out of the context into their own column / JSON key.
ROW_FIELDS = ("file", "fingerprint")

_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "catalog_log_context", default=None
)
_CONFIGURED = False


def get_log_context() -> dict[str, Any]:
    return dict(_context.get() or {})


class LogContext:
    """Add fields to every log line emitted inside the block (per thread)."""

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        merged = get_log_context()
        merged.update(self.fields)
        self._token = _context.set(merged)
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


def _message(record: logging.LogRecord) -> str:
    msg = redact_structure(record.msg)
    args = redact_structure(record.args)
    text = str(msg) % args if args else str(msg)
    return redact_string(text)


def _split_context() -> tuple[dict[str, Any], dict[str, Any]]:
    context = redact_structure(get_log_context())
    row = {key: context.pop(key) for key in ROW_FIELDS if key in context}
    return row, context


class TextFormatter(logging.Formatter):
    """``time | LEVEL | thread | logger | [file fp] message {extra context}``."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        row, extra = _split_context()
        parts = [
            self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            record.levelname,
            record.threadName or "-",
            record.name,
        ]
        message = _message(record)
        if row:
            tag = " ".join(
                str(row[key])[:12] if key == "fingerprint" else str(row[key]) for key in row
            )
            message = f"[{tag}] {message}"
        if extra:
            message = f"{message} {json.dumps(extra, sort_keys=True, default=str)}"
        parts.append(message)
        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{redact_string(self.formatException(record.exc_info))}"
        return line


class JsonFormatter(logging.Formatter):
    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        row, extra = _split_context()
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            **row,
            "message": _message(record),
        }
        if extra:
            payload["context"] = extra
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(*, level: str = "INFO", fmt: str = "text") -> None:
    """Install one stderr handler on the root logger; later calls are no-ops."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    root = logging.getLogger()
    root.setLevel(logging.getLevelNamesMapping().get(str(level).upper(), logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter())
        root.addHandler(handler)
    # No SQL echo in run logs.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _CONFIGURED = True


def add_logging_args(parser: Any) -> None:
    parser.add_argument("--log-level", default="INFO", type=str.upper, choices=LEVELS, help="Logging level.")
    parser.add_argument("--log-format", default="text", choices=FORMATS, help="Log line format.")
