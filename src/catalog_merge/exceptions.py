from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class CatalogError(Exception):
    message: str
    code: str = "catalog_error"
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, message: str, *, code: str | None = None, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.context = dict(context or {})

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_message": self.message,
            "error_context": self.context,
        }


class ConfigValidationError(CatalogError):
    code = "config_validation_error"


class YamlParseError(CatalogError):
    code = "yaml_parse_error"


class InputDirectoryError(CatalogError):
    code = "input_directory_error"


class SpreadsheetReadError(CatalogError):
    code = "spreadsheet_read_error"

    def __init__(self, message: str, *, path: str, reason: str | None = None) -> None:
        context = {"path": path}
        if reason:
            context["reason"] = reason
        super().__init__(message, context=context)


class StoreError(CatalogError):
    code = "store_error"


class StoreConnectionError(StoreError):
    code = "store_connection_error"


class ExportError(CatalogError):
    code = "export_error"
