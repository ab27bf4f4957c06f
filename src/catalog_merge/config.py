from __future__ import annotations

import dataclasses
import json
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker

from catalog_merge.exceptions import ConfigValidationError, YamlParseError
from catalog_merge.secrets import SecretStr
from catalog_merge.store.types import PoolConfig

CONFIG_SCHEMA = "catalog_config"

DEFAULT_EXTENSIONS = (".xlsx",)
DEFAULT_DSN = "sqlite:///catalog.db"
DEFAULT_EXPORT_PATH = "output.sql"
DEFAULT_PAGE_SIZE = 1000
DEFAULT_WORKERS = 4
DEFAULT_LOCK_SHARDS = 64


@dataclasses.dataclass(frozen=True)
class ColumnMapping:
    """Zero-based column indices of the three fields inside one supplier file."""

    brand: int
    article: int
    name: int

    @property
    def max_index(self) -> int:
        return max(self.brand, self.article, self.name)


@dataclasses.dataclass(frozen=True)
class InputConfig:
    directory: Path
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    dsn: SecretStr
    table: str = "products"
    reset: bool = True
    pool: PoolConfig = dataclasses.field(default_factory=PoolConfig)


@dataclasses.dataclass(frozen=True)
class MergeConfig:
    mode: str = "atomic"
    workers: int = DEFAULT_WORKERS
    lock_shards: int = DEFAULT_LOCK_SHARDS
    detect_drift: bool = True


@dataclasses.dataclass(frozen=True)
class ExportConfig:
    path: Path
    page_size: int = DEFAULT_PAGE_SIZE
    include_fingerprint: bool = False


@dataclasses.dataclass(frozen=True)
class CatalogConfig:
    input: InputConfig
    files: dict[str, ColumnMapping]
    store: StoreConfig
    merge: MergeConfig
    export: ExportConfig
    base_dir: Path


def _load_schema_from_package(schema_name: str) -> dict[str, Any]:
    schema_path = resources.files("catalog_merge").joinpath(
        "schemas",
        f"{schema_name}.schema.json",
    )
    return json.loads(schema_path.read_text(encoding="utf-8"))


@cache
def load_schema(schema_name: str) -> dict[str, Any]:
    try:
        return _load_schema_from_package(schema_name)
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Schema not found: {schema_name}") from exc


def validate_config(config: Any, schema_name: str, *, config_path: Path | None = None) -> None:
    schema = load_schema(schema_name)
    validator = Draft7Validator(schema, format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(config), key=lambda exc: list(map(str, exc.path)))
    if not errors:
        return
    location = str(config_path) if config_path else "<config>"
    lines = [f"Schema validation failed for {location} ({schema_name})."]
    error_details: list[dict[str, str]] = []
    for error in errors[:10]:
        path = ".".join(str(p) for p in error.path) if error.path else "<root>"
        lines.append(f"- {path}: {error.message}")
        error_details.append({"path": path, "message": error.message})
    if len(errors) > 10:
        lines.append(f"... and {len(errors) - 10} more errors.")
    raise ConfigValidationError(
        "\n".join(lines),
        context={
            "path": location,
            "schema": schema_name,
            "errors": error_details,
            "truncated": len(errors) > 10,
        },
    )


def read_yaml(path: Path, schema_name: str | None = None) -> Any:
    """Read a YAML (or JSON) file, optionally validating it against a packaged schema."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigValidationError(
            f"Cannot read configuration file {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise YamlParseError(
            f"YAML parse error in {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    if data is None:
        data = {}
    if schema_name:
        validate_config(data, schema_name, config_path=path)
    return data


def _resolve_path(value: str, base_dir: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def _parse_files(entries: list[dict[str, Any]], config_path: Path) -> dict[str, ColumnMapping]:
    files: dict[str, ColumnMapping] = {}
    for entry in entries:
        filename = entry["filename"]
        if filename in files:
            raise ConfigValidationError(
                f"Duplicate column mapping for {filename} in {config_path}",
                context={"path": str(config_path), "filename": filename},
            )
        cols = entry["columns"]
        files[filename] = ColumnMapping(
            brand=int(cols["brand"]),
            article=int(cols["article"]),
            name=int(cols["name"]),
        )
    return files


def build_config(data: dict[str, Any], *, base_dir: Path, config_path: Path | None = None) -> CatalogConfig:
    """Turn a validated configuration mapping into immutable config values."""
    location = config_path or base_dir
    input_cfg = data.get("input", {}) or {}
    store_cfg = data.get("store", {}) or {}
    pool_cfg = store_cfg.get("pool", {}) or {}
    merge_cfg = data.get("merge", {}) or {}
    export_cfg = data.get("export", {}) or {}
    return CatalogConfig(
        input=InputConfig(
            directory=_resolve_path(str(input_cfg.get("directory", "prices")), base_dir),
            extensions=tuple(
                ext.lower() for ext in input_cfg.get("extensions", DEFAULT_EXTENSIONS)
            ),
        ),
        files=_parse_files(data.get("files", []) or [], Path(location)),
        store=StoreConfig(
            dsn=SecretStr(store_cfg.get("dsn", DEFAULT_DSN)),
            table=str(store_cfg.get("table", "products")),
            reset=bool(store_cfg.get("reset", True)),
            pool=PoolConfig(
                max_open=int(pool_cfg.get("max_open", 50)),
                max_idle=int(pool_cfg.get("max_idle", 20)),
                max_lifetime_seconds=float(pool_cfg.get("max_lifetime_seconds", 300.0)),
                timeout_seconds=float(pool_cfg.get("timeout_seconds", 30.0)),
            ),
        ),
        merge=MergeConfig(
            mode=str(merge_cfg.get("mode", "atomic")),
            workers=int(merge_cfg.get("workers", DEFAULT_WORKERS)),
            lock_shards=int(merge_cfg.get("lock_shards", DEFAULT_LOCK_SHARDS)),
            detect_drift=bool(merge_cfg.get("detect_drift", True)),
        ),
        export=ExportConfig(
            path=_resolve_path(str(export_cfg.get("path", DEFAULT_EXPORT_PATH)), base_dir),
            page_size=int(export_cfg.get("page_size", DEFAULT_PAGE_SIZE)),
            include_fingerprint=bool(export_cfg.get("include_fingerprint", False)),
        ),
        base_dir=base_dir,
    )


def load_config(path: Path) -> CatalogConfig:
    path = Path(path).expanduser().resolve()
    data = read_yaml(path, schema_name=CONFIG_SCHEMA)
    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Configuration root in {path} must be a mapping",
            context={"path": str(path)},
        )
    return build_config(data, base_dir=path.parent, config_path=path)
