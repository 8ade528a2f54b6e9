"""Settings loading and validation for receiptlink."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from receiptlink.core.errors import ConfigError, ConfigValidationError

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
BLE_PRINTER_SERVICE_UUID = "000018f0-0000-1000-8000-00805f9b34fb"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class PermissionSettings:
    os_version: int
    modern_threshold: int
    granted: tuple[str, ...]
    denied: tuple[str, ...]


@dataclass(frozen=True)
class TransportSettings:
    type: str
    service_uuid: str
    strategies: tuple[str, ...]
    channel: int
    timeout_s: float
    chunk_size: int | None
    chunk_delay_s: float


@dataclass(frozen=True)
class Settings:
    permissions: PermissionSettings
    transport: TransportSettings


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources: tuple[str, ...]
    warnings: tuple[str, ...] = ()


def _load_schema_validator() -> Any:
    schema_text = resources.files("receiptlink.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "receiptlink/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def normalize_uuid(value: str, *, context: str) -> str:
    """Return a lowercase 128-bit UUID, expanding 16/32-bit Bluetooth short forms."""
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    if len(normalized) == 4:
        return f"0000{normalized}{_BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{_BASE_UUID_SUFFIX}"
    return normalized


def _build_settings(doc: dict[str, Any], source: str) -> Settings:
    permissions = doc["permissions"]
    transport = doc["transport"]

    granted = tuple(permissions.get("granted", []))
    denied = tuple(permissions.get("denied", []))
    overlap = sorted(set(granted) & set(denied))
    if overlap:
        raise ConfigValidationError(
            f"{source}: permissions both granted and denied: {', '.join(overlap)}"
        )

    transport_type = transport["type"]
    service_uuid = transport.get("service_uuid")
    if transport_type == "ble" and service_uuid is None:
        service_uuid = BLE_PRINTER_SERVICE_UUID

    return Settings(
        permissions=PermissionSettings(
            os_version=int(permissions["os_version"]),
            modern_threshold=int(permissions["modern_threshold"]),
            granted=granted,
            denied=denied,
        ),
        transport=TransportSettings(
            type=transport_type,
            service_uuid=normalize_uuid(service_uuid, context="transport.service_uuid"),
            strategies=tuple(transport["strategies"]),
            channel=int(transport["channel"]),
            timeout_s=float(transport["timeout_s"]),
            chunk_size=int(transport["chunk_size"]) if transport.get("chunk_size") is not None else None,
            chunk_delay_s=float(transport.get("chunk_delay_s", 0.0)),
        ),
    )


def _packaged_defaults() -> Traversable:
    return resources.files("receiptlink.defaults").joinpath("config.yaml")


def load_settings(path: Path | None = None) -> LoadedSettings:
    """Load packaged defaults and merge the user's file over them section by section.

    ``path`` overrides the XDG location; unlike the XDG file it must exist.
    """
    defaults_path = _packaged_defaults()
    merged = _read_yaml(defaults_path)
    _validate(merged, defaults_path)
    sources = [str(defaults_path)]
    warnings: list[str] = []

    user_path = path if path is not None else user_config_path()
    if path is not None or user_path.is_file():
        doc = _read_yaml(user_path)
        _validate(doc, user_path)
        for section, values in doc.items():
            merged[section] = {**merged.get(section, {}), **values}
            warning = f"User config '{user_path}' overrides default {section} settings"
            LOGGER.warning(warning)
            warnings.append(warning)
        LOGGER.debug("Loaded user config %s", user_path)
        sources.append(str(user_path))
        if doc.get("transport", {}).get("type") == "ble" and "service_uuid" not in doc.get("transport", {}):
            merged["transport"].pop("service_uuid", None)

    return LoadedSettings(
        settings=_build_settings(merged, sources[-1]),
        sources=tuple(sources),
        warnings=tuple(warnings),
    )
