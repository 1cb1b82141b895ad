"""Settings loading and validation for the YAML configuration file."""

from __future__ import annotations

import codecs
import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from btprinter.core.errors import ConfigLoadError, ConfigValidationError
from btprinter.core.model import SPP_UUID

CONFIG_ENV_VAR = "BTPRINTER_CONFIG"
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrinterSettings:
    service_uuid: str = SPP_UUID
    default_channel: int = 1
    connect_timeout_s: float = 10.0
    write_timeout_s: float | None = None
    sdp_timeout_s: float = 10.0
    text_encoding: str = "utf-8"
    unknown_name: str = "Unknown"
    enforce_permissions: bool = True
    permission_request_command: tuple[str, ...] | None = ("rfkill", "unblock", "bluetooth")


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


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


def _load_schema_validator() -> Any:
    schema_text = resources.files("btprinter.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "btprinter" / "config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Settings file {path} must contain a mapping at root")
    return loaded


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def _normalize_encoding(value: str) -> str:
    try:
        return codecs.lookup(value).name
    except LookupError as exc:
        raise ConfigValidationError(f"text_encoding '{value}' is not a known codec") from exc


def build_settings(doc: dict[str, Any], source: Path | str = "<settings>") -> PrinterSettings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = PrinterSettings()
    command = doc.get("permission_request_command", defaults.permission_request_command)
    write_timeout = doc.get("write_timeout_s", defaults.write_timeout_s)
    return PrinterSettings(
        service_uuid=str(doc.get("service_uuid", defaults.service_uuid)).upper(),
        default_channel=int(doc.get("default_channel", defaults.default_channel)),
        connect_timeout_s=float(doc.get("connect_timeout_s", defaults.connect_timeout_s)),
        write_timeout_s=float(write_timeout) if write_timeout is not None else None,
        sdp_timeout_s=float(doc.get("sdp_timeout_s", defaults.sdp_timeout_s)),
        text_encoding=_normalize_encoding(doc.get("text_encoding", defaults.text_encoding)),
        unknown_name=doc.get("unknown_name", defaults.unknown_name),
        enforce_permissions=_normalize_bool(
            doc.get("enforce_permissions", defaults.enforce_permissions),
            context=f"{source}.enforce_permissions",
        ),
        permission_request_command=tuple(command) if command is not None else None,
    )


def load_settings(path: Path | str | None = None) -> PrinterSettings:
    """Load settings from ``path``, ``$BTPRINTER_CONFIG`` or the XDG default.

    An explicitly named file must exist; a missing default file yields the
    built-in defaults.
    """
    explicit = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        config_path = Path(explicit)
        if not config_path.is_file():
            raise ConfigLoadError(f"Settings file {config_path} does not exist")
    else:
        config_path = default_config_path()
        if not config_path.is_file():
            LOGGER.debug("No settings file at %s; using defaults", config_path)
            return PrinterSettings()

    LOGGER.debug("Loading settings from %s", config_path)
    return build_settings(_read_yaml(config_path), config_path)
