"""Component configuration from YAML files.

A component file describes one component and its metadata:

    kind: Component
    metadata:
      name: orders-db
    spec:
      type: state.postgresql
      version: v1
      metadata:
        - name: connectionString
          value: "host=${PGHOST:-localhost} user=app"
        - name: useAzureAD
          value: "true"

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from connauth.errors import ConfigError, ConfigErrorReason

logger = logging.getLogger(__name__)

COMPONENT_KIND = "Component"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _stringify(value: Any) -> str:
    # YAML turns true/5 into bool/int; metadata values are always strings
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class ComponentConfig:
    """A component definition with its flattened metadata properties."""

    name: str
    type: str
    version: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for name, value in self.metadata.items():
            if name.lower() == key.lower():
                return value
        return default


def component_from_dict(data: Dict[str, Any]) -> ComponentConfig:
    """
    Build a ComponentConfig from an already-loaded document.

    Raises:
        ConfigError: INVALID_METADATA if the document structure is wrong
    """
    if not isinstance(data, dict):
        raise ConfigError(ConfigErrorReason.INVALID_METADATA, "component document must be a mapping")

    kind = data.get("kind", COMPONENT_KIND)
    if kind != COMPONENT_KIND:
        raise ConfigError(
            ConfigErrorReason.INVALID_METADATA,
            f"unsupported kind: {kind!r}",
            context={"kind": kind},
        )

    name = (data.get("metadata") or {}).get("name", "")
    spec = data.get("spec") or {}
    component_type = spec.get("type", "")
    if not name or not component_type:
        raise ConfigError(
            ConfigErrorReason.INVALID_METADATA,
            "component requires metadata.name and spec.type",
        )

    properties: Dict[str, str] = {}
    for item in spec.get("metadata") or []:
        if not isinstance(item, dict) or "name" not in item:
            raise ConfigError(
                ConfigErrorReason.INVALID_METADATA,
                f"invalid metadata entry in component {name!r}: {item!r}",
            )
        properties[str(item["name"])] = _stringify(item.get("value"))

    return ComponentConfig(
        name=name,
        type=component_type,
        version=_stringify(spec.get("version")),
        metadata=properties,
    )


def load_component(path: Path | str, env_file: Path | str | None = None) -> ComponentConfig:
    """
    Load a component definition from a YAML file.

    When env_file is given, its variables are loaded into the environment
    (without overriding variables already set) before ${VAR} expansion.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: INVALID_METADATA if the file is not a valid component
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Component file not found: {path}")

    if env_file is not None:
        load_dotenv(env_file)

    logger.info(f"Loading component from file: {path}", extra={"config_path": str(path)})
    try:
        data = load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigError(
            ConfigErrorReason.INVALID_METADATA,
            f"invalid YAML in {path}",
            cause=e,
        ) from e

    component = component_from_dict(_expand_env_vars(data))
    logger.debug(
        "Loaded component",
        extra={"component_type": component.type, "config_path": str(path)},
    )
    return component


__all__ = [
    "ComponentConfig",
    "component_from_dict",
    "load_component",
    "load_yaml",
]
