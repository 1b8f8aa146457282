"""Configuration loader for cbtadmin.

Values are merged from several sources, later sources winning:

1. Built-in defaults.
2. ``~/.config/cbtadmin/config.yml`` (or an override path).
3. Environment variables prefixed with ``CBTADMIN_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export CBTADMIN_CLUSTER__SERVE_NODES=5
    export CBTADMIN_INSTANCE__TYPE=DEVELOPMENT

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "CBTADMIN_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

ALLOWED_INSTANCE_TYPES = {"PRODUCTION", "DEVELOPMENT"}
ALLOWED_STORAGE_TYPES = {"HDD", "SSD"}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class InstanceSettings:
    """Attributes applied to the instance when it has to be created."""

    display_name: str = "Sample Instance"
    type: str = "PRODUCTION"
    labels: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "display_name": self.display_name,
            "type": self.type,
            "labels": dict(self.labels),
        }


@dataclass(frozen=True)
class ClusterSettings:
    """Attributes applied to the single cluster created with the instance."""

    # Production instances need at least 3 nodes.
    serve_nodes: int = 3
    storage_type: str = "HDD"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"serve_nodes": self.serve_nodes, "storage_type": self.storage_type}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for cbtadmin."""

    config_file: Path
    logs_dir: Path
    credentials_file: Path | None
    admin_endpoint: str | None
    create_timeout: float | None
    instance: InstanceSettings
    cluster: ClusterSettings

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "credentials_file": str(self.credentials_file) if self.credentials_file else None,
            "admin_endpoint": self.admin_endpoint,
            "create_timeout": self.create_timeout,
            "instance": self.instance.to_dict(),
            "cluster": self.cluster.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/cbtadmin/config.yml",
    "logs_dir": "~/.local/state/cbtadmin/logs",
    "credentials_file": None,
    "admin_endpoint": None,
    "create_timeout": None,
    "instance": {
        "display_name": "Sample Instance",
        "type": "PRODUCTION",
        "labels": {},
    },
    "cluster": {
        "serve_nodes": 3,
        "storage_type": "HDD",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    instance_map = _as_dict(raw.get("instance"), "instance")
    unknown = set(instance_map.keys()) - {"display_name", "type", "labels"}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown instance configuration keys: {joined}.")

    cluster_map = _as_dict(raw.get("cluster"), "cluster")
    unknown = set(cluster_map.keys()) - {"serve_nodes", "storage_type"}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown cluster configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    logs_dir = _to_path(raw.get("logs_dir"))

    credentials_value = raw.get("credentials_file")
    credentials_file: Path | None = None
    if isinstance(credentials_value, (str, Path)):
        if str(credentials_value).strip():
            credentials_file = _to_path(credentials_value)
    elif credentials_value is not None:
        raise ConfigError("credentials_file must be a string, Path, or null.")

    endpoint_value = raw.get("admin_endpoint")
    admin_endpoint: str | None = None
    if isinstance(endpoint_value, str):
        admin_endpoint = endpoint_value.strip() or None
    elif endpoint_value is not None:
        raise ConfigError("admin_endpoint must be a string or null.")

    timeout_value = raw.get("create_timeout")
    create_timeout = (
        None
        if timeout_value is None
        else _expect_positive_float(timeout_value, "create_timeout", default=0.0)
    )

    instance_map = _as_dict(raw.get("instance"), "instance")
    instance_type = _expect_choice(
        instance_map.get("type", "PRODUCTION"), "instance.type", ALLOWED_INSTANCE_TYPES
    )
    display_name = str(instance_map.get("display_name", "Sample Instance")).strip()
    if not display_name:
        raise ConfigError("instance.display_name must be a non-empty string.")
    labels_map = _as_dict(instance_map.get("labels"), "instance.labels")
    labels: dict[str, str] = {}
    for key, value in labels_map.items():
        if not isinstance(value, str):
            raise ConfigError(
                f"instance.labels.{key} must be a string. Got {value!r}; quote it in YAML."
            )
        labels[key] = value

    cluster_map = _as_dict(raw.get("cluster"), "cluster")
    serve_nodes = _expect_int(cluster_map.get("serve_nodes"), "cluster.serve_nodes", default=3)
    if serve_nodes <= 0:
        raise ConfigError(f"cluster.serve_nodes must be greater than zero. Got {serve_nodes}.")
    storage_type = _expect_choice(
        cluster_map.get("storage_type", "HDD"), "cluster.storage_type", ALLOWED_STORAGE_TYPES
    )

    return AppConfig(
        config_file=config_file,
        logs_dir=logs_dir,
        credentials_file=credentials_file,
        admin_endpoint=admin_endpoint,
        create_timeout=create_timeout,
        instance=InstanceSettings(display_name=display_name, type=instance_type, labels=labels),
        cluster=ClusterSettings(serve_nodes=serve_nodes, storage_type=storage_type),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_choice(value: object, label: str, allowed: set[str]) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"Expected {label} to be a string. Got {type(value).__name__}.")
    normalized = value.strip().upper()
    if normalized not in allowed:
        joined = ", ".join(sorted(allowed))
        raise ConfigError(f"Unsupported {label} '{value}'. Allowed: {joined}.")
    return normalized


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ClusterSettings",
    "ConfigError",
    "InstanceSettings",
    "load_config",
]
