"""Configuration loading for synapsync projects (synapsync.config.yaml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import (
    COGNITIVE_TYPES,
    CONFIG_FILE_NAME,
    DEFAULT_STORAGE_DIR,
    DEFAULT_VERSION,
    default_provider_paths,
)
from .errors import SynapSyncError
from .models import LinkMethod


class ConfigError(SynapSyncError):
    """Raised when the configuration file or a usage option is invalid."""


@dataclass
class ProviderConfig:
    """Per-provider sync settings."""

    enabled: bool = False
    paths: Dict[str, str] = field(default_factory=dict)


@dataclass
class SyncConfig:
    method: LinkMethod = LinkMethod.SYMLINK
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)


@dataclass
class ProjectConfig:
    """Represents the settings defined in synapsync.config.yaml."""

    root: Path
    name: str = ""
    version: str = DEFAULT_VERSION
    storage_dir: str = DEFAULT_STORAGE_DIR
    sync: SyncConfig = field(default_factory=SyncConfig)

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    @property
    def store_path(self) -> Path:
        return self.root / self.storage_dir

    def enabled_providers(self) -> List[str]:
        return [name for name, provider in self.sync.providers.items() if provider.enabled]

    def provider_paths(self) -> Dict[str, Dict[str, str]]:
        """Return `{provider: {type: relative_path}}` for every configured provider."""
        return {name: dict(provider.paths) for name, provider in self.sync.providers.items()}


def load_config(config_path: Path) -> ProjectConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ProjectConfig(root=root, name=root.name)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILE_NAME} must contain a mapping at the root")

    storage = _as_dict(data.get("storage"))
    sync_data = _as_dict(data.get("sync"))

    method_value = _as_str(sync_data.get("method")) or LinkMethod.SYMLINK.value
    try:
        method = LinkMethod(method_value.lower())
    except ValueError as exc:
        raise ConfigError(f"Invalid sync method: {method_value}") from exc

    providers: Dict[str, ProviderConfig] = {}
    for name, raw in _as_dict(sync_data.get("providers")).items():
        provider_data = _as_dict(raw)
        providers[str(name)] = ProviderConfig(
            enabled=_as_bool(provider_data.get("enabled")) or False,
            paths=_merge_paths(str(name), _as_dict(provider_data.get("paths"))),
        )

    return ProjectConfig(
        root=root,
        name=_as_str(data.get("name")) or root.name,
        version=_as_str(data.get("version")) or DEFAULT_VERSION,
        storage_dir=_as_str(storage.get("dir")) or DEFAULT_STORAGE_DIR,
        sync=SyncConfig(method=method, providers=providers),
    )


def find_project(start: Path | str) -> Optional[ProjectConfig]:
    """Walk upwards from `start` to the first directory holding a config file."""
    current = Path(start).expanduser().resolve()
    if current.is_file():
        current = current.parent
    for candidate in (current, *current.parents):
        if (candidate / CONFIG_FILE_NAME).is_file():
            return load_config(candidate)
    return None


def save_config(config: ProjectConfig) -> Path:
    """Write `config` back to its synapsync.config.yaml."""
    payload: Dict[str, Any] = {
        "name": config.name,
        "version": config.version,
        "storage": {"dir": config.storage_dir},
        "sync": {
            "method": config.sync.method.value,
            "providers": {
                name: {"enabled": provider.enabled, "paths": dict(provider.paths)}
                for name, provider in config.sync.providers.items()
            },
        },
    }
    path = config.config_path
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILE_NAME).resolve()
    if config_path.name != CONFIG_FILE_NAME:
        return (config_path.parent / CONFIG_FILE_NAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _merge_paths(provider: str, configured: Mapping[str, Any]) -> Dict[str, str]:
    paths = default_provider_paths(provider)
    for kind, value in configured.items():
        if kind in COGNITIVE_TYPES and isinstance(value, str) and value.strip():
            paths[kind] = value.strip()
    return paths


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


__all__ = [
    "ConfigError",
    "ProjectConfig",
    "ProviderConfig",
    "SyncConfig",
    "find_project",
    "load_config",
    "save_config",
]
