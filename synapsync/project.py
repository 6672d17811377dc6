"""Project scaffolding: store layout, empty manifest, config and .gitignore."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Dict, Iterable, Optional

from .config import ConfigError, ProjectConfig, ProviderConfig, SyncConfig, save_config
from .constants import (
    AGENTS_MD_FILE_NAME,
    COGNITIVE_TYPES,
    CONFIG_FILE_NAME,
    DEFAULT_STORAGE_DIR,
    MANIFEST_FILE_NAME,
    SUPPORTED_PROVIDERS,
    default_provider_paths,
    type_directory,
)
from .errors import ManifestError, SynapSyncError
from .logging import get_logger
from .models import LinkMethod, ProviderSyncRecord, PurgeResult
from .stores import ManifestManager
from .symlink import SymlinkManager

_GITIGNORE_MARKER = "# SynapSync"

_logger = get_logger("project")


def is_initialized(root: Path | str) -> bool:
    return (Path(root) / CONFIG_FILE_NAME).is_file()


def init_project(
    root: Path | str,
    *,
    name: Optional[str] = None,
    providers: Iterable[str] = ("claude",),
    method: LinkMethod | str = LinkMethod.SYMLINK,
    storage_dir: str = DEFAULT_STORAGE_DIR,
) -> ProjectConfig:
    """Create a new project rooted at `root` and return its configuration."""
    root_path = Path(root).expanduser().resolve()
    if is_initialized(root_path):
        raise ConfigError(f"Project already initialized at {root_path}")

    enabled = list(providers)
    unknown = [provider for provider in enabled if provider not in SUPPORTED_PROVIDERS]
    if unknown:
        raise ConfigError(f"Unknown provider: {', '.join(unknown)}")

    config = ProjectConfig(
        root=root_path,
        name=name or root_path.name,
        storage_dir=storage_dir,
        sync=SyncConfig(
            method=LinkMethod(method),
            providers={
                provider: ProviderConfig(
                    enabled=provider in enabled,
                    paths=default_provider_paths(provider),
                )
                for provider in SUPPORTED_PROVIDERS
            },
        ),
    )

    store = config.store_path
    for kind in COGNITIVE_TYPES:
        (store / type_directory(kind)).mkdir(parents=True, exist_ok=True)

    manifest = ManifestManager(store / MANIFEST_FILE_NAME)
    manifest.save()
    save_config(config)
    _update_gitignore(root_path, storage_dir)

    _logger.info("Initialized synapsync project %s at %s", config.name, root_path)
    return config


def purge_project(config: ProjectConfig, *, dry_run: bool = False) -> PurgeResult:
    """Remove every trace of synapsync from the project at `config.root`.

    Provider entries that belong to the store are removed first, then the
    store, the config file, AGENTS.md and the ``.gitignore`` block. Entries in
    provider directories that were not created by synapsync are left alone.
    With `dry_run` nothing is touched and the result lists what would go.

    Raises:
        LinkError: when a provider entry cannot be removed.
        SynapSyncError: when a project file cannot be removed.
    """
    result = PurgeResult()
    symlinks = SymlinkManager(config.root, config.store_path, config.provider_paths())
    records = _recorded_syncs(config.store_path / MANIFEST_FILE_NAME)
    for provider in symlinks.providers:
        record = records.get(provider)
        result.links.extend(
            symlinks.remove_links(
                provider,
                managed_names=record.cognitive_names if record is not None else (),
                dry_run=dry_run,
            )
        )

    for path in (config.store_path, config.config_path, config.root / AGENTS_MD_FILE_NAME):
        if not os.path.lexists(path):
            continue
        if not dry_run:
            _remove_path(path)
        result.paths.append(str(path))

    result.gitignore_updated = _strip_gitignore(config.root, dry_run=dry_run)
    if not dry_run and not result.is_empty:
        _logger.info(
            "Purged synapsync from %s (%d provider entries, %d paths)",
            config.root,
            len(result.links),
            len(result.paths),
        )
    return result


def _recorded_syncs(manifest_path: Path) -> Dict[str, ProviderSyncRecord]:
    try:
        return ManifestManager(manifest_path).get_provider_syncs()
    except ManifestError as exc:
        _logger.warning("Ignoring copy records from unreadable manifest: %s", exc)
        return {}


def _remove_path(path: Path) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as exc:
        raise SynapSyncError(f"Cannot remove {path}: {exc}") from exc


def _strip_gitignore(root: Path, *, dry_run: bool) -> bool:
    """Drop the block started by the SynapSync marker; returns True if one was found."""
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return False
    lines = gitignore.read_text(encoding="utf-8").splitlines()
    if _GITIGNORE_MARKER not in lines:
        return False
    if dry_run:
        return True

    start = lines.index(_GITIGNORE_MARKER)
    end = start + 1
    while end < len(lines) and lines[end].strip():
        end += 1
    if start > 0 and not lines[start - 1].strip():
        start -= 1
    kept = lines[:start] + lines[end:]

    if any(line.strip() for line in kept):
        gitignore.write_text("\n".join(kept) + "\n", encoding="utf-8")
    else:
        _remove_path(gitignore)
    return True


def _update_gitignore(root: Path, storage_dir: str) -> None:
    gitignore = root / ".gitignore"
    entry = f"{storage_dir}/{MANIFEST_FILE_NAME}"
    block = f"{_GITIGNORE_MARKER}\n{entry}\n"

    if not gitignore.exists():
        gitignore.write_text(block, encoding="utf-8")
        return

    existing = gitignore.read_text(encoding="utf-8")
    if entry in existing.splitlines():
        return
    prefix = "" if existing.endswith("\n") or not existing else "\n"
    with gitignore.open("a", encoding="utf-8") as handle:
        handle.write(f"{prefix}\n{block}")


__all__ = ["init_project", "is_initialized", "purge_project"]
