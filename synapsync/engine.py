"""Reconciliation pipeline tying the scanner, manifest, and provider links together."""

from __future__ import annotations

import shutil
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .config import ConfigError, ProjectConfig
from .constants import CATEGORIES, COGNITIVE_TYPES, MANIFEST_FILE_NAME
from .errors import (
    INVALID_FILTER,
    PROVIDER_SYNC_FAILED,
    RECONCILE_FAILED,
    SCAN_FAILED,
    UNKNOWN_PROVIDER,
    NotInstalledError,
    ScanError,
    SynapSyncError,
)
from .logging import get_logger
from .models import (
    CognitiveItem,
    ComparisonResult,
    LinkMethod,
    ManifestCognitive,
    ProviderStatus,
    ProviderSyncResult,
    SyncAction,
    SyncError,
    SyncProgress,
    SyncResult,
    SyncStatus,
    UninstallResult,
)
from .scanner import CognitiveScanner
from .stores import ManifestManager
from .symlink import SymlinkManager

ProgressCallback = Callable[[SyncProgress], None]

PHASE_SCANNING = "scanning"
PHASE_COMPARING = "comparing"
PHASE_RECONCILING = "reconciling"
PHASE_SAVING = "saving"
PHASE_COMPLETE = "complete"


class SyncEngine:
    """Runs scan → compare → reconcile → save passes over one project.

    The filesystem store is the ground truth: the manifest is brought in line
    with what the scanner sees, then every enabled provider is linked to the
    scanned items. The manifest is written at most once per pass.
    """

    def __init__(
        self,
        store_dir: Path | str,
        project_root: Path | str | None = None,
        config: Optional[ProjectConfig] = None,
        *,
        scanner: CognitiveScanner | None = None,
        manifest: ManifestManager | None = None,
        symlinks: SymlinkManager | None = None,
    ) -> None:
        self.store_dir = Path(store_dir).expanduser()
        self.project_root = (
            Path(project_root).expanduser() if project_root is not None else self.store_dir.parent
        )
        self.config = config
        self.logger = get_logger("engine")
        self._scanner = scanner or CognitiveScanner(self.store_dir)
        self._manifest = manifest or ManifestManager(self.store_dir / MANIFEST_FILE_NAME)
        self._symlinks = symlinks or SymlinkManager(
            self.project_root,
            self.store_dir,
            config.provider_paths() if config is not None else None,
        )
        self._enabled_providers: List[str] = config.enabled_providers() if config is not None else []
        self._default_method = config.sync.method if config is not None else LinkMethod.SYMLINK

    @classmethod
    def from_config(cls, config: ProjectConfig) -> "SyncEngine":
        return cls(config.store_path, config.root, config)

    @property
    def manifest(self) -> ManifestManager:
        return self._manifest

    @property
    def scanner(self) -> CognitiveScanner:
        return self._scanner

    @property
    def symlinks(self) -> SymlinkManager:
        return self._symlinks

    @property
    def enabled_providers(self) -> List[str]:
        return list(self._enabled_providers)

    def sync(
        self,
        *,
        dry_run: bool = False,
        types: Optional[Sequence[str]] = None,
        categories: Optional[Sequence[str]] = None,
        provider: Optional[str] = None,
        copy: bool = False,
        force: bool = False,
        manifest_only: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """Run one reconciliation pass and return its consolidated result."""
        started = time.perf_counter()
        types = list(types) if types else None
        categories = list(categories) if categories else None

        usage_error = self._validate_filters(types, categories, provider)
        if usage_error is not None:
            return SyncResult(success=False, errors=[usage_error], duration=_elapsed(started))

        _emit(on_progress, PHASE_SCANNING, "Scanning cognitive store")
        try:
            scanned = self._scanner.scan(types=types, categories=categories)
        except (ScanError, ConfigError, OSError) as exc:
            self.logger.error("Scan failed: %s", exc)
            return SyncResult(
                success=False,
                errors=[SyncError(message=str(exc), code=SCAN_FAILED)],
                duration=_elapsed(started),
            )

        _emit(on_progress, PHASE_COMPARING, "Comparing with manifest", total=len(scanned))
        in_scope = self._manifest_entries_in_scope(types, categories)
        comparison = self._scanner.compare(scanned, in_scope)

        result = SyncResult(
            success=True,
            added=len(comparison.new),
            updated=len(comparison.modified),
            removed=len(comparison.removed),
            unchanged=comparison.unchanged,
        )
        result.actions = _plan_actions(comparison)

        total_changes = len(result.actions)
        _emit(on_progress, PHASE_RECONCILING, "Reconciling manifest", current=0, total=total_changes)
        manifest_changed = False
        if not dry_run:
            manifest_changed = self._apply_comparison(comparison, result.errors)

        providers_changed = False
        if not manifest_only:
            result.provider_results = []
            for name in self._providers_for(provider):
                _emit(on_progress, PHASE_RECONCILING, f"Syncing provider {name}")
                provider_result = self._symlinks.sync_provider(
                    name,
                    scanned,
                    copy=copy or self._default_method == LinkMethod.COPY,
                    force=force,
                    dry_run=dry_run,
                    types=types,
                    prune=categories is None,
                    managed_names=self._managed_names(name),
                )
                result.provider_results.append(provider_result)
                for error in provider_result.errors:
                    result.errors.append(
                        SyncError(
                            message=error.message,
                            code=PROVIDER_SYNC_FAILED,
                            path=error.path,
                            operation=error.operation,
                        )
                    )
                if not dry_run and self._record_provider_sync(provider_result, scanned, types, categories):
                    providers_changed = True

        _emit(on_progress, PHASE_SAVING, "Saving manifest")
        if not dry_run and (manifest_changed or providers_changed):
            self._manifest.save()

        result.total = self._manifest.get_cognitive_count()
        result.success = not result.errors
        result.duration = _elapsed(started)
        _emit(on_progress, PHASE_COMPLETE, "Sync complete", current=total_changes, total=total_changes)
        self.logger.info(
            "Sync %s: %d added, %d updated, %d removed, %d unchanged, %d errors",
            "preview" if dry_run else "complete",
            result.added,
            result.updated,
            result.removed,
            result.unchanged,
            len(result.errors),
        )
        return result

    def preview(self, **options: object) -> SyncResult:
        """Dry-run variant of :meth:`sync`."""
        options["dry_run"] = True
        return self.sync(**options)  # type: ignore[arg-type]

    def get_status(self) -> SyncStatus:
        """Compare the store with the manifest without changing anything."""
        scanned = self._scanner.scan()
        entries = self._manifest.get_cognitives()
        comparison = self._scanner.compare(scanned, entries)
        return SyncStatus(
            manifest=len(entries),
            filesystem=len(scanned),
            in_sync=not comparison.has_changes,
            new_in_filesystem=len(comparison.new),
            removed_from_filesystem=len(comparison.removed),
            modified=len(comparison.modified),
        )

    def get_provider_status(self, provider: str) -> ProviderStatus:
        record = self._manifest.get_provider_sync(provider)
        if record is not None:
            expected = record.cognitive_names
        else:
            expected = [entry.name for entry in self._manifest.get_cognitives()]
        verified = self._symlinks.verify_provider(provider, expected)
        return ProviderStatus(
            valid=len(verified.valid),
            broken=len(verified.broken),
            orphaned=len(verified.orphaned),
        )

    def list_cognitives(
        self,
        *,
        types: Optional[Sequence[str]] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> List[ManifestCognitive]:
        """Return installed cognitives ordered by type, then name.

        Raises:
            ConfigError: when a filter names an unknown type or category.
        """
        usage_error = self._validate_filters(types, categories, None)
        if usage_error is not None:
            raise ConfigError(usage_error.message)
        entries = self._manifest_entries_in_scope(types, categories)
        return sorted(entries, key=lambda entry: (COGNITIVE_TYPES.index(entry.type.value), entry.name))

    def uninstall(self, name: str, *, keep_files: bool = False) -> UninstallResult:
        """Remove a cognitive from every provider, the store and the manifest.

        Provider entries are removed first, then the store folder (unless
        `keep_files`), and the manifest is saved last so a failure leaves the
        entry registered.

        Raises:
            NotInstalledError: when `name` is not in the manifest.
            LinkError: when a provider entry cannot be removed.
            SynapSyncError: when the store folder cannot be removed.
        """
        entry = self._manifest.get_cognitive(name)
        if entry is None:
            raise NotInstalledError(f"Cognitive '{name}' is not installed")

        result = UninstallResult(name=name, type=entry.type)
        for provider in self._symlinks.providers:
            result.removed_links.extend(
                self._symlinks.remove_links(
                    provider, names=[name], managed_names=self._managed_names(provider)
                )
            )
            record = self._manifest.get_provider_sync(provider)
            if record is not None and name in record.cognitive_names:
                remaining = [other for other in record.cognitive_names if other != name]
                self._manifest.set_provider_sync(provider, record.method, remaining, record.last_sync)

        if not keep_files:
            folder = self._store_folder(entry)
            if folder is not None:
                try:
                    shutil.rmtree(folder)
                except OSError as exc:
                    raise SynapSyncError(f"Cannot remove {folder}: {exc}") from exc
                result.removed_files = True

        self._manifest.remove_cognitive(name)
        self._manifest.save()
        self.logger.info(
            "Uninstalled %s (%d provider entries removed, files %s)",
            name,
            len(result.removed_links),
            "removed" if result.removed_files else "kept",
        )
        return result

    # ------------------------------------------------------------------
    # Internal helpers

    def _validate_filters(
        self,
        types: Optional[Sequence[str]],
        categories: Optional[Sequence[str]],
        provider: Optional[str],
    ) -> Optional[SyncError]:
        for value in types or []:
            if str(getattr(value, "value", value)) not in COGNITIVE_TYPES:
                return SyncError(message=f"Invalid type: {value}", code=INVALID_FILTER)
        for value in categories or []:
            if value not in CATEGORIES:
                return SyncError(message=f"Invalid category: {value}", code=INVALID_FILTER)
        if provider is not None and not self._symlinks.is_known_provider(provider):
            return SyncError(message=f"Unknown provider: {provider}", code=UNKNOWN_PROVIDER)
        return None

    def _manifest_entries_in_scope(
        self, types: Optional[Sequence[str]], categories: Optional[Sequence[str]]
    ) -> List[ManifestCognitive]:
        entries = self._manifest.get_cognitives()
        return [entry for entry in entries if _in_scope(entry, types, categories)]

    def _apply_comparison(self, comparison: ComparisonResult, errors: List[SyncError]) -> bool:
        """Stage manifest mutations; returns True when at least one succeeded."""
        changed = False
        for item in comparison.new:
            try:
                self._manifest.add_cognitive(self._scanner.to_manifest_cognitive(item))
            except (SynapSyncError, ValueError, OSError) as exc:
                errors.append(_reconcile_error(item.name, "add", exc))
                continue
            changed = True

        for item in comparison.modified:
            try:
                self._manifest.update_cognitive(item.name, self._updated_entry(item))
            except (SynapSyncError, ValueError, OSError) as exc:
                errors.append(_reconcile_error(item.name, "update", exc))
                continue
            changed = True

        for name in comparison.removed:
            try:
                self._manifest.remove_cognitive(name)
            except (SynapSyncError, ValueError, OSError) as exc:
                errors.append(_reconcile_error(name, "remove", exc))
                continue
            changed = True
        return changed

    def _updated_entry(self, item: CognitiveItem) -> ManifestCognitive:
        previous = self._manifest.get_cognitive(item.name)
        if previous is None:
            return self._scanner.to_manifest_cognitive(item)
        entry = self._scanner.to_manifest_cognitive(item, previous.source, previous.source_url)
        entry.installed_at = previous.installed_at or entry.installed_at
        return entry

    def _providers_for(self, provider: Optional[str]) -> List[str]:
        if provider is not None:
            return [provider]
        return list(self._enabled_providers)

    def _store_folder(self, entry: ManifestCognitive) -> Optional[Path]:
        for item in self._scanner.scan(types=[entry.type.value], categories=[entry.category]):
            if item.name == entry.name:
                return Path(item.storage_path)
        return None

    def _managed_names(self, provider: str) -> List[str]:
        record = self._manifest.get_provider_sync(provider)
        return list(record.cognitive_names) if record is not None else []

    def _record_provider_sync(
        self,
        provider_result: ProviderSyncResult,
        scanned: Sequence[CognitiveItem],
        types: Optional[Sequence[str]],
        categories: Optional[Sequence[str]],
    ) -> bool:
        """Update the provider's sync record; returns True when it changed."""
        linked = set(provider_result.linked_names)
        names = [item.name for item in scanned if item.name in linked]

        previous = self._manifest.get_provider_sync(provider_result.provider)
        if previous is not None and (types or categories):
            entries: Dict[str, ManifestCognitive] = {
                entry.name: entry for entry in self._manifest.get_cognitives()
            }
            kept = [
                name
                for name in previous.cognitive_names
                if name not in linked
                and name in entries
                and not _in_scope(entries[name], types, categories)
            ]
            names = kept + names

        if (
            previous is not None
            and previous.method == provider_result.method
            and previous.cognitive_names == names
        ):
            return False
        self._manifest.set_provider_sync(provider_result.provider, provider_result.method, names)
        return True


def _in_scope(
    entry: ManifestCognitive,
    types: Optional[Sequence[str]],
    categories: Optional[Sequence[str]],
) -> bool:
    if types and entry.type.value not in {str(getattr(kind, "value", kind)) for kind in types}:
        return False
    if categories and entry.category not in categories:
        return False
    return True


def _plan_actions(comparison: ComparisonResult) -> List[SyncAction]:
    actions = [SyncAction(operation="add", cognitive=item.name, type=item.type) for item in comparison.new]
    actions.extend(
        SyncAction(operation="update", cognitive=item.name, type=item.type) for item in comparison.modified
    )
    actions.extend(SyncAction(operation="remove", cognitive=name) for name in comparison.removed)
    return actions


def _reconcile_error(name: str, operation: str, exc: Exception) -> SyncError:
    return SyncError(message=str(exc), code=RECONCILE_FAILED, cognitive=name, operation=operation)


def _emit(
    callback: Optional[ProgressCallback],
    phase: str,
    message: str,
    *,
    current: Optional[int] = None,
    total: Optional[int] = None,
) -> None:
    if callback is not None:
        callback(SyncProgress(phase=phase, message=message, current=current, total=total))


def _elapsed(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


__all__ = [
    "PHASE_COMPARING",
    "PHASE_COMPLETE",
    "PHASE_RECONCILING",
    "PHASE_SAVING",
    "PHASE_SCANNING",
    "ProgressCallback",
    "SyncEngine",
]
