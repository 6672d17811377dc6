"""Lifecycle of cognitive links inside provider directories."""

from __future__ import annotations

import filecmp
import hashlib
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .constants import COGNITIVE_TYPES, SUPPORTED_PROVIDERS, default_provider_paths, type_directory
from .errors import LinkError
from .logging import get_logger
from .models import (
    CognitiveItem,
    CognitiveType,
    LinkInfo,
    LinkMethod,
    LinkOutcome,
    OperationError,
    ProviderSyncResult,
    VerifyResult,
)

_logger = get_logger("symlink")


def _detect_symlink_support() -> bool:
    if os.name != "nt":
        return True
    try:
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "target"
            target.write_text("", encoding="utf-8")
            os.symlink(target, Path(tmp) / "link")
    except (OSError, NotImplementedError):
        return False
    return True


def _create_symlink(target: Path, link_path: Path, is_directory: bool) -> None:
    relative = os.path.relpath(os.path.abspath(target), os.path.abspath(link_path.parent))
    os.symlink(relative, link_path, target_is_directory=is_directory)


def _copy_entry(target: Path, link_path: Path, is_directory: bool) -> None:
    if is_directory:
        shutil.copytree(target, link_path)
    else:
        shutil.copy2(target, link_path)


def _remove_entry(path: Path) -> None:
    """Remove a link, file, or copied directory; a missing entry is not an error.

    Raises:
        LinkError: when the entry exists but cannot be removed.
    """
    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
        else:
            shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise LinkError(f"Cannot remove {path}: {exc}") from exc


def _discard_partial(path: Path) -> None:
    try:
        _remove_entry(path)
    except LinkError as exc:
        _logger.debug("Could not discard partial entry: %s", exc)


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _same_tree(left: Path, right: Path) -> bool:
    comparison = filecmp.dircmp(left, right)
    if comparison.left_only or comparison.right_only or comparison.funny_files:
        return False
    _, mismatch, errors = filecmp.cmpfiles(left, right, comparison.common_files, shallow=False)
    if mismatch or errors:
        return False
    return all(_same_tree(left / name, right / name) for name in comparison.common_dirs)


def _is_within(path: Path, root: Path) -> bool:
    return path == root or path.is_relative_to(root)


def _store_type(relative: Path) -> Optional[CognitiveType]:
    if not relative.parts:
        return None
    for kind in COGNITIVE_TYPES:
        if relative.parts[0] == type_directory(kind):
            return CognitiveType(kind)
    return None


def _entry_name(link_path: Path, kind: CognitiveType) -> str:
    return link_path.name if kind == CognitiveType.SKILL else Path(link_path.name).stem


class SymlinkManager:
    """Makes provider directories mirror the desired set of cognitives.

    Each provider maps every cognitive type to a directory relative to the
    project root (``.claude/skills``, ``.claude/agents``, ...). Skills are
    linked as directories named after the skill; other types are linked as
    single files named ``<name><suffix>``. Only entries that resolve inside
    the store (or copies recorded as ours) are ever removed.
    """

    def __init__(
        self,
        project_root: Path | str,
        store_dir: Path | str,
        provider_paths: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> None:
        self.project_root = Path(project_root).expanduser().absolute()
        self.store_dir = Path(store_dir).expanduser().absolute()
        self._provider_paths: Dict[str, Dict[str, str]] = {
            name: default_provider_paths(name) for name in SUPPORTED_PROVIDERS
        }
        for name, configured in (provider_paths or {}).items():
            merged = default_provider_paths(name)
            merged.update({kind: path for kind, path in configured.items() if kind in COGNITIVE_TYPES})
            self._provider_paths[name] = merged
        self._symlink_support: Optional[bool] = None

    @property
    def providers(self) -> List[str]:
        return list(self._provider_paths)

    def is_known_provider(self, provider: str) -> bool:
        return provider in self._provider_paths

    def provider_dir(self, provider: str, cognitive_type: CognitiveType | str) -> Path:
        kind = CognitiveType(cognitive_type).value
        return self.project_root / self._provider_paths[provider][kind]

    def check_symlink_support(self) -> bool:
        """Probe once whether this platform lets us create symlinks."""
        if self._symlink_support is None:
            self._symlink_support = _detect_symlink_support()
            if not self._symlink_support:
                _logger.info("Symlinks are unavailable; provider sync will copy files")
        return self._symlink_support

    def get_existing_links(self, provider: str) -> List[LinkInfo]:
        """Inspect every entry in the provider's type directories.

        A directory shared by several types is listed once. Links into the
        store report the type their target lives under; other entries get the
        first type mapped to the directory.
        """
        if not self.is_known_provider(provider):
            return []

        links: List[LinkInfo] = []
        for type_dir, kinds in self._type_dirs(provider).items():
            kind = kinds[0]
            if not type_dir.is_dir():
                continue
            try:
                names = sorted(os.listdir(type_dir))
            except OSError as exc:
                _logger.warning("Cannot list %s: %s", type_dir, exc)
                continue
            for name in names:
                if name.startswith("."):
                    continue
                try:
                    links.append(self._inspect(type_dir / name, CognitiveType(kind)))
                except OSError as exc:
                    _logger.debug("Skipping %s: %s", type_dir / name, exc)
        return links

    def sync_provider(
        self,
        provider: str,
        items: Sequence[CognitiveItem],
        *,
        copy: bool = False,
        force: bool = False,
        dry_run: bool = False,
        types: Optional[Iterable[str]] = None,
        prune: bool = True,
        managed_names: Iterable[str] = (),
    ) -> ProviderSyncResult:
        """Create, keep, or remove provider entries so they match `items`.

        Never raises: every failure is reported in the returned result.
        """
        use_copy = copy or not self.check_symlink_support()
        method = LinkMethod.COPY if use_copy else LinkMethod.SYMLINK
        result = ProviderSyncResult(provider=provider, method=method)

        if not self.is_known_provider(provider):
            result.errors.append(
                OperationError(path=provider, operation="sync", message=f"Unknown provider: {provider}")
            )
            return result

        existing = self.get_existing_links(provider)
        existing_by_path = {info.link_path: info for info in existing}
        managed = set(managed_names)

        desired: Set[str] = set()
        for item in items:
            link_path = self._link_path(provider, item)
            desired.add(str(link_path))
            self._sync_item(
                item,
                link_path,
                existing_by_path.get(str(link_path)),
                method,
                force=force,
                managed=managed,
                dry_run=dry_run,
                result=result,
            )

        if prune:
            scope = {CognitiveType(kind).value for kind in types} if types else set(COGNITIVE_TYPES)
            dir_kinds = {str(type_dir): kinds for type_dir, kinds in self._type_dirs(provider).items()}
            self._remove_orphans(existing, desired, scope, dir_kinds, managed, dry_run, result)

        _logger.debug(
            "Provider %s: %d created, %d skipped, %d removed, %d errors",
            provider,
            sum(1 for outcome in result.created if outcome.success),
            len(result.skipped),
            len(result.removed),
            len(result.errors),
        )
        return result

    def verify_provider(
        self, provider: str, expected_names: Optional[Iterable[str]] = None
    ) -> VerifyResult:
        """Classify provider entries as valid, broken, or orphaned (read-only)."""
        expected = set(expected_names) if expected_names is not None else None
        result = VerifyResult()
        for info in self.get_existing_links(provider):
            if info.is_symlink and not info.is_valid:
                result.broken.append(info)
            elif expected is not None and info.is_symlink and info.cognitive_name not in expected:
                result.orphaned.append(info)
            else:
                result.valid.append(info)
        return result

    def clean_provider(self, provider: str, dry_run: bool = False) -> List[str]:
        """Remove broken links; returns the names removed (or that would be)."""
        removed: List[str] = []
        for info in self.verify_provider(provider).broken:
            if dry_run:
                removed.append(info.cognitive_name)
                continue
            try:
                _remove_entry(Path(info.link_path))
            except LinkError as exc:
                _logger.warning("Could not remove broken link: %s", exc)
                continue
            removed.append(info.cognitive_name)
        return removed

    def remove_links(
        self,
        provider: str,
        *,
        names: Optional[Iterable[str]] = None,
        managed_names: Iterable[str] = (),
        dry_run: bool = False,
    ) -> List[str]:
        """Remove provider entries that belong to the store.

        Only symlinks resolving inside the store and copies listed in
        `managed_names` are touched. `names` narrows the removal to those
        cognitives. Returns the link paths removed (or that would be).

        Raises:
            LinkError: when an entry cannot be removed.
        """
        wanted = set(names) if names is not None else None
        managed = set(managed_names)
        removed: List[str] = []
        for info in self.get_existing_links(provider):
            if wanted is not None and info.cognitive_name not in wanted:
                continue
            if not self._is_owned(info, managed):
                continue
            if not dry_run:
                _remove_entry(Path(info.link_path))
            removed.append(info.link_path)
        if removed:
            _logger.debug("Provider %s: removed %d entries", provider, len(removed))
        return removed

    # ------------------------------------------------------------------
    # Internal helpers

    def _type_dirs(self, provider: str) -> Dict[Path, List[str]]:
        """Group cognitive types by the provider directory they map to."""
        grouped: Dict[Path, List[str]] = {}
        for kind in COGNITIVE_TYPES:
            grouped.setdefault(self.provider_dir(provider, kind), []).append(kind)
        return grouped

    def _link_path(self, provider: str, item: CognitiveItem) -> Path:
        return self.provider_dir(provider, item.type) / item.link_name

    @staticmethod
    def _is_owned(info: LinkInfo, managed: Set[str]) -> bool:
        if info.is_symlink:
            return info.resolves_inside_store
        return info.cognitive_name in managed

    def _inspect(self, link_path: Path, kind: CognitiveType) -> LinkInfo:
        st = os.lstat(link_path)
        if not stat.S_ISLNK(st.st_mode):
            return LinkInfo(
                cognitive_name=_entry_name(link_path, kind),
                cognitive_type=kind,
                target_path=str(link_path),
                link_path=str(link_path),
                is_symlink=False,
                is_valid=True,
                resolves_inside_store=False,
            )

        target = Path(os.path.realpath(link_path))
        store_root = Path(os.path.realpath(self.store_dir))
        inside = _is_within(target, store_root)
        if inside:
            # Store links carry their type in the target path (<store>/<type>s/...).
            kind = _store_type(target.relative_to(store_root)) or kind
        return LinkInfo(
            cognitive_name=_entry_name(link_path, kind),
            cognitive_type=kind,
            target_path=str(target),
            link_path=str(link_path),
            is_symlink=True,
            is_valid=os.path.exists(link_path),
            resolves_inside_store=inside,
        )

    def _is_current(self, info: LinkInfo, item: CognitiveItem) -> bool:
        expected = Path(os.path.realpath(item.link_target))
        if info.is_symlink:
            return info.is_valid and Path(info.target_path) == expected
        try:
            if item.is_directory:
                return Path(info.link_path).is_dir() and _same_tree(Path(info.link_path), expected)
            return Path(info.link_path).is_file() and _hash_file(Path(info.link_path)) == item.content_hash
        except OSError:
            return False

    def _sync_item(
        self,
        item: CognitiveItem,
        link_path: Path,
        existing: Optional[LinkInfo],
        method: LinkMethod,
        *,
        force: bool,
        managed: Set[str],
        dry_run: bool,
        result: ProviderSyncResult,
    ) -> None:
        if existing is not None and self._is_current(existing, item):
            result.skipped.append(item.name)
            return

        # Stale entries we created earlier are refreshed without force.
        occupied = os.path.lexists(link_path)
        replaceable = force or (existing is not None and self._is_owned(existing, managed))
        if occupied and not replaceable:
            self._fail(result, item, method, link_path, f"{link_path} already exists (use force to replace it)")
            return

        if dry_run:
            result.created.append(LinkOutcome(name=item.name, method=method, success=True))
            return

        try:
            link_path.parent.mkdir(parents=True, exist_ok=True)
            if occupied:
                _remove_entry(link_path)
        except (OSError, LinkError) as exc:
            self._fail(result, item, method, link_path, str(exc))
            return

        target = Path(item.link_target)
        if method == LinkMethod.SYMLINK:
            try:
                _create_symlink(target, link_path, item.is_directory)
            except (OSError, NotImplementedError) as exc:
                _logger.debug("Symlink for %s failed (%s); copying instead", item.name, exc)
                _discard_partial(link_path)
            else:
                result.created.append(LinkOutcome(name=item.name, method=LinkMethod.SYMLINK, success=True))
                return

        try:
            _copy_entry(target, link_path, item.is_directory)
        except OSError as exc:
            _discard_partial(link_path)
            self._fail(result, item, LinkMethod.COPY, link_path, str(exc))
            return
        result.created.append(LinkOutcome(name=item.name, method=LinkMethod.COPY, success=True))

    def _remove_orphans(
        self,
        existing: Sequence[LinkInfo],
        desired: Set[str],
        scope: Set[str],
        dir_kinds: Mapping[str, List[str]],
        managed: Set[str],
        dry_run: bool,
        result: ProviderSyncResult,
    ) -> None:
        for info in existing:
            if info.link_path in desired or not self._is_owned(info, managed):
                continue
            if info.is_symlink:
                in_scope = info.cognitive_type.value in scope
            else:
                # A copy in a shared directory has no reliable type.
                in_scope = set(dir_kinds.get(str(Path(info.link_path).parent), ())) <= scope
            if not in_scope:
                continue

            if not dry_run:
                try:
                    _remove_entry(Path(info.link_path))
                except LinkError as exc:
                    result.errors.append(
                        OperationError(path=info.link_path, operation="remove", message=str(exc))
                    )
                    continue
            result.removed.append(info.cognitive_name)

    @staticmethod
    def _fail(
        result: ProviderSyncResult,
        item: CognitiveItem,
        method: LinkMethod,
        link_path: Path,
        message: str,
    ) -> None:
        result.created.append(LinkOutcome(name=item.name, method=method, success=False, error=message))
        result.errors.append(OperationError(path=str(link_path), operation="create", message=message))


__all__ = ["SymlinkManager"]
