"""Cognitive store scanning and change detection."""

from __future__ import annotations

import hashlib
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .config import ConfigError
from .constants import COGNITIVE_EXTENSIONS, COGNITIVE_FILE_NAMES, COGNITIVE_TYPES, type_directory
from .errors import ParseError, ScanError
from .frontmatter import extract_name, extract_version, parse_frontmatter
from .logging import get_logger
from .models import (
    CognitiveItem,
    CognitiveSource,
    CognitiveType,
    ComparisonResult,
    ManifestCognitive,
)

_logger = get_logger("scanner")


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _list_dirs(path: Path) -> List[Path]:
    """Return visible subdirectories sorted by name, raising ScanError on failure."""
    try:
        with os.scandir(path) as entries:
            names = sorted(
                entry.name
                for entry in entries
                if not entry.name.startswith(".") and entry.is_dir()
            )
    except OSError as exc:
        raise ScanError(f"Cannot read {path}: {exc}") from exc
    return [path / name for name in names]


def _find_primary_file(item_dir: Path, cognitive_type: str) -> Optional[Path]:
    canonical = COGNITIVE_FILE_NAMES[cognitive_type]
    if cognitive_type == CognitiveType.SKILL.value:
        candidate = item_dir / canonical
        return candidate if candidate.is_file() else None

    extensions = COGNITIVE_EXTENSIONS[cognitive_type]
    for suffix in extensions:
        named = item_dir / f"{item_dir.name}{suffix}"
        if named.is_file():
            return named

    canonical_path = item_dir / canonical
    if canonical_path.is_file():
        return canonical_path

    files = sorted(
        path
        for path in item_dir.iterdir()
        if path.is_file() and not path.name.startswith(".") and path.suffix.lower() in extensions
    )
    return files[0] if files else None


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class CognitiveScanner:
    """Walks the cognitive store to produce a snapshot of installed items.

    The store layout is ``<store>/<type>s/<category>/<name>/``. Skills are
    folders holding ``SKILL.md``; every other type holds one primary file
    named after the item (or the type's canonical file name).
    """

    def __init__(self, store_dir: str | Path) -> None:
        self.store_dir = Path(store_dir).expanduser()

    def scan(
        self,
        types: Optional[Sequence[str]] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> List[CognitiveItem]:
        """Return every readable cognitive under the store, honoring filters."""
        selected_types = self._resolve_types(types)
        category_filter = set(categories) if categories else None

        if not self.store_dir.exists():
            _logger.debug("Store %s does not exist; nothing to scan", self.store_dir)
            return []
        if not self.store_dir.is_dir():
            raise ScanError(f"Store path is not a directory: {self.store_dir}")

        found: Dict[str, CognitiveItem] = {}
        for cognitive_type in selected_types:
            for item_dir, category in self._iter_item_dirs(cognitive_type, category_filter):
                item = self._read_item(item_dir, cognitive_type, category)
                if item is None:
                    continue
                if item.name in found:
                    _logger.warning(
                        "Duplicate cognitive name %s at %s overrides %s",
                        item.name,
                        item.storage_path,
                        found[item.name].storage_path,
                    )
                    del found[item.name]
                found[item.name] = item

        _logger.debug("Scanner discovered %d cognitives in %s", len(found), self.store_dir)
        return list(found.values())

    def compare(
        self,
        scanned: Sequence[CognitiveItem],
        manifest_entries: Sequence[ManifestCognitive],
    ) -> ComparisonResult:
        """Classify scanned items against manifest entries by name and content hash."""
        recorded = {entry.name: entry for entry in manifest_entries}
        result = ComparisonResult()
        seen = set()

        for item in scanned:
            seen.add(item.name)
            entry = recorded.get(item.name)
            if entry is None:
                result.new.append(item)
            elif entry.content_hash != item.content_hash:
                # Entries without a stored hash are refreshed once so later passes are stable.
                result.modified.append(item)
            else:
                result.unchanged += 1

        result.removed = [entry.name for entry in manifest_entries if entry.name not in seen]
        return result

    def to_manifest_cognitive(
        self,
        item: CognitiveItem,
        source: CognitiveSource | str = CognitiveSource.LOCAL,
        source_url: Optional[str] = None,
    ) -> ManifestCognitive:
        """Map a scanned item onto its manifest record."""
        name = (item.name or "").strip()
        if not name:
            raise ParseError(f"Cannot determine cognitive name for {item.primary_file_path}")

        version = item.metadata.get("version")
        if not isinstance(version, str) or not version.strip():
            version = extract_version({}, self._read_text(Path(item.primary_file_path)) or "")

        return ManifestCognitive(
            name=name,
            type=CognitiveType(item.type),
            category=item.category,
            version=version.strip(),
            installed_at=_now(),
            source=CognitiveSource(source),
            source_url=source_url,
            content_hash=item.content_hash,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _resolve_types(self, types: Optional[Sequence[str]]) -> List[str]:
        if not types:
            return list(COGNITIVE_TYPES)
        resolved: List[str] = []
        for value in types:
            key = str(getattr(value, "value", value)).lower()
            if key not in COGNITIVE_TYPES:
                raise ConfigError(f"Invalid cognitive type: {value}")
            if key not in resolved:
                resolved.append(key)
        return resolved

    def _iter_item_dirs(
        self, cognitive_type: str, category_filter: Optional[set]
    ) -> Iterator[tuple[Path, str]]:
        type_dir = self.store_dir / type_directory(cognitive_type)
        if not type_dir.is_dir():
            return
        for category_dir in _list_dirs(type_dir):
            if category_filter is not None and category_dir.name not in category_filter:
                continue
            try:
                item_dirs = _list_dirs(category_dir)
            except ScanError as exc:
                _logger.warning("Skipping category %s: %s", category_dir, exc)
                continue
            for item_dir in item_dirs:
                yield item_dir, category_dir.name

    def _read_item(
        self, item_dir: Path, cognitive_type: str, category: str
    ) -> Optional[CognitiveItem]:
        try:
            primary = _find_primary_file(item_dir, cognitive_type)
        except OSError as exc:
            _logger.warning("Skipping %s: %s", item_dir, exc)
            return None
        if primary is None:
            _logger.debug("No primary %s file in %s", cognitive_type, item_dir)
            return None

        content = self._read_text(primary)
        if content is None:
            return None
        try:
            content_hash = _hash_file(primary)
        except OSError as exc:
            _logger.warning("Skipping %s: cannot hash %s (%s)", item_dir, primary, exc)
            return None

        metadata = parse_frontmatter(content)
        name = extract_name(metadata, item_dir.name, content)
        if cognitive_type == CognitiveType.SKILL.value:
            file_name = primary.name
        else:
            file_name = f"{name}{primary.suffix}"

        return CognitiveItem(
            name=name,
            type=CognitiveType(cognitive_type),
            category=category,
            storage_path=str(item_dir),
            primary_file_path=str(primary),
            file_name=file_name,
            content_hash=content_hash,
            metadata=metadata,
        )

    @staticmethod
    def _read_text(path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _logger.warning("Skipping unreadable cognitive file %s: %s", path, exc)
            return None


__all__ = ["CognitiveScanner"]
