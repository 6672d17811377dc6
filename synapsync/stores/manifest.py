"""Persistent manifest of installed cognitives and provider sync state."""

from __future__ import annotations

from datetime import UTC, datetime
import json
import os
from pathlib import Path
import tempfile
from typing import Dict, List, Optional, Sequence

from ..constants import DEFAULT_CATEGORY, DEFAULT_VERSION, MANIFEST_SCHEMA_VERSION
from ..errors import ManifestError
from ..logging import get_logger
from ..models import (
    CognitiveSource,
    CognitiveType,
    LinkMethod,
    Manifest,
    ManifestCognitive,
    ProviderSyncRecord,
)

_logger = get_logger("manifest")


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class ManifestManager:
    """Data-access layer over the manifest document.

    The document is loaded lazily on first access. Every mutation is staged in
    memory; nothing reaches disk until :meth:`save` is called.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._document: Optional[Manifest] = None
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def last_updated(self) -> str:
        return self._load().last_updated

    def get_cognitives(self) -> List[ManifestCognitive]:
        return list(self._load().cognitives.values())

    def get_cognitive(self, name: str) -> Optional[ManifestCognitive]:
        return self._load().cognitives.get(name)

    def has_cognitive(self, name: str) -> bool:
        return name in self._load().cognitives

    def get_cognitive_count(self) -> int:
        return len(self._load().cognitives)

    def add_cognitive(self, cognitive: ManifestCognitive) -> None:
        self._load().cognitives[cognitive.name] = cognitive
        self._dirty = True

    def update_cognitive(self, name: str, cognitive: ManifestCognitive) -> None:
        """Replace the entry stored under `name`; inserts it when absent."""
        cognitives = self._load().cognitives
        if name != cognitive.name:
            cognitives.pop(name, None)
        cognitives[cognitive.name] = cognitive
        self._dirty = True

    def remove_cognitive(self, name: str) -> bool:
        removed = self._load().cognitives.pop(name, None) is not None
        if removed:
            self._dirty = True
        return removed

    def get_provider_sync(self, provider: str) -> Optional[ProviderSyncRecord]:
        return self._load().provider_syncs.get(provider)

    def get_provider_syncs(self) -> Dict[str, ProviderSyncRecord]:
        return dict(self._load().provider_syncs)

    def set_provider_sync(
        self,
        provider: str,
        method: LinkMethod | str,
        cognitive_names: Sequence[str],
        last_sync: Optional[str] = None,
    ) -> None:
        self._load().provider_syncs[provider] = ProviderSyncRecord(
            last_sync=last_sync or _now(),
            method=LinkMethod(method),
            cognitive_names=list(cognitive_names),
        )
        self._dirty = True

    def save(self) -> None:
        """Write the whole document to disk atomically and bump `lastUpdated`."""
        document = self._load()
        document.last_updated = _now()
        payload = _manifest_to_dict(document)
        _atomic_write_text(self._path, json.dumps(payload, indent=2) + "\n")
        self._dirty = False
        _logger.debug(
            "Saved manifest with %d cognitives to %s", len(document.cognitives), self._path
        )

    def reload(self) -> None:
        """Drop staged changes and re-read the document on next access."""
        self._document = None
        self._dirty = False

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self) -> Manifest:
        if self._document is None:
            self._document = _read_manifest(self._path)
        return self._document


def empty_manifest() -> Manifest:
    return Manifest(schema_version=MANIFEST_SCHEMA_VERSION, last_updated=_now())


def _read_manifest(path: Path) -> Manifest:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return empty_manifest()
    except OSError as exc:
        raise ManifestError(f"Cannot read manifest {path}: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest {path} must contain a JSON object")

    cognitives: Dict[str, ManifestCognitive] = {}
    raw_cognitives = data.get("cognitives")
    if not isinstance(raw_cognitives, dict):
        raw_cognitives = {}
    for key, raw in raw_cognitives.items():
        cognitive = _cognitive_from_dict(key, raw)
        if cognitive is None:
            _logger.warning("Ignoring malformed manifest entry %r", key)
            continue
        cognitives[cognitive.name] = cognitive

    raw_syncs = data.get("syncs")
    if not isinstance(raw_syncs, dict):
        raw_syncs = data.get("providerSyncs")
    provider_syncs: Dict[str, ProviderSyncRecord] = {}
    if isinstance(raw_syncs, dict):
        for provider, raw in raw_syncs.items():
            record = _sync_from_dict(raw)
            if record is not None:
                provider_syncs[str(provider)] = record

    return Manifest(
        schema_version=str(data.get("version") or MANIFEST_SCHEMA_VERSION),
        last_updated=str(data.get("lastUpdated") or _now()),
        cognitives=cognitives,
        provider_syncs=provider_syncs,
    )


def _cognitive_from_dict(key: object, payload: object) -> Optional[ManifestCognitive]:
    if not isinstance(payload, dict):
        return None
    name = payload.get("name", key)
    if not isinstance(name, str) or not name:
        return None
    try:
        cognitive_type = CognitiveType(payload.get("type", CognitiveType.SKILL.value))
        source = CognitiveSource(payload.get("source", CognitiveSource.LOCAL.value))
    except ValueError:
        return None
    source_url = payload.get("sourceUrl")
    content_hash = payload.get("hash")
    return ManifestCognitive(
        name=name,
        type=cognitive_type,
        category=str(payload.get("category") or DEFAULT_CATEGORY),
        version=str(payload.get("version") or DEFAULT_VERSION),
        installed_at=str(payload.get("installedAt") or ""),
        source=source,
        source_url=source_url if isinstance(source_url, str) else None,
        content_hash=content_hash if isinstance(content_hash, str) else None,
    )


def _sync_from_dict(payload: object) -> Optional[ProviderSyncRecord]:
    if not isinstance(payload, dict):
        return None
    try:
        method = LinkMethod(payload.get("method", LinkMethod.SYMLINK.value))
    except ValueError:
        return None
    names = payload.get("cognitives")
    if not isinstance(names, list):
        names = payload.get("cognitiveNames")
    if not isinstance(names, list):
        names = []
    return ProviderSyncRecord(
        last_sync=str(payload.get("lastSync") or ""),
        method=method,
        cognitive_names=[str(name) for name in names],
    )


def _cognitive_to_dict(cognitive: ManifestCognitive) -> Dict[str, object]:
    data: Dict[str, object] = {
        "name": cognitive.name,
        "type": cognitive.type.value,
        "category": cognitive.category,
        "version": cognitive.version,
        "installedAt": cognitive.installed_at,
        "source": cognitive.source.value,
    }
    if cognitive.source_url:
        data["sourceUrl"] = cognitive.source_url
    if cognitive.content_hash:
        data["hash"] = cognitive.content_hash
    return data


def _manifest_to_dict(document: Manifest) -> Dict[str, object]:
    return {
        "version": document.schema_version,
        "lastUpdated": document.last_updated,
        "cognitives": {
            name: _cognitive_to_dict(cognitive)
            for name, cognitive in sorted(document.cognitives.items())
        },
        "syncs": {
            provider: {
                "lastSync": record.last_sync,
                "method": record.method.value,
                "cognitives": list(record.cognitive_names),
            }
            for provider, record in sorted(document.provider_syncs.items())
        },
    }


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


__all__ = ["ManifestManager", "empty_manifest"]
