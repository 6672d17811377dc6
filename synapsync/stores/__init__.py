"""Persistent stores used by the sync engine."""

from .manifest import ManifestManager, empty_manifest

__all__ = ["ManifestManager", "empty_manifest"]
