"""Exception types raised by synapsync components."""

from __future__ import annotations


class SynapSyncError(RuntimeError):
    """Base class for all synapsync failures."""


class ScanError(SynapSyncError):
    """Raised when the cognitive store cannot be walked."""


class ParseError(SynapSyncError):
    """Raised when a cognitive's metadata cannot be turned into a manifest entry."""


class LinkError(SynapSyncError):
    """Raised when a provider link or copy cannot be created or removed."""


class ManifestError(SynapSyncError):
    """Raised when the manifest file exists but cannot be read."""


class NotInstalledError(SynapSyncError):
    """Raised when an operation names a cognitive missing from the manifest."""


# Codes attached to SyncError records returned by the engine.
SCAN_FAILED = "SCAN_FAILED"
RECONCILE_FAILED = "RECONCILE_FAILED"
PROVIDER_SYNC_FAILED = "PROVIDER_SYNC_FAILED"
INVALID_FILTER = "INVALID_FILTER"
UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"


__all__ = [
    "INVALID_FILTER",
    "LinkError",
    "ManifestError",
    "NotInstalledError",
    "PROVIDER_SYNC_FAILED",
    "ParseError",
    "RECONCILE_FAILED",
    "SCAN_FAILED",
    "ScanError",
    "SynapSyncError",
    "UNKNOWN_PROVIDER",
]
