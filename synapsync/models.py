"""Core data models shared across synapsync components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

MetadataValue = Union[str, List[str]]


class CognitiveType(str, Enum):
    """Kinds of artifacts kept in the store."""

    SKILL = "skill"
    AGENT = "agent"
    PROMPT = "prompt"
    WORKFLOW = "workflow"
    TOOL = "tool"


class LinkMethod(str, Enum):
    """How a cognitive is materialised inside a provider directory."""

    SYMLINK = "symlink"
    COPY = "copy"


class CognitiveSource(str, Enum):
    """Where an installed cognitive originally came from."""

    REGISTRY = "registry"
    LOCAL = "local"
    GIT = "git"


@dataclass(frozen=True)
class CognitiveItem:
    """A cognitive discovered on disk during a single scan."""

    name: str
    type: CognitiveType
    category: str
    storage_path: str
    primary_file_path: str
    file_name: str
    content_hash: str
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        """Skills are linked as whole folders; every other type as a single file."""
        return self.type == CognitiveType.SKILL

    @property
    def link_target(self) -> str:
        return self.storage_path if self.is_directory else self.primary_file_path

    @property
    def link_name(self) -> str:
        return self.name if self.is_directory else self.file_name


@dataclass
class ManifestCognitive:
    """Persisted record of an installed cognitive."""

    name: str
    type: CognitiveType
    category: str
    version: str
    installed_at: str
    source: CognitiveSource = CognitiveSource.LOCAL
    source_url: Optional[str] = None
    content_hash: Optional[str] = None


@dataclass
class ProviderSyncRecord:
    """Last known link set for a provider."""

    last_sync: str
    method: LinkMethod
    cognitive_names: List[str] = field(default_factory=list)


@dataclass
class Manifest:
    """In-memory form of the manifest document."""

    schema_version: str
    last_updated: str
    cognitives: Dict[str, ManifestCognitive] = field(default_factory=dict)
    provider_syncs: Dict[str, ProviderSyncRecord] = field(default_factory=dict)


@dataclass
class LinkInfo:
    """Inspection result for one entry inside a provider directory."""

    cognitive_name: str
    cognitive_type: CognitiveType
    target_path: str
    link_path: str
    is_symlink: bool
    is_valid: bool
    resolves_inside_store: bool


@dataclass
class LinkOutcome:
    name: str
    method: LinkMethod
    success: bool
    error: Optional[str] = None


@dataclass
class OperationError:
    path: str
    operation: str
    message: str


@dataclass
class ProviderSyncResult:
    """Per-provider outcome of one sync pass."""

    provider: str
    method: LinkMethod
    created: List[LinkOutcome] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    errors: List[OperationError] = field(default_factory=list)

    @property
    def linked_names(self) -> List[str]:
        """Names that are present in the provider after this pass."""
        names = list(self.skipped)
        for outcome in self.created:
            if outcome.success and outcome.name not in names:
                names.append(outcome.name)
        return names


@dataclass
class VerifyResult:
    valid: List[LinkInfo] = field(default_factory=list)
    broken: List[LinkInfo] = field(default_factory=list)
    orphaned: List[LinkInfo] = field(default_factory=list)


@dataclass
class ComparisonResult:
    """Difference between a scan and the manifest."""

    new: List[CognitiveItem] = field(default_factory=list)
    modified: List[CognitiveItem] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.modified or self.removed)


@dataclass
class SyncAction:
    operation: str
    cognitive: str
    type: Optional[CognitiveType] = None


@dataclass
class SyncError:
    message: str
    code: str
    cognitive: Optional[str] = None
    path: Optional[str] = None
    operation: Optional[str] = None


@dataclass
class SyncProgress:
    """Progress notification emitted before each sync phase."""

    phase: str
    message: str
    current: Optional[int] = None
    total: Optional[int] = None


@dataclass
class SyncResult:
    """Consolidated outcome of a reconciliation pass."""

    success: bool
    added: int = 0
    removed: int = 0
    updated: int = 0
    unchanged: int = 0
    total: int = 0
    actions: List[SyncAction] = field(default_factory=list)
    errors: List[SyncError] = field(default_factory=list)
    duration: float = 0.0
    provider_results: Optional[List[ProviderSyncResult]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncStatus:
    manifest: int
    filesystem: int
    in_sync: bool
    new_in_filesystem: int
    removed_from_filesystem: int
    modified: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProviderStatus:
    valid: int
    broken: int
    orphaned: int


@dataclass
class UninstallResult:
    """What an uninstall removed from providers and the store."""

    name: str
    type: CognitiveType
    removed_links: List[str] = field(default_factory=list)
    removed_files: bool = False


@dataclass
class PurgeResult:
    """Paths a purge removed, or would remove in a preview."""

    links: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)
    gitignore_updated: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.links or self.paths or self.gitignore_updated)
