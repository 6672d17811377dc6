"""SynapSync: keep a local store of AI cognitives synchronized with provider directories."""

from .engine import SyncEngine
from .models import CognitiveItem, CognitiveType, LinkMethod, ManifestCognitive, SyncResult

__version__ = "0.4.0"

__all__ = [
    "CognitiveItem",
    "CognitiveType",
    "LinkMethod",
    "ManifestCognitive",
    "SyncEngine",
    "SyncResult",
    "__version__",
]
