"""Static layout constants shared across synapsync components."""

from __future__ import annotations

from typing import Dict, Tuple

DEFAULT_STORAGE_DIR = ".synapsync"
MANIFEST_FILE_NAME = "manifest.json"
CONFIG_FILE_NAME = "synapsync.config.yaml"
AGENTS_MD_FILE_NAME = "AGENTS.md"
MANIFEST_SCHEMA_VERSION = "2.0.0"
DEFAULT_VERSION = "1.0.0"

COGNITIVE_TYPES: Tuple[str, ...] = ("skill", "agent", "prompt", "workflow", "tool")

# Canonical primary file per cognitive type.
COGNITIVE_FILE_NAMES: Dict[str, str] = {
    "skill": "SKILL.md",
    "agent": "AGENT.md",
    "prompt": "PROMPT.md",
    "workflow": "WORKFLOW.yaml",
    "tool": "TOOL.md",
}

COGNITIVE_EXTENSIONS: Dict[str, Tuple[str, ...]] = {
    "skill": (".md",),
    "agent": (".md",),
    "prompt": (".md",),
    "workflow": (".yaml", ".yml", ".md"),
    "tool": (".md",),
}

CATEGORIES: Tuple[str, ...] = (
    "frontend",
    "backend",
    "database",
    "devops",
    "security",
    "testing",
    "analytics",
    "automation",
    "general",
)

DEFAULT_CATEGORY = "general"

SUPPORTED_PROVIDERS: Tuple[str, ...] = (
    "claude",
    "openai",
    "gemini",
    "cursor",
    "windsurf",
    "copilot",
)


def type_directory(cognitive_type: str) -> str:
    """Return the plural directory name used for a cognitive type."""
    return f"{cognitive_type}s"


def default_provider_paths(provider: str) -> Dict[str, str]:
    """Return the default `<type> -> relative path` layout for a provider."""
    return {kind: f".{provider}/{type_directory(kind)}" for kind in COGNITIVE_TYPES}
