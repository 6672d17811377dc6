"""Frontmatter metadata parsing for cognitive files."""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping

import yaml

from .constants import DEFAULT_VERSION
from .models import MetadataValue

_FRONTMATTER_RE = re.compile(r"\A\ufeff?---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_HEADING_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)
_VERSION_RE = re.compile(r"^version:\s*[\"']?([^\s\"']+)[\"']?\s*$", re.MULTILINE)


def parse_frontmatter(content: str) -> Dict[str, MetadataValue]:
    """Return the `---` delimited metadata block of a cognitive file.

    Missing or malformed blocks yield an empty mapping. Scalar values are
    normalised to strings and sequences to lists of strings so downstream
    consumers only deal with the two metadata shapes.
    """
    match = _FRONTMATTER_RE.match(content)
    if match is None:
        return {}
    try:
        loaded = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}
    if not isinstance(loaded, dict):
        return {}

    metadata: Dict[str, MetadataValue] = {}
    for key, value in loaded.items():
        normalised = _normalise(value)
        if normalised is not None:
            metadata[str(key)] = normalised
    return metadata


def extract_name(metadata: Mapping[str, MetadataValue], fallback: str, content: str) -> str:
    """Pick the cognitive name from metadata, the first heading, or the fallback."""
    name = metadata.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()

    heading = _HEADING_RE.search(content)
    if heading:
        slug = slugify(heading.group(1))
        if slug:
            return slug
    return fallback


def extract_version(metadata: Mapping[str, MetadataValue], content: str) -> str:
    version = metadata.get("version")
    if isinstance(version, str) and version.strip():
        return version.strip()
    match = _VERSION_RE.search(content)
    if match:
        return match.group(1)
    return DEFAULT_VERSION


def slugify(value: str) -> str:
    """Convert a title into a kebab-case identifier."""
    lowered = value.strip().lower()
    collapsed = re.sub(r"[^a-z0-9]+", "-", lowered)
    return collapsed.strip("-")


def _normalise(value: Any) -> MetadataValue | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return None


__all__ = ["extract_name", "extract_version", "parse_frontmatter", "slugify"]
