"""AGENTS.md generation from the manifest."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from jinja2 import DictLoader, Environment

from .constants import AGENTS_MD_FILE_NAME, COGNITIVE_TYPES, type_directory
from .models import ManifestCognitive
from .stores import ManifestManager

_TEMPLATE_NAME = "agents.md.j2"

_TEMPLATE = """\
# AGENTS

<!-- Generated by synapsync. Run `synapsync sync` to refresh. -->

{% if not groups %}
No cognitives installed yet.
{% else %}
{% for group in groups %}
## {{ group.title }}

| Name | Category | Version | Path |
| --- | --- | --- | --- |
{% for cognitive in group.cognitives %}
| {{ cognitive.name }} | {{ cognitive.category }} | {{ cognitive.version }} | `{{ storage_dir }}/{{ group.directory }}/{{ cognitive.category }}/{{ cognitive.name }}` |
{% endfor %}

{% endfor %}
{% endif %}
"""


def _create_env() -> Environment:
    loader = DictLoader({_TEMPLATE_NAME: _TEMPLATE})
    return Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)


def render_agents_md(cognitives: List[ManifestCognitive], storage_dir: str) -> str:
    """Render AGENTS.md content listing `cognitives` grouped by type."""
    by_type: Dict[str, List[ManifestCognitive]] = {}
    for cognitive in sorted(cognitives, key=lambda entry: (entry.category, entry.name)):
        by_type.setdefault(cognitive.type.value, []).append(cognitive)

    groups = [
        {
            "title": type_directory(kind).capitalize(),
            "directory": type_directory(kind),
            "cognitives": by_type[kind],
        }
        for kind in COGNITIVE_TYPES
        if kind in by_type
    ]
    template = _create_env().get_template(_TEMPLATE_NAME)
    return template.render(groups=groups, storage_dir=storage_dir).rstrip() + "\n"


def regenerate_agents_md(project_root: Path, manifest: ManifestManager, storage_dir: str) -> Path:
    """Write AGENTS.md at the project root from the current manifest."""
    path = Path(project_root) / AGENTS_MD_FILE_NAME
    path.write_text(render_agents_md(manifest.get_cognitives(), storage_dir), encoding="utf-8")
    return path


__all__ = ["regenerate_agents_md", "render_agents_md"]
