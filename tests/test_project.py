"""Tests for synapsync.project."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from synapsync.config import ConfigError, load_config
from synapsync.engine import SyncEngine
from synapsync.errors import SynapSyncError
from synapsync.models import LinkMethod
from synapsync.project import init_project, is_initialized, purge_project


def test_init_project_creates_store_manifest_and_config(tmp_path: Path) -> None:
    config = init_project(tmp_path, name="demo", providers=("claude", "cursor"))

    store = tmp_path / ".synapsync"
    for directory in ("skills", "agents", "prompts", "workflows", "tools"):
        assert (store / directory).is_dir()
    manifest = json.loads((store / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["cognitives"] == {}
    assert manifest["syncs"] == {}
    assert is_initialized(tmp_path)

    loaded = load_config(tmp_path)
    assert loaded.name == "demo" == config.name
    assert loaded.enabled_providers() == ["claude", "cursor"]
    assert loaded.sync.method == LinkMethod.SYMLINK
    assert loaded.provider_paths()["openai"]["skill"] == ".openai/skills"


def test_init_project_defaults_name_and_method(tmp_path: Path) -> None:
    root = tmp_path / "my-agents"
    root.mkdir()

    config = init_project(root, method=LinkMethod.COPY)

    assert config.name == "my-agents"
    assert load_config(root).sync.method == LinkMethod.COPY


def test_init_project_refuses_to_reinitialize(tmp_path: Path) -> None:
    init_project(tmp_path)

    with pytest.raises(ConfigError, match="already initialized"):
        init_project(tmp_path)


def test_init_project_rejects_unknown_provider(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unknown provider"):
        init_project(tmp_path, providers=("emacs",))

    assert not is_initialized(tmp_path)


def test_init_project_creates_gitignore_block(tmp_path: Path) -> None:
    init_project(tmp_path)

    assert (tmp_path / ".gitignore").read_text(encoding="utf-8") == "# SynapSync\n.synapsync/manifest.json\n"


def test_init_project_appends_to_existing_gitignore_once(tmp_path: Path) -> None:
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("node_modules/", encoding="utf-8")

    init_project(tmp_path)
    (tmp_path / "synapsync.config.yaml").unlink()
    init_project(tmp_path)

    content = gitignore.read_text(encoding="utf-8")
    assert content.startswith("node_modules/\n")
    assert content.count(".synapsync/manifest.json") == 1
    assert content.count("# SynapSync") == 1


def _add_skill(root: Path, name: str) -> None:
    skill_dir = root / ".synapsync" / "skills" / "general" / name
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text(f"---\nname: {name}\n---\nBody\n", encoding="utf-8")


def test_purge_project_removes_everything_synapsync_created(tmp_path: Path) -> None:
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("node_modules/\n", encoding="utf-8")
    config = init_project(tmp_path, providers=("claude", "cursor"))
    _add_skill(tmp_path, "code-review")
    SyncEngine.from_config(config).sync()
    (tmp_path / "AGENTS.md").write_text("# AGENTS\n", encoding="utf-8")
    hand_written = tmp_path / ".claude" / "skills" / "hand-written"
    hand_written.mkdir()

    result = purge_project(config)

    assert sorted(Path(path).relative_to(config.root).as_posix() for path in result.links) == [
        ".claude/skills/code-review",
        ".cursor/skills/code-review",
    ]
    assert result.gitignore_updated
    assert not (tmp_path / ".synapsync").exists()
    assert not (tmp_path / "synapsync.config.yaml").exists()
    assert not (tmp_path / "AGENTS.md").exists()
    assert gitignore.read_text(encoding="utf-8") == "node_modules/\n"
    assert hand_written.is_dir()
    assert not is_initialized(tmp_path)


def test_purge_project_dry_run_changes_nothing(tmp_path: Path) -> None:
    config = init_project(tmp_path)
    _add_skill(tmp_path, "code-review")
    SyncEngine.from_config(config).sync()

    result = purge_project(config, dry_run=True)

    assert not result.is_empty
    assert result.gitignore_updated
    assert str(config.store_path) in result.paths
    assert (tmp_path / ".claude" / "skills" / "code-review").is_symlink()
    assert (tmp_path / ".synapsync" / "manifest.json").is_file()
    assert is_initialized(tmp_path)
    assert "# SynapSync" in (tmp_path / ".gitignore").read_text(encoding="utf-8")


def test_purge_project_removes_recorded_copies_and_own_gitignore(tmp_path: Path) -> None:
    config = init_project(tmp_path, method=LinkMethod.COPY)
    _add_skill(tmp_path, "code-review")
    SyncEngine.from_config(config).sync()
    copied = tmp_path / ".claude" / "skills" / "code-review"
    assert copied.is_dir() and not copied.is_symlink()

    purge_project(config)

    assert not copied.exists()
    assert not (tmp_path / ".gitignore").exists()


def test_purge_project_reports_nothing_when_already_purged(tmp_path: Path) -> None:
    config = init_project(tmp_path)
    purge_project(config)

    assert purge_project(config).is_empty


def test_purge_project_surfaces_removal_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = init_project(tmp_path)

    def refuse(path: object, *args: object, **kwargs: object) -> None:
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(shutil, "rmtree", refuse)

    with pytest.raises(SynapSyncError, match="Permission denied"):
        purge_project(config)
    assert (tmp_path / ".synapsync").is_dir()
