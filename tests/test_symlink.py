"""Tests for synapsync.symlink."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from synapsync import symlink as symlink_module
from synapsync.errors import LinkError
from synapsync.models import CognitiveItem, LinkMethod
from synapsync.scanner import CognitiveScanner
from synapsync.symlink import SymlinkManager
from tests._fixtures.store_builder import StoreBuilder


def _manager(builder: StoreBuilder) -> SymlinkManager:
    return SymlinkManager(builder.root, builder.store)


def _scan(builder: StoreBuilder) -> list[CognitiveItem]:
    return CognitiveScanner(builder.store).scan()


def test_sync_provider_links_skills_as_folders_and_others_as_files(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review")
    store_builder.add_cognitive("agent", "reviewer", "backend")
    manager = _manager(store_builder)

    result = manager.sync_provider("claude", _scan(store_builder))

    assert result.errors == []
    assert result.method == LinkMethod.SYMLINK
    assert sorted(outcome.name for outcome in result.created) == ["code-review", "reviewer"]
    skill_link = store_builder.provider_dir("claude", "skill") / "code-review"
    agent_link = store_builder.provider_dir("claude", "agent") / "reviewer.md"
    assert skill_link.is_symlink()
    assert agent_link.is_symlink()
    assert not os.path.isabs(os.readlink(skill_link))
    assert (skill_link / "SKILL.md").is_file()
    assert skill_link.resolve() == (store_builder.store / "skills" / "general" / "code-review").resolve()


def test_sync_provider_is_idempotent(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review")
    manager = _manager(store_builder)
    items = _scan(store_builder)
    manager.sync_provider("claude", items)

    second = manager.sync_provider("claude", items)

    assert second.created == []
    assert second.removed == []
    assert second.skipped == ["code-review"]
    assert second.linked_names == ["code-review"]


def test_sync_provider_rejects_unknown_provider(store_builder: StoreBuilder) -> None:
    result = _manager(store_builder).sync_provider("emacs", [])

    assert [error.message for error in result.errors] == ["Unknown provider: emacs"]


def test_dry_run_reports_without_touching_disk(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review")
    manager = _manager(store_builder)

    result = manager.sync_provider("claude", _scan(store_builder), dry_run=True)

    assert [outcome.name for outcome in result.created] == ["code-review"]
    assert not (store_builder.root / ".claude").exists()


def test_existing_foreign_entry_requires_force(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review")
    occupant = store_builder.provider_dir("claude", "skill") / "code-review"
    occupant.mkdir(parents=True)
    (occupant / "notes.txt").write_text("user data", encoding="utf-8")
    manager = _manager(store_builder)
    items = _scan(store_builder)

    refused = manager.sync_provider("claude", items)

    assert refused.created[0].success is False
    assert "already exists" in (refused.created[0].error or "")
    assert len(refused.errors) == 1
    assert (occupant / "notes.txt").exists()

    forced = manager.sync_provider("claude", items, force=True)

    assert forced.errors == []
    assert occupant.is_symlink()


def test_copy_mode_copies_and_stays_idempotent(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review", extra_files={"scripts/run.sh": "echo hi\n"})
    store_builder.add_cognitive("prompt", "summarize")
    manager = _manager(store_builder)
    items = _scan(store_builder)

    first = manager.sync_provider("claude", items, copy=True)

    skill_copy = store_builder.provider_dir("claude", "skill") / "code-review"
    prompt_copy = store_builder.provider_dir("claude", "prompt") / "summarize.md"
    assert first.method == LinkMethod.COPY
    assert all(outcome.method == LinkMethod.COPY for outcome in first.created)
    assert skill_copy.is_dir() and not skill_copy.is_symlink()
    assert (skill_copy / "scripts" / "run.sh").read_text(encoding="utf-8") == "echo hi\n"
    assert prompt_copy.is_file() and not prompt_copy.is_symlink()

    second = manager.sync_provider("claude", items, copy=True, managed_names=["code-review", "summarize"])

    assert second.created == []
    assert sorted(second.skipped) == ["code-review", "summarize"]


def test_symlink_failure_falls_back_to_copy(store_builder: StoreBuilder, monkeypatch: pytest.MonkeyPatch) -> None:
    store_builder.add_skill("code-review")

    def refuse_symlink(target: Path, link_path: Path, is_directory: bool) -> None:
        raise OSError("symlinks disabled")

    monkeypatch.setattr(symlink_module, "_create_symlink", refuse_symlink)

    result = _manager(store_builder).sync_provider("claude", _scan(store_builder))

    assert result.errors == []
    (outcome,) = result.created
    assert outcome.success is True
    assert outcome.method == LinkMethod.COPY
    copied = store_builder.provider_dir("claude", "skill") / "code-review"
    assert copied.is_dir() and not copied.is_symlink()


def test_copy_failure_is_reported_and_leaves_no_partial_entry(
    store_builder: StoreBuilder, monkeypatch: pytest.MonkeyPatch
) -> None:
    store_builder.add_skill("code-review")

    def refuse_symlink(target: Path, link_path: Path, is_directory: bool) -> None:
        raise OSError("symlinks disabled")

    def half_copy(target: Path, link_path: Path, is_directory: bool) -> None:
        link_path.mkdir()
        raise OSError("disk full")

    monkeypatch.setattr(symlink_module, "_create_symlink", refuse_symlink)
    monkeypatch.setattr(symlink_module, "_copy_entry", half_copy)

    result = _manager(store_builder).sync_provider("claude", _scan(store_builder))

    (outcome,) = result.created
    assert outcome.success is False
    assert outcome.error == "disk full"
    assert [error.message for error in result.errors] == ["disk full"]
    assert not os.path.lexists(store_builder.provider_dir("claude", "skill") / "code-review")


def test_unsupported_platform_copies_from_the_start(
    store_builder: StoreBuilder, monkeypatch: pytest.MonkeyPatch
) -> None:
    store_builder.add_skill("code-review")
    monkeypatch.setattr(symlink_module, "_detect_symlink_support", lambda: False)
    manager = _manager(store_builder)

    result = manager.sync_provider("claude", _scan(store_builder))

    assert manager.check_symlink_support() is False
    assert result.method == LinkMethod.COPY
    assert result.created[0].method == LinkMethod.COPY


def test_orphaned_store_links_are_removed(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("keep")
    store_builder.add_skill("drop")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder))

    remaining = [item for item in _scan(store_builder) if item.name == "keep"]
    result = manager.sync_provider("claude", remaining)

    assert result.removed == ["drop"]
    assert not os.path.lexists(store_builder.provider_dir("claude", "skill") / "drop")
    assert (store_builder.provider_dir("claude", "skill") / "keep").is_symlink()


def test_orphan_removal_spares_foreign_entries(store_builder: StoreBuilder, tmp_path: Path) -> None:
    skills_dir = store_builder.provider_dir("claude", "skill")
    skills_dir.mkdir(parents=True)
    (skills_dir / "hand-written").mkdir()
    (skills_dir / "hand-written" / "SKILL.md").write_text("mine", encoding="utf-8")
    outside = tmp_path / "elsewhere"
    outside.mkdir()
    os.symlink(outside, skills_dir / "external")
    os.symlink(tmp_path / "never-existed", skills_dir / "dangling")

    result = _manager(store_builder).sync_provider("claude", [])

    assert result.removed == []
    assert (skills_dir / "hand-written" / "SKILL.md").exists()
    assert (skills_dir / "external").is_symlink()
    assert os.path.lexists(skills_dir / "dangling")


def test_managed_copies_are_removed_when_orphaned(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("copied")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder), copy=True)

    result = manager.sync_provider("claude", [], copy=True, managed_names=["copied"])

    assert result.removed == ["copied"]
    assert not (store_builder.provider_dir("claude", "skill") / "copied").exists()


def test_orphan_removal_respects_type_scope_and_prune(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("skill-one")
    store_builder.add_cognitive("agent", "agent-one")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder))

    scoped = manager.sync_provider("claude", [], types=["agent"], dry_run=True)
    unpruned = manager.sync_provider("claude", [], prune=False, dry_run=True)

    assert scoped.removed == ["agent-one"]
    assert unpruned.removed == []


def test_verify_and_clean_provider(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("healthy")
    store_builder.add_skill("doomed")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder))
    store_builder.remove("skills/general/doomed")
    skills_dir = store_builder.provider_dir("claude", "skill")

    verified = manager.verify_provider("claude", expected_names=["doomed"])

    assert [info.cognitive_name for info in verified.broken] == ["doomed"]
    assert [info.cognitive_name for info in verified.orphaned] == ["healthy"]
    assert verified.valid == []

    assert manager.clean_provider("claude", dry_run=True) == ["doomed"]
    assert os.path.lexists(skills_dir / "doomed")
    assert manager.clean_provider("claude") == ["doomed"]
    assert not os.path.lexists(skills_dir / "doomed")
    assert (skills_dir / "healthy").is_symlink()


def test_get_existing_links_describes_entries(store_builder: StoreBuilder) -> None:
    store_builder.add_cognitive("tool", "formatter")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder))

    (info,) = manager.get_existing_links("claude")

    assert info.cognitive_name == "formatter"
    assert info.is_symlink and info.is_valid and info.resolves_inside_store
    assert manager.get_existing_links("unknown") == []


def test_custom_provider_paths_are_honoured(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review")
    manager = SymlinkManager(
        store_builder.root,
        store_builder.store,
        {"claude": {"skill": "config/claude-skills"}},
    )

    manager.sync_provider("claude", _scan(store_builder))

    assert (store_builder.root / "config" / "claude-skills" / "code-review").is_symlink()
    assert manager.provider_dir("claude", "agent") == store_builder.root / ".claude" / "agents"


def _shared_rules_manager(builder: StoreBuilder) -> SymlinkManager:
    return SymlinkManager(
        builder.root,
        builder.store,
        {"cursor": {"agent": ".cursor/rules", "prompt": ".cursor/rules"}},
    )


def test_shared_type_directory_is_listed_once(store_builder: StoreBuilder) -> None:
    store_builder.add_cognitive("agent", "reviewer")
    manager = _shared_rules_manager(store_builder)
    items = _scan(store_builder)
    manager.sync_provider("cursor", items)

    second = manager.sync_provider("cursor", items)

    assert second.errors == []
    assert second.created == []
    assert second.skipped == ["reviewer"]
    assert second.removed == []
    assert (store_builder.root / ".cursor" / "rules" / "reviewer.md").is_symlink()
    (info,) = manager.get_existing_links("cursor")
    assert info.cognitive_type.value == "agent"


def test_type_scoped_sync_spares_other_types_in_shared_directory(store_builder: StoreBuilder) -> None:
    store_builder.add_cognitive("agent", "reviewer")
    store_builder.add_cognitive("prompt", "summarize")
    manager = _shared_rules_manager(store_builder)
    manager.sync_provider("cursor", _scan(store_builder))
    prompts = [item for item in _scan(store_builder) if item.type.value == "prompt"]

    result = manager.sync_provider("cursor", prompts, types=["prompt"])

    assert result.removed == []
    assert result.skipped == ["summarize"]
    assert (store_builder.root / ".cursor" / "rules" / "reviewer.md").is_symlink()


def test_stale_managed_copy_is_refreshed_without_force(store_builder: StoreBuilder) -> None:
    store_builder.add_cognitive("prompt", "summarize", body="First draft.")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder), copy=True)
    store_builder.add_cognitive("prompt", "summarize", body="Second draft.")

    result = manager.sync_provider("claude", _scan(store_builder), copy=True, managed_names=["summarize"])

    assert result.errors == []
    assert [outcome.name for outcome in result.created] == ["summarize"]
    copied = store_builder.provider_dir("claude", "prompt") / "summarize.md"
    assert "Second draft." in copied.read_text(encoding="utf-8")


def test_unrecorded_copy_still_requires_force(store_builder: StoreBuilder) -> None:
    store_builder.add_cognitive("prompt", "summarize", body="First draft.")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder), copy=True)
    store_builder.add_cognitive("prompt", "summarize", body="Second draft.")

    result = manager.sync_provider("claude", _scan(store_builder), copy=True)

    assert "already exists" in (result.created[0].error or "")


def test_store_link_to_moved_cognitive_is_repointed(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review", "general")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder))
    store_builder.remove("skills/general/code-review")
    moved = store_builder.add_skill("code-review", "backend")

    result = manager.sync_provider("claude", _scan(store_builder))

    assert result.errors == []
    link = store_builder.provider_dir("claude", "skill") / "code-review"
    assert link.resolve() == moved.resolve()


def test_remove_links_only_touches_store_entries(store_builder: StoreBuilder, tmp_path: Path) -> None:
    store_builder.add_skill("code-review")
    store_builder.add_skill("copied")
    manager = _manager(store_builder)
    items = _scan(store_builder)
    manager.sync_provider("claude", [item for item in items if item.name == "code-review"])
    manager.sync_provider("claude", [item for item in items if item.name == "copied"], copy=True, prune=False)
    skills_dir = store_builder.provider_dir("claude", "skill")
    (skills_dir / "hand-written").mkdir()

    preview = manager.remove_links("claude", managed_names=["copied"], dry_run=True)
    assert sorted(Path(path).name for path in preview) == ["code-review", "copied"]
    assert (skills_dir / "code-review").is_symlink()

    narrowed = manager.remove_links("claude", names=["code-review"], managed_names=["copied"])
    assert [Path(path).name for path in narrowed] == ["code-review"]
    assert not os.path.lexists(skills_dir / "code-review")
    assert (skills_dir / "copied").is_dir()
    assert (skills_dir / "hand-written").is_dir()


def test_unremovable_entries_raise_link_error_or_are_reported(
    store_builder: StoreBuilder, monkeypatch: pytest.MonkeyPatch
) -> None:
    store_builder.add_skill("doomed")
    manager = _manager(store_builder)
    manager.sync_provider("claude", _scan(store_builder))
    original_unlink = Path.unlink

    def guarded_unlink(self: Path, missing_ok: bool = False) -> None:
        if self.name == "doomed":
            raise PermissionError(13, "Permission denied", str(self))
        original_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", guarded_unlink)

    with pytest.raises(LinkError, match="Permission denied"):
        manager.remove_links("claude", names=["doomed"])

    result = manager.sync_provider("claude", [])
    assert result.removed == []
    assert [error.operation for error in result.errors] == ["remove"]
    assert "Permission denied" in result.errors[0].message
    assert (store_builder.provider_dir("claude", "skill") / "doomed").is_symlink()
