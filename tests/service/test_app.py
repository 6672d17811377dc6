"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from synapsync.config import ConfigError
from synapsync.models import (
    CognitiveType,
    LinkMethod,
    LinkOutcome,
    ProviderStatus,
    ProviderSyncResult,
    SyncAction,
    SyncResult,
    SyncStatus,
)
from synapsync.service import create_app
from synapsync.symlink import SymlinkManager
from tests._fixtures.store_builder import StoreBuilder


class _StubEngine:
    def __init__(self, tmp_path: Path) -> None:
        self.sync_calls: list[dict[str, object]] = []
        self.symlinks = SymlinkManager(tmp_path, tmp_path / ".synapsync")

    def sync(self, **options: object) -> SyncResult:
        self.sync_calls.append(options)
        return SyncResult(
            success=True,
            added=1,
            total=1,
            actions=[SyncAction(operation="add", cognitive="code-review", type=CognitiveType.SKILL)],
            provider_results=[
                ProviderSyncResult(
                    provider="claude",
                    method=LinkMethod.SYMLINK,
                    created=[LinkOutcome(name="code-review", method=LinkMethod.SYMLINK, success=True)],
                )
            ],
        )

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            manifest=0,
            filesystem=1,
            in_sync=False,
            new_in_filesystem=1,
            removed_from_filesystem=0,
            modified=0,
        )

    def get_provider_status(self, provider: str) -> ProviderStatus:
        return ProviderStatus(valid=2, broken=1, orphaned=0)


@pytest.fixture
def engine(tmp_path: Path) -> _StubEngine:
    return _StubEngine(tmp_path)


@pytest.fixture
def client(engine: _StubEngine) -> TestClient:
    return TestClient(create_app(lambda: engine))  # type: ignore[arg-type, return-value]


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_endpoint(client: TestClient) -> None:
    response = client.get("/status")
    assert response.status_code == 200
    data = response.json()
    assert data["in_sync"] is False
    assert data["new_in_filesystem"] == 1


def test_sync_endpoint_forwards_options(client: TestClient, engine: _StubEngine) -> None:
    response = client.post(
        "/sync",
        json={"dry_run": True, "types": ["skill"], "provider": "claude", "copy_files": True},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["added"] == 1
    assert data["actions"][0] == {"operation": "add", "cognitive": "code-review", "type": "skill"}
    assert data["provider_results"][0]["method"] == "symlink"
    (call,) = engine.sync_calls
    assert call["dry_run"] is True
    assert call["types"] == ["skill"]
    assert call["categories"] is None
    assert call["copy"] is True
    assert call["manifest_only"] is False


def test_provider_status_endpoint(client: TestClient) -> None:
    response = client.get("/providers/claude/status")
    assert response.status_code == 200
    assert response.json() == {"provider": "claude", "valid": 2, "broken": 1, "orphaned": 0}


def test_unknown_provider_maps_to_404(client: TestClient) -> None:
    response = client.get("/providers/emacs/status")
    assert response.status_code == 404
    assert "Unknown provider" in response.json()["detail"]


def test_missing_project_maps_to_404() -> None:
    def no_project() -> object:
        raise ConfigError("No synapsync project found")

    client = TestClient(create_app(no_project))  # type: ignore[arg-type]

    response = client.get("/status")
    assert response.status_code == 404


def test_real_engine_sync_round_trip(store_builder: StoreBuilder) -> None:
    store_builder.add_skill("code-review")
    client = TestClient(create_app(store_builder.engine))

    response = client.post("/sync", json={})

    assert response.status_code == 200
    assert response.json()["added"] == 1
    assert (store_builder.provider_dir("claude", "skill") / "code-review").is_symlink()
    assert client.get("/status").json()["in_sync"] is True
