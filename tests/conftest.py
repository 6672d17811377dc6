from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.store_builder import StoreBuilder


@pytest.fixture
def store_builder(tmp_path: Path) -> StoreBuilder:
    """Provide a reusable store builder rooted at the pytest tmp_path."""
    return StoreBuilder(tmp_path)
