"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import random
from typing import Any

import pytest

from tests.fixtures.tree_fixtures import make_healthy_tree, make_two_cycle_tree


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment overrides out of config tests."""
    monkeypatch.delenv("SPELLTREE_SEED", raising=False)
    monkeypatch.delenv("SPELLTREE_PRESERVE_MULTI_PREREQS", raising=False)


@pytest.fixture
def healthy_tree() -> dict[str, Any]:
    """Two valid schools (Destruction, Restoration)."""
    return make_healthy_tree()


@pytest.fixture
def two_cycle_tree() -> dict[str, Any]:
    """Destruction school with a B <-> C cycle cut off from the root."""
    return make_two_cycle_tree()


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for reproducible injection."""
    return random.Random(1234)

