"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from intellirite.patches.safety import SafetyThresholds


@pytest.fixture
def sample_document() -> str:
    return "\n".join(f"line {number}" for number in range(1, 31))


@pytest.fixture
def thresholds() -> SafetyThresholds:
    return SafetyThresholds()


@pytest.fixture(autouse=True)
def _clear_intellirite_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("INTELLIRITE_"):
            monkeypatch.delenv(name, raising=False)
