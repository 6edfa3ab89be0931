"""Pytest configuration and fixtures for the test suite."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from obsidian_flashcards.config import Config, reset_config
from obsidian_flashcards.obsidian.vault import VaultStore
from obsidian_flashcards.sync.orchestrator import SyncOrchestrator
from tests.fixtures import FakeAnkiClient


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of config loading."""
    import os

    for key in list(os.environ):
        if key.startswith("OBSIDIAN_FLASHCARDS_"):
            monkeypatch.delenv(key)
    reset_config()


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """An empty vault directory."""
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def make_config(vault: Path) -> Callable[..., Config]:
    """Build a Config rooted at the test vault."""

    def _make(**overrides: Any) -> Config:
        overrides.setdefault("vault_path", vault)
        return Config(**overrides)

    return _make


@pytest.fixture
def config(make_config: Callable[..., Config]) -> Config:
    """Default config without context breadcrumbs."""
    return make_config(context_aware_mode=False)


@pytest.fixture
def write_note(vault: Path) -> Callable[[str, str], Path]:
    """Write a note into the vault and return its absolute path."""

    def _write(relative: str, text: str) -> Path:
        path = vault / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(text.encode("utf-8"))
        return path

    return _write


@pytest.fixture
def store(vault: Path) -> VaultStore:
    return VaultStore(vault)


@pytest.fixture
def fake_anki() -> FakeAnkiClient:
    """Provide an in-memory Anki client for testing."""
    return FakeAnkiClient()


@pytest.fixture
def orchestrator(
    config: Config, fake_anki: FakeAnkiClient, store: VaultStore
) -> SyncOrchestrator:
    return SyncOrchestrator(config, fake_anki, store)  # type: ignore[arg-type]
