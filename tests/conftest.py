import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _reset_store_singleton(monkeypatch):
    """Each test gets a clean store singleton."""
    from src.chatrelay.infrastructure import conversation_store

    monkeypatch.setattr(conversation_store, "_store", None, raising=False)


@pytest.fixture
def prompt_file(tmp_path):
    path = tmp_path / "system_prompt.txt"
    path.write_text("You are a helpful signage assistant.", encoding="utf-8")
    return path
