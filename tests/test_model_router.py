"""Unit tests for `ModelRouter` provider selection."""

from __future__ import annotations

import pytest

from src.chatrelay.services.model_router import ModelRouter, ProviderSelection


def test_router_prefers_gemini_when_both_keys_present():
    router = ModelRouter(env={"GEMINI_API_KEY": "g", "OPENAI_API_KEY": "o"})
    selection = router.select_provider()
    assert isinstance(selection, ProviderSelection)
    assert selection.name == "gemini"
    assert selection.model == "gemini-2.0-flash"
    assert selection.api_key_env == "GEMINI_API_KEY"


def test_router_falls_back_to_openai():
    selection = ModelRouter(env={"OPENAI_API_KEY": "o"}).select_provider()
    assert selection.name == "openai"
    assert selection.model == "gpt-4o-mini"


def test_router_honours_preferred_provider():
    router = ModelRouter(env={"GEMINI_API_KEY": "g", "OPENAI_API_KEY": "o", "RELAY_MODEL_PROVIDER": "openai"})
    assert router.select_provider().name == "openai"


def test_router_preferred_without_key_falls_through():
    router = ModelRouter(env={"GEMINI_API_KEY": "g"}, preferred="openai")
    assert router.select_provider().name == "gemini"


def test_router_model_and_base_url_overrides():
    router = ModelRouter(env={"GEMINI_API_KEY": "g", "GEMINI_MODEL": "gemini-pro", "GEMINI_BASE_URL": "https://proxy"})
    selection = router.select_provider()
    assert selection.model == "gemini-pro"
    assert selection.base_url == "https://proxy"


def test_local_provider_is_opt_in():
    assert ModelRouter(env={}).maybe_select_provider() is None
    selection = ModelRouter(env={"RELAY_ENABLE_LOCAL_PROVIDER": "1"}).select_provider()
    assert selection.name == "local"
    assert selection.requires_api_key is False


def test_no_provider_raises():
    with pytest.raises(RuntimeError):
        ModelRouter(env={}).select_provider()
