"""Selects which hosted (or local) model answers relay traffic.

The router only chooses a provider configuration; building the client is
left to :mod:`answer_generator` so that selection stays unit-testable
without importing SDKs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ProviderSelection:
    """Returned details about the provider that should answer."""

    name: str
    model: str
    api_key_env: Optional[str]
    base_url: Optional[str] = None
    requires_api_key: bool = True


class ModelRouter:
    PROVIDER_CONFIG: Dict[str, Dict[str, Optional[str] | bool]] = {
        "gemini": {
            "api_key_env": "GEMINI_API_KEY",
            "base_url_env": "GEMINI_BASE_URL",
            "model_env": "GEMINI_MODEL",
            "default_model": "gemini-2.0-flash",
            "default_base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url_env": "OPENAI_BASE_URL",
            "model_env": "OPENAI_MODEL",
            "default_model": "gpt-4o-mini",
            "default_base_url": "https://api.openai.com/v1",
        },
        "local": {
            "api_key_env": None,
            "base_url_env": "LOCAL_BASE_URL",
            "model_env": "LOCAL_MODEL",
            "default_model": "llama3.1:8b",
            "default_base_url": "http://127.0.0.1:11434",
            "requires_api_key": False,
        },
    }

    # Customer-facing chat prefers the cheap hosted model first.
    ROUTING_ORDER: Tuple[str, ...] = ("gemini", "openai", "local")

    def __init__(self, env: Optional[Mapping[str, str]] = None, preferred: Optional[str] = None) -> None:
        self._env = os.environ if env is None else env
        self._preferred = (preferred or self._env.get("RELAY_MODEL_PROVIDER") or "").strip().lower() or None

    def _provider_available(self, provider: str) -> bool:
        cfg = self.PROVIDER_CONFIG.get(provider)
        if not cfg:
            return False
        if bool(cfg.get("requires_api_key", True)):
            api_key_env = cfg.get("api_key_env")
            return bool(api_key_env and self._env.get(str(api_key_env)))
        # local models are opt-in; no credentials to check
        return self._preferred == provider or (self._env.get("RELAY_ENABLE_LOCAL_PROVIDER") or "").strip() == "1"

    def resolve_provider(self, provider: str) -> ProviderSelection:
        cfg = self.PROVIDER_CONFIG[provider]
        model = self._env.get(str(cfg.get("model_env") or ""), "") or str(cfg.get("default_model") or "")
        base_url = self._env.get(str(cfg.get("base_url_env") or ""), "") or cfg.get("default_base_url")
        return ProviderSelection(
            name=provider,
            model=model,
            api_key_env=cfg.get("api_key_env"),  # type: ignore[arg-type]
            base_url=base_url,  # type: ignore[arg-type]
            requires_api_key=bool(cfg.get("requires_api_key", True)),
        )

    def select_provider(self) -> ProviderSelection:
        """Return the first available provider, honouring a preferred one.

        Raises
        ------
        RuntimeError
            If no provider is configured.
        """

        order = list(self.ROUTING_ORDER)
        if self._preferred in self.PROVIDER_CONFIG:
            order = [self._preferred] + [p for p in order if p != self._preferred]
        for provider in order:
            if self._provider_available(provider):
                return self.resolve_provider(provider)
        raise RuntimeError("No active model provider available.")

    def maybe_select_provider(self) -> Optional[ProviderSelection]:
        try:
            return self.select_provider()
        except RuntimeError:
            return None
