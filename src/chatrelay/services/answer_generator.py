from __future__ import annotations

from typing import Any, Optional, Protocol
import asyncio
import logging

import requests
from langchain_openai import ChatOpenAI
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import RelaySettings
from ..errors import GenerationError
from .model_router import ModelRouter, ProviderSelection


logger = logging.getLogger("chatrelay.generator")
LOG = logging.getLogger("chatrelay.llm")


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["POST"]),
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class AnswerGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class ChatModelGenerator:
    """Hosted chat model reached through LangChain's OpenAI-compatible client."""

    def __init__(self, llm: Any, provider: str, model: str) -> None:
        self._llm = llm
        self.provider = provider
        self.model = model

    async def generate(self, prompt: str) -> str:
        res = await self._llm.ainvoke(prompt)
        return res.content if hasattr(res, "content") else str(res)


class LocalLLMGenerator:
    """Ollama-style ``/api/generate`` endpoint on the local network."""

    def __init__(self, base_url: str, model: str, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.provider = "local"
        self.model = model
        self._timeout = (3, timeout)
        self._session = _build_session()

    def _invoke(self, prompt: str) -> str:
        LOG.debug("local_llm_invoke", extra={"model": self.model, "base_url": self.base_url})
        resp = self._session.post(
            f"{self.base_url}/api/generate",
            json={"model": self.model, "prompt": prompt, "stream": False},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return str(data.get("response") or "")

    async def generate(self, prompt: str) -> str:
        return await asyncio.to_thread(self._invoke, prompt)


class UnconfiguredGenerator:
    """Stand-in used when no provider has credentials; every call fails."""

    provider = None
    model = None

    async def generate(self, prompt: str) -> str:
        raise GenerationError("No model provider configured")


class ResilientGenerator:
    """Translates every client failure into :class:`GenerationError`.

    Anything the inner client raises, and any empty answer, surfaces as
    :class:`GenerationError` so callers have exactly one failure type. No
    state is kept between calls; each event's call stands alone.
    """

    def __init__(self, inner: AnswerGenerator) -> None:
        self._inner = inner

    async def generate(self, prompt: str) -> str:
        try:
            text = await self._inner.generate(prompt)
        except GenerationError:
            raise
        except Exception as exc:
            LOG.warning("llm_call_failed", extra={"err": str(exc)})
            raise GenerationError(str(exc) or exc.__class__.__name__) from exc
        if not text or not text.strip():
            raise GenerationError("llm_empty_response")
        return text


def _client_for(selection: ProviderSelection, settings: RelaySettings) -> AnswerGenerator:
    if selection.name == "local":
        base_url = selection.base_url or "http://127.0.0.1:11434"
        logger.info("Using local LLM provider base_url=%s model=%s", base_url, selection.model)
        return LocalLLMGenerator(base_url=base_url, model=selection.model, timeout=settings.generation_timeout)

    api_key = settings.env.get(selection.api_key_env or "") if selection.api_key_env else None
    if selection.requires_api_key and not api_key:
        raise RuntimeError("LLM not configured")
    logger.info(
        "Using remote LLM provider name=%s model=%s base_url=%s",
        selection.name,
        selection.model,
        selection.base_url,
    )
    llm = ChatOpenAI(
        api_key=api_key,
        base_url=selection.base_url,
        model=selection.model,
        temperature=0.4,
        timeout=settings.generation_timeout,
        max_retries=1,
    )
    return ChatModelGenerator(llm, provider=selection.name, model=selection.model)


def build_answer_generator(settings: RelaySettings, router: Optional[ModelRouter] = None) -> AnswerGenerator:
    router = router or ModelRouter(env=settings.env, preferred=settings.model_provider)
    selection = router.maybe_select_provider()
    if selection is None:
        logger.warning("No model provider configured; every reply will use the fallback text")
        return ResilientGenerator(UnconfiguredGenerator())
    try:
        return ResilientGenerator(_client_for(selection, settings))
    except RuntimeError:
        logger.exception("Model client construction failed for provider=%s", selection.name)
        return ResilientGenerator(UnconfiguredGenerator())
