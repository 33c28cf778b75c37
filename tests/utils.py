from __future__ import annotations

import asyncio
from typing import List, Optional

from src.chatrelay.config import RelaySettings
from src.chatrelay.infrastructure.conversation_store import InMemoryConversationStore
from src.chatrelay.services.session_coordinator import SessionCoordinator
from src.chatrelay.services.system_prompt import SystemPrompt


class StubGenerator:
    """Records prompts and answers with a canned reply or error."""

    def __init__(self, reply: str = "Hi there", error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class RecordingStore(InMemoryConversationStore):
    """In-memory store that counts writes."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    async def create_thread(self, user_id, contact_address):
        self.writes += 1
        return await super().create_thread(user_id, contact_address)

    async def touch_thread(self, thread):
        self.writes += 1
        return await super().touch_thread(thread)

    async def append_message(self, thread_id, fields):
        self.writes += 1
        return await super().append_message(thread_id, fields)


def make_coordinator(store=None, generator=None, timeout: float = 5.0) -> SessionCoordinator:
    return SessionCoordinator(
        store if store is not None else RecordingStore(),
        generator if generator is not None else StubGenerator(),
        SystemPrompt(text="SYSTEM RULES", assistant_name="K'artz Assistant"),
        generation_timeout=timeout,
    )


def settings_for(prompt_path, **overrides) -> RelaySettings:
    values = {"system_prompt_path": str(prompt_path)}
    values.update(overrides)
    return RelaySettings(**values)
