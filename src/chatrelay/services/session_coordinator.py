"""Per-event relay pipeline between a connected user and the answer generator.

One inbound ``send_message`` event flows through:

1. validation (malformed events are dropped without any write or reply),
2. thread resolution (create on first contact, otherwise bump activity),
3. persisting the user's message,
4. prompt assembly from the static system prompt plus this message only,
5. the generation call, bounded by a timeout,
6. persisting the assistant's message.

Any exception from steps 2-6 ends in a :class:`Fallback` outcome that is
sent to the user but never stored. The coordinator never touches transport
objects; the gateway delivers whatever outcome is returned.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Optional
import asyncio
import logging
import time
import uuid

from pydantic import ValidationError

from ..domain.chat_models import (
    Delivered,
    Fallback,
    MessageCreate,
    RelayOutcome,
    SendMessagePayload,
    Thread,
)
from ..errors import GenerationError
from ..infrastructure.conversation_store import ConversationStore, format_timestamp
from ..observability.metrics import DROPPED_EVENTS, GENERATION_LATENCY, RELAY_REPLIES
from .answer_generator import AnswerGenerator
from .system_prompt import SystemPrompt


logger = logging.getLogger("chatrelay.coordinator")

FALLBACK_TEXT = "Sorry, I'm having trouble answering right now. Please try again in a moment."


class SessionCoordinator:
    def __init__(
        self,
        store: ConversationStore,
        generator: AnswerGenerator,
        system_prompt: SystemPrompt,
        generation_timeout: float = 30.0,
    ) -> None:
        self._store = store
        self._generator = generator
        self._system_prompt = system_prompt
        self._generation_timeout = generation_timeout

    @property
    def assistant_name(self) -> str:
        return self._system_prompt.assistant_name

    def _validate(self, connection_id: str, payload: Any) -> Optional[SendMessagePayload]:
        if not isinstance(payload, dict):
            logger.info("message_dropped_invalid", extra={"connection": connection_id, "reason": "not_an_object"})
            DROPPED_EVENTS.labels(reason="not_an_object").inc()
            return None
        try:
            return SendMessagePayload.model_validate(payload)
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            logger.info("message_dropped_invalid", extra={"connection": connection_id, "fields": fields})
            DROPPED_EVENTS.labels(reason="missing_fields").inc()
            return None

    async def _resolve_thread(self, data: SendMessagePayload) -> Thread:
        thread = await self._store.find_thread_by_identity(data.uid)
        if thread is None:
            thread = await self._store.create_thread(data.uid, data.email)
            logger.info("thread_created", extra={"thread": thread.thread_id, "uid": data.uid})
            return thread
        return await self._store.touch_thread(thread)

    async def _generate(self, prompt: str) -> str:
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(self._generator.generate(prompt), timeout=self._generation_timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationError(f"Generation timed out after {self._generation_timeout}s") from exc
        finally:
            GENERATION_LATENCY.observe(time.perf_counter() - start)

    async def _relay(self, data: SendMessagePayload) -> Delivered:
        thread = await self._resolve_thread(data)
        await self._store.append_message(
            thread.thread_id,
            MessageCreate(
                content=data.content,
                sender_type="user",
                sender_name=data.display_name,
                sender_uid=data.uid,
            ),
        )

        text = await self._generate(self._system_prompt.build(data.content))

        reply = await self._store.append_message(
            thread.thread_id,
            MessageCreate(content=text, sender_type="assistant", sender_name=self.assistant_name),
        )
        return Delivered(message=reply)

    def _fallback(self) -> Fallback:
        return Fallback(
            text=FALLBACK_TEXT,
            reply_id=f"fallback-{uuid.uuid4().hex}",
            sender_name=self.assistant_name,
            timestamp=format_timestamp(datetime.now(UTC)),
        )

    async def handle_inbound_message(self, connection_id: str, payload: Any) -> Optional[RelayOutcome]:
        """Run one ``send_message`` event; ``None`` means it was dropped."""
        data = self._validate(connection_id, payload)
        if data is None:
            return None
        try:
            outcome: RelayOutcome = await self._relay(data)
        except GenerationError as exc:
            logger.warning("generation_failed", extra={"connection": connection_id, "uid": data.uid, "err": str(exc)})
            outcome = self._fallback()
        except Exception:
            logger.exception("Error processing message connection=%s uid=%s", connection_id, data.uid)
            outcome = self._fallback()
        RELAY_REPLIES.labels(outcome="delivered" if isinstance(outcome, Delivered) else "fallback").inc()
        return outcome
