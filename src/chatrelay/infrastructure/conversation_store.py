from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from threading import RLock
from typing import Dict, List, Optional, Protocol
import logging
import uuid

from ..config import RelaySettings
from ..domain.chat_models import Message, MessageCreate, Thread, ThreadStatus
from ..errors import StoreError


logger = logging.getLogger("chatrelay.store")


class ConversationStore(Protocol):
    async def find_thread_by_identity(self, user_id: str) -> Optional[Thread]: ...

    async def create_thread(self, user_id: str, contact_address: str) -> Thread: ...

    async def touch_thread(self, thread: Thread) -> Thread: ...

    async def append_message(self, thread_id: str, fields: MessageCreate) -> Message: ...

    async def list_messages(self, thread_id: str) -> List[Message]: ...

    async def count_threads(self) -> int: ...


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class _Thread:
    thread_id: str
    user_id: str
    user_email: str
    status: ThreadStatus
    last_message_at: str
    created_at: str
    updated_at: str


@dataclass
class _Message:
    message_id: str
    thread_id: str
    content: str
    sender_type: str
    sender_name: str
    sender_uid: Optional[str]
    created_at: str


class InMemoryConversationStore:
    """Process-local store; every method runs to completion without awaiting."""

    def __init__(self) -> None:
        self._threads: Dict[str, _Thread] = {}
        self._by_user: Dict[str, str] = {}
        self._messages: Dict[str, List[_Message]] = {}
        self._last_stamp: Optional[datetime] = None
        self._lock = RLock()

    def _now_iso(self) -> str:
        # Strictly increasing so insertion order and timestamp order agree.
        with self._lock:
            now = datetime.now(UTC)
            if self._last_stamp is not None and now <= self._last_stamp:
                now = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = now
            return format_timestamp(now)

    def _thread_model(self, thread: _Thread) -> Thread:
        return Thread(**thread.__dict__)

    def _message_model(self, message: _Message) -> Message:
        return Message(**message.__dict__)

    async def find_thread_by_identity(self, user_id: str) -> Optional[Thread]:
        with self._lock:
            thread_id = self._by_user.get(user_id)
            if not thread_id:
                return None
            return self._thread_model(self._threads[thread_id])

    async def create_thread(self, user_id: str, contact_address: str) -> Thread:
        with self._lock:
            existing = self._by_user.get(user_id)
            if existing:
                # lost a create race; identity is unique
                return self._thread_model(self._threads[existing])
            now = self._now_iso()
            thread = _Thread(
                thread_id=uuid.uuid4().hex,
                user_id=user_id,
                user_email=contact_address,
                status="assistant_active",
                last_message_at=now,
                created_at=now,
                updated_at=now,
            )
            self._threads[thread.thread_id] = thread
            self._by_user[user_id] = thread.thread_id
            self._messages[thread.thread_id] = []
            return self._thread_model(thread)

    async def touch_thread(self, thread: Thread) -> Thread:
        with self._lock:
            stored = self._threads.get(thread.thread_id)
            if not stored:
                raise StoreError(f"Thread not found: {thread.thread_id}")
            now = self._now_iso()
            stored.last_message_at = now
            stored.updated_at = now
            return self._thread_model(stored)

    async def append_message(self, thread_id: str, fields: MessageCreate) -> Message:
        with self._lock:
            if thread_id not in self._threads:
                raise StoreError(f"Thread not found: {thread_id}")
            msg = _Message(
                message_id=uuid.uuid4().hex,
                thread_id=thread_id,
                content=fields.content,
                sender_type=fields.sender_type,
                sender_name=fields.sender_name,
                sender_uid=fields.sender_uid if fields.sender_type == "user" else None,
                created_at=self._now_iso(),
            )
            self._messages.setdefault(thread_id, []).append(msg)
            return self._message_model(msg)

    async def list_messages(self, thread_id: str) -> List[Message]:
        with self._lock:
            return [self._message_model(m) for m in self._messages.get(thread_id, [])]

    async def count_threads(self) -> int:
        with self._lock:
            return len(self._threads)


_store: ConversationStore | None = None


def build_conversation_store(settings: RelaySettings) -> ConversationStore:
    if settings.store_impl == "mongo":
        from .conversation_store_mongo import MongoConversationStore

        logger.info("conversation_store_selected", extra={"impl": "mongo", "db": settings.mongo_db})
        return MongoConversationStore(settings.mongo_url, settings.mongo_db)
    logger.info("conversation_store_selected", extra={"impl": "memory"})
    return InMemoryConversationStore()


def get_conversation_store(settings: Optional[RelaySettings] = None) -> ConversationStore:
    global _store
    if _store is not None:
        return _store
    _store = build_conversation_store(settings or RelaySettings.from_env())
    return _store
