from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..domain.chat_models import Message, MessageCreate, Thread
from ..errors import StoreError
from .conversation_store import format_timestamp


class MongoConversationStore:
    def __init__(self, mongo_url: str, mongo_db: str, client: Any = None) -> None:
        self._client = client or AsyncIOMotorClient(mongo_url, serverSelectionTimeoutMS=2000, tz_aware=True)
        db = self._client[mongo_db]
        self._chats = db["chats"]
        self._messages = db["messages"]
        self._indexes_ready = False

    async def ensure_indexes(self) -> None:
        if self._indexes_ready:
            return
        try:
            await self._chats.create_index("user_id", unique=True)
            await self._messages.create_index([("chat_id", ASCENDING), ("created_at", ASCENDING)])
        except PyMongoError as exc:
            raise StoreError("Could not create conversation indexes") from exc
        self._indexes_ready = True

    async def find_thread_by_identity(self, user_id: str) -> Optional[Thread]:
        await self.ensure_indexes()
        try:
            doc = await self._chats.find_one({"user_id": user_id})
        except PyMongoError as exc:
            raise StoreError("Thread lookup failed") from exc
        return self._to_thread(doc) if doc else None

    async def create_thread(self, user_id: str, contact_address: str) -> Thread:
        await self.ensure_indexes()
        now = self._now()
        doc = {
            "user_id": user_id,
            "user_email": contact_address,
            "status": "assistant_active",
            "last_message_at": now,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self._chats.insert_one(doc)
        except DuplicateKeyError:
            # another event created it first; the unique index keeps one per user
            existing = await self.find_thread_by_identity(user_id)
            if existing is None:
                raise StoreError("Thread vanished after duplicate key on create")
            return existing
        except PyMongoError as exc:
            raise StoreError("Thread create failed") from exc
        doc["_id"] = result.inserted_id
        return self._to_thread(doc)

    async def touch_thread(self, thread: Thread) -> Thread:
        now = self._now()
        try:
            updated = await self._chats.find_one_and_update(
                {"_id": self._object_id(thread.thread_id)},
                {"$set": {"last_message_at": now, "updated_at": now}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise StoreError("Thread touch failed") from exc
        if not updated:
            raise StoreError(f"Thread not found: {thread.thread_id}")
        return self._to_thread(updated)

    async def append_message(self, thread_id: str, fields: MessageCreate) -> Message:
        doc = {
            "chat_id": self._object_id(thread_id),
            "content": fields.content,
            "sender_type": fields.sender_type,
            "sender_name": fields.sender_name,
            "sender_uid": fields.sender_uid if fields.sender_type == "user" else None,
            "created_at": self._now(),
        }
        try:
            result = await self._messages.insert_one(doc)
        except PyMongoError as exc:
            raise StoreError("Message insert failed") from exc
        doc["_id"] = result.inserted_id
        return self._to_message(doc)

    async def list_messages(self, thread_id: str) -> List[Message]:
        try:
            cursor = self._messages.find({"chat_id": self._object_id(thread_id)}).sort(
                [("created_at", ASCENDING), ("_id", ASCENDING)]
            )
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise StoreError("Message listing failed") from exc
        return [self._to_message(doc) for doc in docs]

    async def count_threads(self) -> int:
        try:
            return int(await self._chats.count_documents({}))
        except PyMongoError as exc:
            raise StoreError("Thread count failed") from exc

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def _object_id(self, value: str) -> ObjectId:
        try:
            return ObjectId(value)
        except (InvalidId, TypeError) as exc:
            raise StoreError(f"Malformed thread id: {value!r}") from exc

    def _stamp(self, value: Any) -> str:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            return format_timestamp(value)
        return str(value)

    def _to_thread(self, doc: Dict[str, Any]) -> Thread:
        return Thread(
            thread_id=str(doc["_id"]),
            user_id=str(doc.get("user_id")),
            user_email=str(doc.get("user_email", "")),
            status=doc.get("status") or "assistant_active",
            last_message_at=self._stamp(doc.get("last_message_at")),
            created_at=self._stamp(doc.get("created_at")),
            updated_at=self._stamp(doc.get("updated_at")),
        )

    def _to_message(self, doc: Dict[str, Any]) -> Message:
        return Message(
            message_id=str(doc["_id"]),
            thread_id=str(doc.get("chat_id")),
            content=str(doc.get("content", "")),
            sender_type=doc.get("sender_type") or "assistant",
            sender_name=str(doc.get("sender_name", "")),
            sender_uid=doc.get("sender_uid"),
            created_at=self._stamp(doc.get("created_at")),
        )
